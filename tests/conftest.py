# SPDX-License-Identifier: MIT
"""Shared pytest fixtures for diskhub tests."""

import pathlib

import pytest

from diskhub.manager import get_manager
from diskhub.storage.local import LocalFileSystemStorage


@pytest.fixture
def disk_root(tmp_path: pathlib.Path) -> pathlib.Path:
    """Create a temporary directory to act as a local disk root."""
    root = tmp_path / "disk"
    root.mkdir()
    return root


@pytest.fixture
def local_disk(disk_root: pathlib.Path) -> LocalFileSystemStorage:
    return LocalFileSystemStorage({"root": str(disk_root)})


@pytest.fixture
def manager_config(disk_root: pathlib.Path) -> dict:
    """Configuration with a default local disk and an unused second one."""
    return {
        "default": "local",
        "disks": {
            "local": {"driver": "local", "config": {"root": str(disk_root)}},
            "scratch": {"driver": "local", "config": {"root": str(disk_root / "scratch")}},
        },
    }


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never picks up a real profile."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture(autouse=True)
def clear_manager_cache():
    """Clear get_manager() cache before each test to ensure isolation."""
    get_manager.cache_clear()
    yield
    get_manager.cache_clear()


# ==================== Helpers ====================


async def collect(aiter) -> list:
    return [item async for item in aiter]


@pytest.fixture
def collect_all():
    """Drain an async iterator into a list."""
    return collect
