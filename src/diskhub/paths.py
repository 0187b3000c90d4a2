# SPDX-License-Identifier: MIT
"""Location validation helpers shared by the storage adapters."""

from __future__ import annotations

import pathlib

from .exceptions import StorageError

_BAD_COMPONENTS = frozenset({".", ".."})


def validate_list_prefix(prefix: str) -> str:
    """Reject listing prefixes that could escape the intended scope.

    A prefix is split on ``/`` and refused if any component is ``.`` or
    ``..``.  Dots inside a component (``docs/v1.2``) are fine.

    Returns:
        The prefix unchanged.

    Raises:
        StorageError: ``WRONG_KEY_PATH`` for traversal components.
    """
    if any(part in _BAD_COMPONENTS for part in prefix.split("/")):
        raise StorageError.wrong_key_path(prefix, 'Resource name contains bad components such as ".." or "."')
    return prefix


def validate_key(location: str) -> str:
    """Check an object key for emptiness and traversal components.

    Returns:
        The key without leading slashes.
    """
    key = location.lstrip("/")
    if not key:
        raise StorageError.wrong_key_path(location, "Empty file location")
    if any(part in _BAD_COMPONENTS for part in key.split("/")):
        raise StorageError.wrong_key_path(location, "Path traversal detected")
    return key


def resolve_under_root(root: pathlib.Path, location: str) -> pathlib.Path:
    """Resolve *location* against *root*, refusing anything that lands outside it.

    Args:
        root: Already-resolved absolute root directory.
        location: Forward-slash separated path relative to *root*.  A leading
            ``/`` is treated as relative to *root* as well.

    Raises:
        StorageError: ``WRONG_KEY_PATH`` on path traversal.
    """
    relative = location.lstrip("/")
    if not relative:
        raise StorageError.wrong_key_path(location, "Empty file location")
    try:
        full_path = (root / relative).resolve()
        full_path.relative_to(root)
    except (ValueError, OSError) as e:
        raise StorageError.wrong_key_path(location, "Path escapes the disk root (path traversal)", raw=e) from e
    return full_path


def to_posix_key(root: pathlib.Path, path: pathlib.Path) -> str:
    """Express *path* as a ``/``-separated key relative to *root*."""
    return path.relative_to(root).as_posix()
