# SPDX-License-Identifier: MIT
"""End-to-end scenarios through StorageManager against real adapters.

The same calls run against a local disk and a moto-backed S3 disk, so the
differences callers have to handle (``was_deleted``, append support) show
up side by side.
"""

import pytest

from diskhub import ErrorKind, StorageError, StorageManager

moto = pytest.importorskip("moto")

BUCKET = "diskhub-integration"


@pytest.fixture(params=["local", "s3"])
def manager(request, disk_root, aws_credentials):
    config = {
        "default": request.param,
        "disks": {
            "local": {"driver": "local", "config": {"root": str(disk_root)}},
            "s3": {"driver": "s3", "config": {"bucket": BUCKET, "region": "us-east-1"}},
        },
    }
    with moto.mock_aws():
        manager = StorageManager(config)
        if request.param == "s3":
            manager.disk("s3").driver().create_bucket(Bucket=BUCKET)
        yield manager


@pytest.mark.integration
class TestRoundTrip:
    async def test_put_get_delete(self, manager):
        disk = manager.disk()

        await disk.put("reports/2024/summary.txt", "quarterly numbers")

        assert (await disk.exists("reports/2024/summary.txt")).exists is True
        assert (await disk.get("reports/2024/summary.txt")).content == "quarterly numbers"

        deleted = await disk.delete("reports/2024/summary.txt")
        if manager.default_disk == "s3":
            assert deleted.was_deleted is None
        else:
            assert deleted.was_deleted is True
        assert (await disk.exists("reports/2024/summary.txt")).exists is False

    async def test_same_instance_every_time(self, manager):
        assert manager.disk() is manager.disk(manager.default_disk)
        assert list(manager.disks) == [manager.default_disk]

    async def test_copy_move_and_list(self, manager, collect_all):
        disk = manager.disk()
        await disk.put("inbox/a.txt", "a")
        await disk.put("inbox/b.txt", "b")

        await disk.copy("inbox/a.txt", "archive/a.txt")
        await disk.move("inbox/b.txt", "archive/b.txt")

        archive = sorted(item.path for item in await collect_all(disk.flat_list("archive/")))
        inbox = sorted(item.path for item in await collect_all(disk.flat_list("inbox/")))
        assert archive == ["archive/a.txt", "archive/b.txt"]
        assert inbox == ["inbox/a.txt"]

    async def test_stat(self, manager):
        disk = manager.disk()
        await disk.put("sized.bin", b"\x00" * 128)

        stat = await disk.get_stat("sized.bin")

        assert stat.size == 128
        assert stat.modified.tzinfo is not None

    async def test_append_depends_on_driver(self, manager):
        disk = manager.disk()
        await disk.put("log.txt", "one\n")

        if manager.default_disk == "local":
            await disk.append("log.txt", "two\n")
            assert (await disk.get("log.txt")).content == "one\ntwo\n"
        else:
            with pytest.raises(StorageError) as exc_info:
                await disk.append("log.txt", "two\n")
            assert exc_info.value.kind is ErrorKind.METHOD_NOT_SUPPORTED

    async def test_missing_file(self, manager):
        with pytest.raises(StorageError) as exc_info:
            await manager.disk().get("does/not/exist.txt")

        assert exc_info.value.kind is ErrorKind.FILE_NOT_FOUND
