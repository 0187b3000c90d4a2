# SPDX-License-Identifier: MIT
"""Unit tests for GoogleCloudStorage using an in-memory client double."""

import io
from datetime import datetime, timezone

import pytest

pytest.importorskip("google.cloud.storage")
from google.api_core.exceptions import Forbidden, NotFound, TooManyRequests  # noqa: E402
from google.auth.exceptions import DefaultCredentialsError  # noqa: E402

from diskhub.exceptions import ErrorKind, StorageError  # noqa: E402
from diskhub.storage import gcs as gcs_module  # noqa: E402
from diskhub.storage.gcs import GoogleCloudStorage  # noqa: E402
from diskhub.storage.protocol import Disk  # noqa: E402

BUCKET = "diskhub-test"
UPDATED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name
        self.size = None
        self.updated = None
        self.content_type = None

    def _data(self):
        try:
            return self.bucket.objects[self.name]
        except KeyError:
            raise NotFound(f"No such object: {self.bucket.name}/{self.name}") from None

    def exists(self):
        return self.name in self.bucket.objects

    def download_as_bytes(self):
        return self._data()

    def open(self, mode):
        assert mode == "rb"
        return io.BytesIO(self._data())

    def reload(self):
        self.size = len(self._data())
        self.updated = UPDATED

    def upload_from_string(self, data, content_type=None):
        self.bucket.objects[self.name] = data
        self.content_type = content_type

    def delete(self):
        self._data()
        del self.bucket.objects[self.name]

    def generate_signed_url(self, version, expiration, method):
        seconds = int(expiration.total_seconds())
        return f"https://storage.googleapis.com/{self.bucket.name}/{self.name}?X-Goog-Expires={seconds}&v={version}"


class FakeBucket:
    def __init__(self, name):
        self.name = name
        self.objects = {}

    def blob(self, name):
        return FakeBlob(self, name)

    def copy_blob(self, blob, destination_bucket, new_name):
        destination_bucket.objects[new_name] = blob._data()
        return destination_bucket.blob(new_name)

    def rename_blob(self, blob, new_name):
        copied = self.copy_blob(blob, self, new_name)
        blob.delete()
        return copied


class FakePager:
    def __init__(self, blobs, page_size):
        self._blobs = blobs
        self._page_size = page_size

    @property
    def pages(self):
        for start in range(0, len(self._blobs), self._page_size):
            yield self._blobs[start : start + self._page_size]


class FakeClient:
    def __init__(self):
        self.buckets = {BUCKET: FakeBucket(BUCKET)}
        self.list_calls = []

    def bucket(self, name):
        return self.buckets.setdefault(name, FakeBucket(name))

    def list_blobs(self, bucket_name, prefix=None, page_size=None):
        self.list_calls.append((bucket_name, prefix, page_size))
        bucket = self.bucket(bucket_name)
        names = sorted(n for n in bucket.objects if prefix is None or n.startswith(prefix))
        return FakePager([bucket.blob(n) for n in names], page_size)


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def client_factory(mocker, fake_client):
    return mocker.patch("diskhub.storage.gcs.storage.Client", return_value=fake_client)


@pytest.fixture
def gcs_disk(client_factory):
    return GoogleCloudStorage({"bucket": BUCKET, "project": "diskhub"})


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


@pytest.mark.unit
class TestClient:
    def test_is_disk(self, gcs_disk):
        assert isinstance(gcs_disk, Disk)

    def test_client_created_lazily_once(self, client_factory, fake_client):
        disk = GoogleCloudStorage({"bucket": BUCKET})

        client_factory.assert_not_called()
        assert disk.driver() is fake_client
        assert disk.driver() is fake_client
        client_factory.assert_called_once_with(project=None, client_options=None)

    def test_api_endpoint(self, client_factory):
        GoogleCloudStorage({"bucket": BUCKET, "apiEndpoint": "http://localhost:4443"}).driver()

        assert client_factory.call_args.kwargs["client_options"] == {"api_endpoint": "http://localhost:4443"}

    def test_key_filename(self, client_factory):
        disk = GoogleCloudStorage({"bucket": BUCKET, "keyFilename": "/etc/sa.json", "project": "p"})

        disk.driver()

        client_factory.from_service_account_json.assert_called_once_with(
            "/etc/sa.json", project="p", client_options=None
        )

    def test_anonymous(self, client_factory):
        GoogleCloudStorage({"bucket": BUCKET, "anonymous": True}).driver()

        kwargs = client_factory.call_args.kwargs
        assert kwargs["project"] == "<none>"
        assert kwargs["credentials"] is not None

    def test_missing_bucket_setting(self):
        with pytest.raises(StorageError) as exc_info:
            GoogleCloudStorage({"project": "p"})

        assert exc_info.value.kind is ErrorKind.INVALID_CONFIG
        assert exc_info.value.driver == "gcs"


# ------------------------------------------------------------------
# Round trips
# ------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    ["", "test-data", "héllo wörld ✓ 日本語"],
    ids=["empty", "ascii", "utf8"],
)
async def test_put_get_text(gcs_disk, content):
    await gcs_disk.put("some-file.txt", content)

    assert (await gcs_disk.get("some-file.txt")).content == content


@pytest.mark.unit
async def test_put_get_buffer_binary(gcs_disk, fake_client):
    payload = bytes(range(256))

    await gcs_disk.put("img/raw.bin", payload, content_type="application/octet-stream")

    assert (await gcs_disk.get_buffer("img/raw.bin")).content == payload
    assert fake_client.buckets[BUCKET].objects["img/raw.bin"] == payload


@pytest.mark.unit
async def test_put_stream(gcs_disk):
    async def chunks():
        yield b"abc"
        yield b"def"

    await gcs_disk.put("stream.txt", chunks())

    assert (await gcs_disk.get("stream.txt")).content == "abcdef"


@pytest.mark.unit
async def test_get_stream(gcs_disk):
    await gcs_disk.put("dummy-file.txt", b"0123456789")

    chunks = [chunk async for chunk in gcs_disk.get_stream("dummy-file.txt", chunk_size=4)]

    assert chunks == [b"0123", b"4567", b"89"]


@pytest.mark.unit
async def test_get_stat(gcs_disk):
    await gcs_disk.put("dummy-file.txt", "test-data")

    stat = await gcs_disk.get_stat("dummy-file.txt")

    assert stat.size == 9
    assert stat.modified == UPDATED


# ------------------------------------------------------------------
# exists / delete / copy / move
# ------------------------------------------------------------------


@pytest.mark.unit
async def test_exists(gcs_disk):
    assert (await gcs_disk.exists("a.txt")).exists is False

    await gcs_disk.put("a.txt", "x")

    assert (await gcs_disk.exists("a.txt")).exists is True


@pytest.mark.unit
async def test_delete_reports_outcome(gcs_disk):
    await gcs_disk.put("a.txt", "x")

    assert (await gcs_disk.delete("a.txt")).was_deleted is True
    assert (await gcs_disk.delete("a.txt")).was_deleted is False


@pytest.mark.unit
async def test_copy_and_move(gcs_disk):
    await gcs_disk.put("src.txt", "payload")

    await gcs_disk.copy("src.txt", "copy.txt")
    await gcs_disk.move("src.txt", "moved/dest.txt")

    assert (await gcs_disk.get("copy.txt")).content == "payload"
    assert (await gcs_disk.get("moved/dest.txt")).content == "payload"
    assert (await gcs_disk.exists("src.txt")).exists is False


@pytest.mark.unit
async def test_append_not_supported(gcs_disk):
    with pytest.raises(StorageError) as exc_info:
        await gcs_disk.append("a.txt", "x")

    assert exc_info.value.kind is ErrorKind.METHOD_NOT_SUPPORTED


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


@pytest.mark.unit
async def test_get_missing_file(gcs_disk):
    with pytest.raises(StorageError) as exc_info:
        await gcs_disk.get("missing.txt")

    err = exc_info.value
    assert err.kind is ErrorKind.FILE_NOT_FOUND
    assert err.path == "missing.txt"
    assert err.bucket == BUCKET
    assert err.error_code == 404
    assert isinstance(err.raw, NotFound)


@pytest.mark.unit
async def test_copy_missing_source_reports_source(gcs_disk):
    with pytest.raises(StorageError) as exc_info:
        await gcs_disk.copy("nope.txt", "dest.txt")

    assert exc_info.value.kind is ErrorKind.FILE_NOT_FOUND
    assert exc_info.value.path == "nope.txt"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (Forbidden("denied"), ErrorKind.PERMISSION_MISSING),
        (NotFound("gone"), ErrorKind.FILE_NOT_FOUND),
        (TooManyRequests("slow down"), ErrorKind.UNKNOWN),
        (DefaultCredentialsError("no adc"), ErrorKind.AUTHORIZATION_REQUIRED),
    ],
)
def test_error_translation(error, kind):
    err = gcs_module._handle_error(error, "k.txt", "bkt")

    assert err.kind is kind
    assert err.bucket == "bkt"
    assert err.raw is error


@pytest.mark.unit
async def test_forbidden_on_download(gcs_disk, mocker):
    mocker.patch.object(FakeBlob, "download_as_bytes", side_effect=Forbidden("denied"))

    with pytest.raises(StorageError) as exc_info:
        await gcs_disk.get_buffer("secret.txt")

    assert exc_info.value.kind is ErrorKind.PERMISSION_MISSING
    assert exc_info.value.error_code == 403


# ------------------------------------------------------------------
# URLs
# ------------------------------------------------------------------


@pytest.mark.unit
def test_get_url(gcs_disk):
    assert gcs_disk.get_url("/img/a b.png") == f"https://storage.googleapis.com/{BUCKET}/img/a%20b.png"


@pytest.mark.unit
async def test_signed_url(gcs_disk):
    result = await gcs_disk.get_signed_url("a.txt", expiry=120)

    assert "X-Goog-Expires=120" in result.signed_url
    assert "v=v4" in result.signed_url


@pytest.mark.unit
async def test_signed_url_default_expiry(gcs_disk):
    result = await gcs_disk.get_signed_url("a.txt")

    assert "X-Goog-Expires=900" in result.signed_url


# ------------------------------------------------------------------
# flat_list
# ------------------------------------------------------------------


@pytest.mark.unit
async def test_flat_list(gcs_disk, fake_client, collect_all):
    for key in ("a.txt", "docs/readme.md", "docs/v1.2/notes.txt"):
        await gcs_disk.put(key, "x")

    everything = await collect_all(gcs_disk.flat_list())
    docs = await collect_all(gcs_disk.flat_list("docs/"))

    assert [item.path for item in everything] == ["a.txt", "docs/readme.md", "docs/v1.2/notes.txt"]
    assert [item.path for item in docs] == ["docs/readme.md", "docs/v1.2/notes.txt"]
    assert fake_client.list_calls[0][1] is None
    assert fake_client.list_calls[1][1] == "docs/"


@pytest.mark.unit
async def test_flat_list_paginates(gcs_disk, collect_all, monkeypatch):
    monkeypatch.setattr(gcs_module, "LIST_PAGE_SIZE", 2)
    for i in range(5):
        await gcs_disk.put(f"page/{i}.txt", "x")

    items = await collect_all(gcs_disk.flat_list("page/"))

    assert [item.path for item in items] == [f"page/{i}.txt" for i in range(5)]


@pytest.mark.unit
async def test_flat_list_empty(gcs_disk, collect_all):
    assert await collect_all(gcs_disk.flat_list("none/")) == []


@pytest.mark.unit
@pytest.mark.parametrize("prefix", ["..", "a/./b", "../etc"])
async def test_flat_list_rejects_traversal(gcs_disk, fake_client, prefix, collect_all):
    with pytest.raises(StorageError) as exc_info:
        await collect_all(gcs_disk.flat_list(prefix))

    assert exc_info.value.kind is ErrorKind.WRONG_KEY_PATH
    assert fake_client.list_calls == []
