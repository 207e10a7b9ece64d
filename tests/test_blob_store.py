from __future__ import annotations

import pytest

from packlab.blob_store import DAY_MS, BlobStore
from packlab.errors import ImageFetchError, RemoteUnavailableError
from packlab.image_refs import ImageRef
from packlab.object_storage import HttpImageFetcher


class FakeBucket:
    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.available = True
        self.content_types: list[str] = []

    def put_image(self, content_bytes: bytes, *, content_type: str = "image/jpeg") -> str:
        if not self.available:
            raise RemoteUnavailableError("image upload failed: quota exceeded")
        url = f"https://bucket.example.com/test-images/{len(self.objects) + 1}.jpg"
        self.objects[url] = content_bytes
        self.content_types.append(content_type)
        return url


class FakeResponse:
    def __init__(self, status_code: int, content: bytes = b""):
        self.status_code = status_code
        self.content = content


class FakeSession:
    def __init__(self, bucket: FakeBucket):
        self.bucket = bucket
        self.requested: list[str] = []

    def get(self, url: str, timeout: float):
        self.requested.append(url)
        if url in self.bucket.objects:
            return FakeResponse(200, self.bucket.objects[url])
        return FakeResponse(404)


@pytest.fixture
def bucket() -> FakeBucket:
    return FakeBucket()


@pytest.fixture
def session(bucket) -> FakeSession:
    return FakeSession(bucket)


@pytest.fixture
def blob_store(image_store, bucket, session) -> BlobStore:
    return BlobStore(
        local=image_store,
        remote=bucket,
        fetcher=HttpImageFetcher(session=session),
        clock=lambda: 50 * DAY_MS,
    )


def test_save_prefers_remote_bucket(blob_store, bucket, image_store):
    ref = blob_store.save_image(b"photo-1")
    assert ref.kind == "remote"
    assert ref.url in bucket.objects
    assert bucket.content_types == ["image/jpeg"]
    assert blob_store.last_backend == "remote"
    assert image_store.count() == 0


def test_save_falls_back_to_local_store_when_upload_fails(blob_store, bucket, image_store):
    bucket.available = False
    ref = blob_store.save_image(b"photo-2")
    assert ref.kind == "local"
    assert str(ref).startswith("idb-")
    assert blob_store.last_backend == "local"
    assert image_store.count() == 1


def test_save_uses_local_store_without_remote(image_store):
    store = BlobStore(local=image_store, remote=None)
    ref = store.save_image(b"photo-3")
    assert ref == ImageRef.local(ref.key)


@pytest.mark.parametrize("remote_up", [True, False])
def test_saved_image_reads_back_identically_on_either_backend(blob_store, bucket, remote_up):
    bucket.available = remote_up
    payload = bytes(range(256)) * 4
    ref = blob_store.save_image(payload)
    assert blob_store.get_image(ref) == payload
    assert blob_store.get_image(ref.to_storage()) == payload


def test_get_image_returns_none_for_absent_identifiers_without_io(blob_store, session):
    assert blob_store.get_image(None) is None
    assert blob_store.get_image("") is None
    assert blob_store.get_image("not-an-id") is None
    assert session.requested == []


def test_get_image_returns_none_for_missing_local_key(blob_store):
    assert blob_store.get_image("idb-999999") is None
    assert blob_store.get_image(999999) is None


def test_legacy_numeric_identifier_reads_local_store(blob_store, image_store):
    key = image_store.add(b"legacy-photo", timestamp_ms=49 * DAY_MS)
    assert blob_store.get_image(key) == b"legacy-photo"


def test_remote_fetch_failure_propagates(blob_store):
    with pytest.raises(ImageFetchError) as excinfo:
        blob_store.get_image("https://bucket.example.com/test-images/missing.jpg")
    assert excinfo.value.status_code == 404


def test_sweep_evicts_only_expired_local_images(blob_store, image_store):
    expired = image_store.add(b"old", timestamp_ms=50 * DAY_MS - 31 * DAY_MS)
    kept = image_store.add(b"recent", timestamp_ms=50 * DAY_MS - 29 * DAY_MS)
    remote_ref = blob_store.save_image(b"remote-photo")

    assert blob_store.sweep_expired() == 1
    assert blob_store.get_image(expired) is None
    assert blob_store.get_image(ImageRef.local(kept)) == b"recent"
    assert blob_store.get_image(remote_ref) == b"remote-photo"


def test_sweep_is_best_effort_when_store_is_closed(blob_store, image_store):
    image_store.close()
    assert blob_store.sweep_expired() == 0
