from __future__ import annotations

import time

import pytest

from packlab.blob_store import DAY_MS, BlobStore, create_blob_store_from_env
from packlab.eviction import EvictionScheduler, create_eviction_scheduler_from_env


class FakeClockMs:
    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now


def test_run_once_sweeps_and_counts(image_store):
    clock = FakeClockMs(40 * DAY_MS)
    store = BlobStore(local=image_store, retention_days=30, clock=clock)
    image_store.add(b"old", timestamp_ms=5 * DAY_MS)
    image_store.add(b"fresh", timestamp_ms=39 * DAY_MS)

    scheduler = EvictionScheduler(blob_store=store, interval_s=60)

    assert scheduler.run_once() == 1
    assert scheduler.run_once() == 0
    assert scheduler.stats.as_dict() == {"sweeps": 2, "evicted": 1}
    assert image_store.count() == 1


def test_run_forever_honours_iteration_limit(image_store):
    store = BlobStore(local=image_store, clock=FakeClockMs(DAY_MS))
    scheduler = EvictionScheduler(blob_store=store, interval_s=0.01)
    assert scheduler.run_forever(stop_after_iterations=3) == {"sweeps": 3, "evicted": 0}


def test_start_and_stop_background_thread(image_store):
    store = BlobStore(local=image_store, clock=FakeClockMs(DAY_MS))
    scheduler = EvictionScheduler(blob_store=store, interval_s=0.01)

    scheduler.start()
    scheduler.start()
    deadline = time.monotonic() + 2.0
    while scheduler.stats.sweeps < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    scheduler.stop(timeout=2.0)

    assert scheduler.stats.sweeps >= 2
    assert scheduler.is_running is False
    sweeps = scheduler.stats.sweeps
    time.sleep(0.05)
    assert scheduler.stats.sweeps == sweeps


def test_scheduler_survives_closed_store(tmp_path):
    store = create_blob_store_from_env({"PACKLAB_IMAGE_DB_PATH": str(tmp_path / "images.sqlite3")})
    store.close()
    scheduler = EvictionScheduler(blob_store=store, interval_s=60)
    assert scheduler.run_once() == 0


def test_scheduler_interval_from_env(image_store):
    store = BlobStore(local=image_store)
    scheduler = create_eviction_scheduler_from_env(
        blob_store=store, environ={"PACKLAB_EVICTION_INTERVAL_S": "3600"}
    )
    assert scheduler.interval_s == 3600


def test_blob_store_from_env_defaults_to_local_only(tmp_path):
    store = create_blob_store_from_env(
        {
            "PACKLAB_IMAGE_DB_PATH": str(tmp_path / "images.sqlite3"),
            "PACKLAB_IMAGE_RETENTION_DAYS": "7",
        }
    )
    try:
        assert store.remote is None
        assert store.retention_days == 7
        assert store.local.is_open
        assert store.save_image(b"\xff\xd8jpeg").kind == "local"
    finally:
        store.close()


def test_blob_store_from_env_degrades_on_bad_backend(tmp_path):
    env = {
        "PACKLAB_IMAGE_DB_PATH": str(tmp_path / "images.sqlite3"),
        "PACKLAB_OBJECT_STORAGE_BACKEND": "gcs",
    }
    store = create_blob_store_from_env(env)
    try:
        assert store.remote is None
    finally:
        store.close()

    with pytest.raises(RuntimeError, match="unsupported object storage backend"):
        create_blob_store_from_env({**env, "PACKLAB_REQUIRE_REMOTE": "1"})
