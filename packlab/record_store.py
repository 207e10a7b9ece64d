from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Mapping
from typing import Any

from packlab.db.postgres import PostgresTxRunner
from packlab.errors import RemoteUnavailableError
from packlab.normalizer import normalize_record
from packlab.record_cache import RecordCache
from packlab.repositories.packaging_tests import (
    DEFAULT_SNAPSHOT_KEY,
    PostgresTestsRepository,
    SnapshotTestsRepository,
)
from packlab.runtime_profile import env_int, remote_required

logger = logging.getLogger(__name__)

# Read paths degrade on these; anything else is a programming error and propagates.
_REMOTE_ERRORS: tuple[type[Exception], ...] = (RemoteUnavailableError, RuntimeError)

_id_lock = threading.Lock()
_last_test_id = 0


def generate_test_id(now_ms: int | None = None) -> int:
    """Millisecond-timestamp id, strictly increasing within this process."""
    global _last_test_id
    with _id_lock:
        candidate = int(time.time() * 1000) if now_ms is None else int(now_ms)
        if candidate <= _last_test_id:
            candidate = _last_test_id + 1
        _last_test_id = candidate
        return candidate


def _sort_key(test: dict[str, Any]) -> tuple[str, int]:
    test_id = test.get("id")
    return (str(test.get("dateOfTest") or ""), test_id if isinstance(test_id, int) else 0)


def sort_most_recent_first(tests: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(tests, key=_sort_key, reverse=True)


class RecordStore:
    """Test records backed by the remote store, with a cache and a local snapshot.

    Reads never raise for an unreachable remote: they fall back to the
    in-memory cache or the durable snapshot. Writes that fail remotely are
    mirrored into the snapshot and then re-raised so the caller can report
    "saved locally, not yet synced".
    """

    def __init__(
        self,
        *,
        remote: PostgresTestsRepository | None,
        snapshot: SnapshotTestsRepository,
        cache: RecordCache | None = None,
    ) -> None:
        self.remote = remote
        self.snapshot = snapshot
        self.cache = cache or RecordCache()
        self.last_source: str | None = None

    def _require_remote(self) -> PostgresTestsRepository:
        if self.remote is None:
            raise RemoteUnavailableError("remote record store not configured")
        return self.remote

    def invalidate_cache(self) -> None:
        self.cache.invalidate()

    def get_database(self) -> dict[str, list[dict[str, Any]]]:
        cached = self.cache.get_fresh()
        if cached is not None:
            self.last_source = "cache"
            return {"tests": cached}
        try:
            tests = self._require_remote().list_tests()
        except _REMOTE_ERRORS as exc:
            logger.warning("get_database remote read failed, serving local snapshot: %s", exc)
            self.last_source = "local"
            return {"tests": sort_most_recent_first(self.snapshot.list_tests())}
        self.cache.store(tests)
        self.snapshot.replace_all(tests)
        self.last_source = "remote"
        return {"tests": list(tests)}

    def add_test(self, test: dict[str, Any]) -> dict[str, Any]:
        try:
            confirmed = self._require_remote().add_test(test)
        except Exception:
            logger.warning("add_test id=%s failed remotely; kept in local snapshot", test.get("id"))
            self.snapshot.upsert_test(normalize_record(test))
            self.last_source = "local"
            raise
        self.cache.invalidate()
        self.last_source = "remote"
        return confirmed

    def get_test_by_id(self, test_id: int) -> dict[str, Any] | None:
        try:
            test = self._require_remote().get_test(test_id)
        except _REMOTE_ERRORS as exc:
            logger.warning("get_test_by_id id=%s remote read failed, searching snapshot: %s", test_id, exc)
            self.last_source = "local"
            return self.snapshot.get_test(test_id)
        self.last_source = "remote"
        return test

    def delete_test(self, test_id: int) -> None:
        try:
            self._require_remote().delete_test(test_id)
        except Exception:
            logger.warning("delete_test id=%s failed remotely; removed from local snapshot only", test_id)
            self.snapshot.delete_test(test_id)
            self.cache.invalidate()
            self.last_source = "local"
            raise
        self.cache.invalidate()
        self.last_source = "remote"


def create_record_store_from_env(environ: Mapping[str, str] | None = None) -> RecordStore:
    env = os.environ if environ is None else environ
    snapshot = SnapshotTestsRepository(
        env.get("PACKLAB_SNAPSHOT_PATH", "/tmp/packlab/snapshot.sqlite3").strip() or "/tmp/packlab/snapshot.sqlite3",
        key=env.get("PACKLAB_SNAPSHOT_KEY", DEFAULT_SNAPSHOT_KEY).strip() or DEFAULT_SNAPSHOT_KEY,
    )
    cache = RecordCache(ttl_ms=env_int(env, "PACKLAB_CACHE_TTL_MS", default=5000))
    dsn = env.get("POSTGRES_DSN", "").strip()
    remote: PostgresTestsRepository | None = None
    if dsn:
        remote = PostgresTestsRepository(tx_runner=PostgresTxRunner(dsn))
    elif remote_required(env):
        raise RuntimeError("POSTGRES_DSN is required when PACKLAB_REQUIRE_REMOTE is enabled")
    else:
        logger.warning("POSTGRES_DSN not set; record store running local-only")
    return RecordStore(remote=remote, snapshot=snapshot, cache=cache)
