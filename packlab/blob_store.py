from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Callable, Mapping
from typing import Any

from packlab.image_fallback import SqliteImageStore, now_ms
from packlab.image_refs import ImageRef
from packlab.object_storage import (
    DEFAULT_CONTENT_TYPE,
    HttpImageFetcher,
    S3ImageStorage,
    create_image_storage_from_env,
    object_storage_config_from_env,
)
from packlab.runtime_profile import env_int, remote_required

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_RETENTION_DAYS = 30


class BlobStore:
    """Images in the remote bucket when reachable, in the local SQLite store otherwise.

    The returned ``ImageRef`` records where the bytes went, so later reads
    dispatch on the identifier alone.
    """

    def __init__(
        self,
        *,
        local: SqliteImageStore,
        remote: S3ImageStorage | None = None,
        fetcher: HttpImageFetcher | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.local = local
        self.remote = remote
        self.fetcher = fetcher or HttpImageFetcher()
        self.retention_days = max(0, int(retention_days))
        self._clock = clock
        self.last_backend: str | None = None

    def save_image(self, data: bytes, *, content_type: str = DEFAULT_CONTENT_TYPE) -> ImageRef:
        if self.remote is not None:
            try:
                url = self.remote.put_image(data, content_type=content_type)
            except Exception as exc:
                logger.warning("image upload failed, storing locally: %s", exc)
            else:
                self.last_backend = "remote"
                return ImageRef.remote(url)
        key = self.local.add(data, timestamp_ms=self._clock())
        self.last_backend = "local"
        return ImageRef.local(key)

    def get_image(self, identifier: Any) -> bytes | None:
        ref = ImageRef.parse(identifier)
        if ref is None:
            return None
        if ref.kind == "remote":
            return self.fetcher.fetch(str(ref.url))
        return self.local.get(int(ref.key or 0))

    def sweep_expired(self, *, now: int | None = None) -> int:
        """Drop local images older than the retention window. Remote objects are untouched."""
        cutoff = (self._clock() if now is None else int(now)) - self.retention_days * DAY_MS
        try:
            removed = self.local.delete_older_than(cutoff)
        except (sqlite3.Error, RuntimeError) as exc:
            logger.warning("image eviction skipped: %s", exc)
            return 0
        if removed:
            logger.info("evicted %d local image(s) older than %d days", removed, self.retention_days)
        return removed

    def close(self) -> None:
        self.local.close()


def create_blob_store_from_env(environ: Mapping[str, str] | None = None) -> BlobStore:
    env = os.environ if environ is None else environ
    local = SqliteImageStore(
        env.get("PACKLAB_IMAGE_DB_PATH", "/tmp/packlab/images.sqlite3").strip() or "/tmp/packlab/images.sqlite3"
    ).open()
    try:
        remote = create_image_storage_from_env(env)
    except RuntimeError:
        if remote_required(env):
            local.close()
            raise
        logger.warning("remote image storage unavailable; images will be stored locally")
        remote = None
    config = object_storage_config_from_env(env)
    return BlobStore(
        local=local,
        remote=remote,
        fetcher=HttpImageFetcher(timeout_s=config.http_timeout_s),
        retention_days=env_int(env, "PACKLAB_IMAGE_RETENTION_DAYS", default=DEFAULT_RETENTION_DAYS),
    )
