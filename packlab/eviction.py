from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass

from packlab.blob_store import BlobStore
from packlab.runtime_profile import env_int

logger = logging.getLogger(__name__)


@dataclass
class EvictionRunStats:
    sweeps: int = 0
    evicted: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"sweeps": self.sweeps, "evicted": self.evicted}


class EvictionScheduler:
    """Periodic sweep of expired local images that can be started, stopped and driven by hand."""

    def __init__(self, *, blob_store: BlobStore, interval_s: float = 24 * 60 * 60) -> None:
        self.blob_store = blob_store
        self.interval_s = max(0.01, float(interval_s))
        self.stats = EvictionRunStats()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def run_once(self) -> int:
        evicted = self.blob_store.sweep_expired()
        with self._lock:
            self.stats.sweeps += 1
            self.stats.evicted += evicted
        return evicted

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            self._stop.wait(self.interval_s)

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="image-eviction", daemon=True)
        self._thread.start()
        logger.info("image eviction scheduler started interval_s=%s", self.interval_s)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None

    def run_forever(self, *, stop_after_iterations: int | None = None) -> dict[str, int]:
        iterations = 0
        while not self._stop.is_set():
            self.run_once()
            iterations += 1
            if stop_after_iterations is not None and iterations >= max(1, stop_after_iterations):
                break
            self._stop.wait(self.interval_s)
        return self.stats.as_dict()


def create_eviction_scheduler_from_env(
    *,
    blob_store: BlobStore,
    environ: Mapping[str, str] | None = None,
) -> EvictionScheduler:
    env = os.environ if environ is None else environ
    interval_s = env_int(env, "PACKLAB_EVICTION_INTERVAL_S", default=24 * 60 * 60, minimum=1)
    return EvictionScheduler(blob_store=blob_store, interval_s=interval_s)
