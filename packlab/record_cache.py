from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any


class RecordCache:
    """Short-lived in-memory copy of the last remote read.

    Absorbs bursts of repeated reads; never a source of truth. Writers
    invalidate it, and concurrent writers simply overwrite each other.
    """

    def __init__(self, *, ttl_ms: int = 5000, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_ms = max(0, int(ttl_ms))
        self._clock = clock
        self._lock = threading.Lock()
        self._tests: list[dict[str, Any]] | None = None
        self._stored_at = 0.0

    def get_fresh(self) -> list[dict[str, Any]] | None:
        with self._lock:
            if self._tests is None:
                return None
            age_ms = (self._clock() - self._stored_at) * 1000.0
            if age_ms >= self.ttl_ms:
                return None
            return list(self._tests)

    def store(self, tests: list[dict[str, Any]]) -> None:
        with self._lock:
            self._tests = list(tests)
            self._stored_at = self._clock()

    def invalidate(self) -> None:
        with self._lock:
            self._tests = None
            self._stored_at = 0.0
