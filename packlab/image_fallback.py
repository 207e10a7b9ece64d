from __future__ import annotations

import sqlite3
import threading
import time
from pathlib import Path


def now_ms() -> int:
    return int(time.time() * 1000)


class SqliteImageStore:
    """Local fallback image store: autoincrement key -> ``{image, timestamp}``.

    The connection is acquired explicitly with ``open()`` (or ``with``) and
    shared by all callers until ``close()``; access is serialized by a lock.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> SqliteImageStore:
        with self._lock:
            if self._conn is not None:
                return self
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS images (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    image BLOB NOT NULL,
                    timestamp INTEGER NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_images_timestamp ON images(timestamp)")
            conn.commit()
            self._conn = conn
            return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SqliteImageStore:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("image store is not open")
        return self._conn

    def add(self, data: bytes, *, timestamp_ms: int | None = None) -> int:
        stamp = now_ms() if timestamp_ms is None else int(timestamp_ms)
        with self._lock:
            conn = self._require_conn()
            cur = conn.execute("INSERT INTO images(image, timestamp) VALUES (?, ?)", (sqlite3.Binary(data), stamp))
            conn.commit()
            return int(cur.lastrowid)

    def get(self, key: int) -> bytes | None:
        with self._lock:
            row = self._require_conn().execute("SELECT image FROM images WHERE id = ?", (int(key),)).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def delete_older_than(self, cutoff_ms: int) -> int:
        with self._lock:
            conn = self._require_conn()
            cur = conn.execute("DELETE FROM images WHERE timestamp <= ?", (int(cutoff_ms),))
            conn.commit()
            return int(cur.rowcount or 0)

    def count(self) -> int:
        with self._lock:
            row = self._require_conn().execute("SELECT COUNT(*) FROM images").fetchone()
        return int(row[0]) if row else 0
