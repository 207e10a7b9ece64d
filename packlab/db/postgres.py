from __future__ import annotations

from collections.abc import Callable
from typing import Any

from packlab.errors import RemoteUnavailableError


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for the PostgreSQL record store; install psycopg[binary]") from exc
    return psycopg


class PostgresTxRunner:
    """Run callback logic in one PostgreSQL transaction.

    Driver errors are re-raised as ``RemoteUnavailableError`` so callers can
    fall back to local state without knowing about psycopg.
    """

    def __init__(self, dsn: str, *, connect_timeout_s: int = 10) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()
        self._connect_timeout_s = max(1, int(connect_timeout_s))

    def run_in_tx(self, *, fn: Callable[[Any], Any]) -> Any:
        psycopg = _import_psycopg()
        try:
            with psycopg.connect(self._dsn, connect_timeout=self._connect_timeout_s) as conn:
                result = fn(conn)
                conn.commit()
                return result
        except psycopg.Error as exc:
            raise RemoteUnavailableError(f"postgres call failed: {exc}") from exc
