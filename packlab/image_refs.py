"""Image identifiers.

Persisted records carry three historical identifier forms:

* ``https://...`` / ``http://...`` -- object in the remote bucket, fetched over HTTP
* ``idb-<n>`` -- row ``n`` of the local fallback image store
* a bare integer -- row ``n`` of the local store, written before remote uploads existed

``ImageRef`` parses those once and serializes back to the same forms at the
storage boundary.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal

LOCAL_PREFIX = "idb-"

_LOCAL_RE = re.compile(r"idb-(\d+)")

ImageKind = Literal["remote", "local", "legacy"]


@dataclass(frozen=True)
class ImageRef:
    kind: ImageKind
    url: str | None = None
    key: int | None = None

    @classmethod
    def remote(cls, url: str) -> ImageRef:
        return cls(kind="remote", url=url)

    @classmethod
    def local(cls, key: int) -> ImageRef:
        return cls(kind="local", key=int(key))

    @classmethod
    def legacy(cls, key: int) -> ImageRef:
        return cls(kind="legacy", key=int(key))

    @classmethod
    def parse(cls, identifier: Any) -> ImageRef | None:
        """Return the ref for a stored identifier, or None when it is absent or malformed."""
        if identifier is None or isinstance(identifier, bool):
            return None
        if isinstance(identifier, ImageRef):
            return identifier
        if isinstance(identifier, int):
            return cls.legacy(identifier) if identifier >= 0 else None
        if not isinstance(identifier, str):
            return None
        value = identifier.strip()
        if value.startswith(("http://", "https://")):
            return cls.remote(value)
        match = _LOCAL_RE.fullmatch(value)
        if match:
            return cls.local(int(match.group(1)))
        return None

    @property
    def is_local(self) -> bool:
        return self.kind in ("local", "legacy")

    def to_storage(self) -> str | int:
        if self.kind == "remote":
            return str(self.url)
        if self.kind == "local":
            return f"{LOCAL_PREFIX}{self.key}"
        return int(self.key or 0)

    def __str__(self) -> str:
        return str(self.to_storage())
