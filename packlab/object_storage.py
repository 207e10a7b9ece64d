from __future__ import annotations

import os
import re
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import requests

from packlab.errors import ImageFetchError, RemoteUnavailableError
from packlab.runtime_profile import env_float

DEFAULT_CONTENT_TYPE = "image/jpeg"


def _clean_segment(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._/-]+", "_", value.strip()).strip("/")
    return cleaned


def build_image_filename(*, now_ms: int | None = None, suffix: str | None = None) -> str:
    """Time-ordered, collision-resistant object name: ``<epoch ms>-<random hex>.jpg``."""
    stamp = int(time.time() * 1000) if now_ms is None else int(now_ms)
    token = suffix or uuid.uuid4().hex[:10]
    return f"{stamp}-{token}.jpg"


@dataclass(frozen=True)
class ObjectStorageConfig:
    backend: str
    bucket: str
    prefix: str
    endpoint: str
    region: str
    access_key: str
    secret_key: str
    force_path_style: bool
    public_url: str
    http_timeout_s: float = 30.0


class S3ImageStorage:
    """Uploads images to an S3-compatible bucket and returns their public URL."""

    backend_name = "s3"

    def __init__(self, *, config: ObjectStorageConfig) -> None:
        try:
            import boto3  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("boto3 is required for s3 object storage backend") from exc
        if not config.bucket.strip():
            raise ValueError("OBJECT_STORAGE_BUCKET must not be empty")
        self._bucket = config.bucket.strip()
        self._prefix = _clean_segment(config.prefix)
        self._public_base = self._resolve_public_base(config)
        session = boto3.session.Session(
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
            region_name=config.region or None,
        )
        self._client = session.client(
            "s3",
            endpoint_url=config.endpoint or None,
            config=boto3.session.Config(s3={"addressing_style": "path" if config.force_path_style else "auto"}),
        )

    def _resolve_public_base(self, config: ObjectStorageConfig) -> str:
        if config.public_url.strip():
            return config.public_url.strip().rstrip("/")
        if config.endpoint.strip():
            return f"{config.endpoint.strip().rstrip('/')}/{self._bucket}"
        region = config.region.strip() or "us-east-1"
        return f"https://{self._bucket}.s3.{region}.amazonaws.com"

    def _build_key(self, filename: str) -> str:
        if self._prefix:
            return f"{self._prefix}/{filename}"
        return filename

    def public_url_for_key(self, key: str) -> str:
        return f"{self._public_base}/{key}"

    def put_image(self, content_bytes: bytes, *, content_type: str = DEFAULT_CONTENT_TYPE) -> str:
        key = self._build_key(build_image_filename())
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=content_bytes,
                ContentType=content_type,
            )
        except Exception as exc:
            raise RemoteUnavailableError(f"image upload failed: {exc}") from exc
        return self.public_url_for_key(key)


class HttpImageFetcher:
    """Fetches remote images by URL; only successful HTTP responses count."""

    def __init__(self, *, timeout_s: float = 30.0, session: Any | None = None) -> None:
        self._timeout_s = timeout_s
        self._session = session or requests.Session()

    def fetch(self, url: str) -> bytes:
        try:
            response = self._session.get(url, timeout=self._timeout_s)
        except requests.RequestException as exc:
            raise ImageFetchError(f"image fetch failed: {exc}") from exc
        if not 200 <= int(response.status_code) < 300:
            raise ImageFetchError(
                f"image fetch failed with HTTP {response.status_code}",
                status_code=int(response.status_code),
            )
        return response.content


def object_storage_config_from_env(environ: Mapping[str, str] | None = None) -> ObjectStorageConfig:
    env = os.environ if environ is None else environ
    return ObjectStorageConfig(
        backend=env.get("PACKLAB_OBJECT_STORAGE_BACKEND", "none").strip().lower() or "none",
        bucket=env.get("OBJECT_STORAGE_BUCKET", "test-images").strip() or "test-images",
        prefix=env.get("OBJECT_STORAGE_PREFIX", "").strip(),
        endpoint=env.get("OBJECT_STORAGE_ENDPOINT", "").strip(),
        region=env.get("OBJECT_STORAGE_REGION", "").strip(),
        access_key=env.get("OBJECT_STORAGE_ACCESS_KEY", "").strip(),
        secret_key=env.get("OBJECT_STORAGE_SECRET_KEY", "").strip(),
        force_path_style=env.get("OBJECT_STORAGE_FORCE_PATH_STYLE", "true").strip().lower()
        not in {"0", "false", "no", "off"},
        public_url=env.get("OBJECT_STORAGE_PUBLIC_URL", "").strip(),
        http_timeout_s=env_float(env, "PACKLAB_HTTP_TIMEOUT_S", default=30.0, minimum=0.1),
    )


def create_image_storage_from_env(environ: Mapping[str, str] | None = None) -> S3ImageStorage | None:
    config = object_storage_config_from_env(environ)
    if config.backend in {"none", "local"}:
        return None
    if config.backend == "s3":
        return S3ImageStorage(config=config)
    raise RuntimeError(f"unsupported object storage backend: {config.backend}")
