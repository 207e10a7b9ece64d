from __future__ import annotations

from typing import Any


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status
        self.details = details


class RemoteUnavailableError(ApiError):
    """Remote record or object store could not be reached or refused the call."""

    def __init__(self, message: str = "remote store unavailable") -> None:
        super().__init__(
            code="REMOTE_UNAVAILABLE",
            message=message,
            error_class="transient",
            retryable=True,
            http_status=503,
        )


class ImageFetchError(ApiError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(
            code="IMAGE_FETCH_FAILED",
            message=message,
            error_class="transient",
            retryable=True,
            http_status=502,
        )
        self.status_code = status_code
