from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from packlab.blob_store import BlobStore, create_blob_store_from_env
from packlab.errors import ApiError
from packlab.eviction import create_eviction_scheduler_from_env
from packlab.object_storage import DEFAULT_CONTENT_TYPE
from packlab.record_store import RecordStore, create_record_store_from_env, generate_test_id
from packlab.runtime_profile import env_int
from packlab.schemas import (
    BenchmarkRequest,
    PackagingTestCreateRequest,
    error_envelope,
    success_envelope,
)
from packlab.statistics import benchmark, calculate_statistics, list_brands, list_skus


def _trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def _error_response(
    request: Request,
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            message=message,
            error_class=error_class,
            retryable=retryable,
            trace_id=_trace_id_from_request(request),
            details=details,
        ),
    )


def _degraded_write_error(exc: Exception, *, test_id: Any, local_effect: str) -> ApiError:
    if isinstance(exc, ApiError):
        code, message = exc.code, exc.message
    else:
        code, message = "REMOTE_WRITE_FAILED", str(exc) or type(exc).__name__
    return ApiError(
        code=code,
        message=message,
        error_class="transient",
        retryable=True,
        http_status=503,
        details={"test_id": test_id, local_effect: True},
    )


def _image_identifier(raw: str) -> str | int:
    value = raw.strip()
    if value.isdigit():
        return int(value)
    return value


def create_app(
    *,
    record_store: RecordStore | None = None,
    blob_store: BlobStore | None = None,
) -> FastAPI:
    owns_blob_store = blob_store is None
    records = record_store or create_record_store_from_env()
    images = blob_store or create_blob_store_from_env()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        scheduler = None
        if env_int(os.environ, "PACKLAB_EVICTION_ENABLED", default=1) > 0:
            scheduler = create_eviction_scheduler_from_env(blob_store=images)
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.stop(timeout=5)
            if owns_blob_store:
                images.close()

    app = FastAPI(title="Packaging Test Records API", version="0.1.0", lifespan=lifespan)
    app.state.record_store = records
    app.state.blob_store = images

    cors_origins = os.environ.get("CORS_ALLOW_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173")
    allow_origins = [x.strip() for x in cors_origins.split(",") if x.strip()]
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        response = await call_next(request)
        response.headers["x-trace-id"] = _trace_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        return _error_response(
            request,
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            status_code=exc.http_status,
            details=exc.details,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid payload",
            error_class="validation",
            retryable=False,
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                error_class="validation",
                retryable=False,
                status_code=404,
            )
        return _error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            error_class="validation",
            retryable=False,
            status_code=exc.status_code,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, _trace_id_from_request(request))

    @app.get("/api/v1/health")
    def health_api(request: Request) -> dict[str, object]:
        return success_envelope(
            {
                "status": "ok",
                "remote_records": records.remote is not None,
                "remote_images": images.remote is not None,
            },
            _trace_id_from_request(request),
        )

    @app.get("/api/v1/tests")
    def list_tests(request: Request):
        db = records.get_database()
        return success_envelope(
            {"tests": db["tests"], "source": records.last_source},
            _trace_id_from_request(request),
        )

    @app.post("/api/v1/tests")
    def create_test(payload: PackagingTestCreateRequest, request: Request):
        test = payload.model_dump()
        if test.get("id") is None:
            test["id"] = generate_test_id()
        try:
            created = records.add_test(test)
        except Exception as exc:
            raise _degraded_write_error(exc, test_id=test["id"], local_effect="saved_locally") from exc
        return JSONResponse(
            status_code=201,
            content=success_envelope(created, _trace_id_from_request(request)),
        )

    @app.get("/api/v1/tests/{test_id}")
    def get_test(test_id: int, request: Request):
        test = records.get_test_by_id(test_id)
        if test is None:
            raise ApiError(
                code="TEST_NOT_FOUND",
                message="test not found",
                error_class="validation",
                retryable=False,
                http_status=404,
            )
        return success_envelope(test, _trace_id_from_request(request))

    @app.delete("/api/v1/tests/{test_id}")
    def delete_test(test_id: int, request: Request):
        try:
            records.delete_test(test_id)
        except Exception as exc:
            raise _degraded_write_error(exc, test_id=test_id, local_effect="removed_locally") from exc
        return success_envelope({"id": test_id, "deleted": True}, _trace_id_from_request(request))

    @app.post("/api/v1/images")
    async def upload_image(request: Request):
        body = await request.body()
        if not body:
            raise ApiError(
                code="IMAGE_EMPTY",
                message="request body must contain image bytes",
                error_class="validation",
                retryable=False,
                http_status=400,
            )
        ref = images.save_image(body)
        return JSONResponse(
            status_code=201,
            content=success_envelope(
                {"image_id": ref.to_storage(), "backend": ref.kind},
                _trace_id_from_request(request),
            ),
        )

    @app.get("/api/v1/images")
    def get_image(image_id: str = Query(..., min_length=1)):
        data = images.get_image(_image_identifier(image_id))
        if data is None:
            raise ApiError(
                code="IMAGE_NOT_FOUND",
                message="image not found",
                error_class="validation",
                retryable=False,
                http_status=404,
            )
        return Response(content=data, media_type=DEFAULT_CONTENT_TYPE)

    @app.get("/api/v1/statistics")
    def statistics(request: Request, brand: str = "all", sku: str = "all"):
        tests = records.get_database()["tests"]
        data = calculate_statistics(tests, brand=brand, sku=sku)
        data["brands"] = list_brands(tests)
        data["skus"] = list_skus(tests, brand=brand)
        return success_envelope(data, _trace_id_from_request(request))

    @app.post("/api/v1/benchmark")
    def run_benchmark(payload: BenchmarkRequest, request: Request):
        tests = records.get_database()["tests"]
        return success_envelope(
            {"items": benchmark(tests, payload.test_ids)},
            _trace_id_from_request(request),
        )

    return app
