from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CaseDamagePayload(BaseModel):
    type: str = ""
    description: str = ""
    imageId: str | int | None = None


class ProductFailurePayload(BaseModel):
    mode: str = ""
    unitsFailed: int = Field(default=0, ge=0)
    imageId: str | int | None = None


class CasePayload(BaseModel):
    position: str = ""
    totalUnitsInspected: int = Field(default=0, ge=0)
    caseDamage: CaseDamagePayload = Field(default_factory=CaseDamagePayload)
    productFailures: list[ProductFailurePayload] = Field(default_factory=list)


class PackagingTestCreateRequest(BaseModel):
    id: int | None = Field(default=None, ge=1)
    testType: str = Field(min_length=1)
    dateOfTest: str = Field(min_length=1)
    testerName: str = ""
    brandName: str = ""
    productName: str = ""
    productSku: str = ""
    testNotes: str = ""
    overallConclusion: str = ""
    recommendations: str = ""
    transportMethod: str = ""
    originLocation: str = ""
    destinationLocation: str = ""
    transportDuration: str = ""
    cases: list[CasePayload] = Field(default_factory=list)


class BenchmarkRequest(BaseModel):
    test_ids: list[int] = Field(min_length=1)


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
