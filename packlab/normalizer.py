"""Mapping between the nested application record and the relational rows.

Application records use camelCase keys and nest cases and product failures
inside the test. The remote store keeps three tables (``tests``,
``test_cases``, ``product_failures``) with snake_case columns; the nested
read query returns cases under ``test_cases`` and failures under
``product_failures``.
"""

from __future__ import annotations

from typing import Any

# (application key, column) pairs for the scalar test fields.
TEST_TEXT_FIELDS: tuple[tuple[str, str], ...] = (
    ("testType", "test_type"),
    ("dateOfTest", "date_of_test"),
    ("testerName", "tester_name"),
    ("brandName", "brand_name"),
    ("productName", "product_name"),
    ("productSku", "product_sku"),
    ("testNotes", "test_notes"),
    ("overallConclusion", "overall_conclusion"),
    ("recommendations", "recommendations"),
)

TRANSPORT_FIELDS: tuple[tuple[str, str], ...] = (
    ("transportMethod", "transport_method"),
    ("originLocation", "origin_location"),
    ("destinationLocation", "destination_location"),
    ("transportDuration", "transport_duration"),
)

TEST_COLUMNS: tuple[str, ...] = ("id",) + tuple(col for _, col in TEST_TEXT_FIELDS + TRANSPORT_FIELDS)

CASE_COLUMNS: tuple[str, ...] = (
    "test_id",
    "position",
    "total_units_inspected",
    "case_damage_type",
    "case_damage_description",
    "case_damage_image_url",
)

FAILURE_COLUMNS: tuple[str, ...] = ("case_id", "failure_mode", "units_failed", "image_url")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _count(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _optional_text(value: Any) -> str | None:
    text = _text(value)
    return text or None


def image_id_to_column(image_id: Any) -> str | None:
    if image_id is None or isinstance(image_id, bool):
        return None
    if isinstance(image_id, int):
        return str(image_id)
    text = str(image_id).strip()
    return text or None


def image_id_from_column(value: Any) -> str | int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    # legacy numeric ids travel through the TEXT column as digits
    if text.isdigit():
        return int(text)
    return text


def failure_from_row(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "mode": _text(row.get("failure_mode")),
        "unitsFailed": _count(row.get("units_failed")),
        "imageId": image_id_from_column(row.get("image_url")),
    }


def case_from_row(row: dict[str, Any]) -> dict[str, Any]:
    failures = row.get("product_failures")
    if not isinstance(failures, list):
        failures = []
    return {
        "position": _text(row.get("position")),
        "totalUnitsInspected": _count(row.get("total_units_inspected")),
        "caseDamage": {
            "type": _text(row.get("case_damage_type")),
            "description": _text(row.get("case_damage_description")),
            "imageId": image_id_from_column(row.get("case_damage_image_url")),
        },
        "productFailures": [failure_from_row(x) for x in failures if isinstance(x, dict)],
    }


def record_from_row(row: dict[str, Any]) -> dict[str, Any]:
    """Build an application test record from a nested relational row."""
    test: dict[str, Any] = {"id": row.get("id")}
    for key, column in TEST_TEXT_FIELDS + TRANSPORT_FIELDS:
        test[key] = _text(row.get(column))
    cases = row.get("test_cases")
    if not isinstance(cases, list):
        cases = []
    test["cases"] = [case_from_row(x) for x in cases if isinstance(x, dict)]
    return test


def record_to_row(test: dict[str, Any]) -> dict[str, Any]:
    """Column payload for the ``tests`` insert; nested cases are left out."""
    row: dict[str, Any] = {"id": test.get("id")}
    for key, column in TEST_TEXT_FIELDS:
        row[column] = _text(test.get(key))
    for key, column in TRANSPORT_FIELDS:
        row[column] = _optional_text(test.get(key))
    return row


def case_to_row(case: dict[str, Any], *, test_id: Any) -> dict[str, Any]:
    damage = case.get("caseDamage")
    if not isinstance(damage, dict):
        damage = {}
    return {
        "test_id": test_id,
        "position": _text(case.get("position")),
        "total_units_inspected": _count(case.get("totalUnitsInspected")),
        "case_damage_type": _text(damage.get("type")),
        "case_damage_description": _text(damage.get("description")),
        "case_damage_image_url": image_id_to_column(damage.get("imageId")),
    }


def failure_to_row(failure: dict[str, Any], *, case_id: Any) -> dict[str, Any]:
    return {
        "case_id": case_id,
        "failure_mode": _text(failure.get("mode")),
        "units_failed": _count(failure.get("unitsFailed")),
        "image_url": image_id_to_column(failure.get("imageId")),
    }


def normalize_record(test: dict[str, Any]) -> dict[str, Any]:
    """Fill defaults on a client-built record so it matches what a remote read returns."""
    cases = test.get("cases")
    nested_cases: list[dict[str, Any]] = []
    for case in cases if isinstance(cases, list) else []:
        if not isinstance(case, dict):
            continue
        case_row = case_to_row(case, test_id=test.get("id"))
        failures = case.get("productFailures")
        case_row["product_failures"] = [
            failure_to_row(f, case_id=None) for f in (failures if isinstance(failures, list) else []) if isinstance(f, dict)
        ]
        nested_cases.append(case_row)
    row = record_to_row(test)
    row["test_cases"] = nested_cases
    return record_from_row(row)
