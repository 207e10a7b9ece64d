from __future__ import annotations

from collections.abc import Iterable
from typing import Any


def _filter(tests: Iterable[dict[str, Any]], *, brand: str, sku: str) -> list[dict[str, Any]]:
    selected = list(tests)
    if brand != "all":
        selected = [t for t in selected if t.get("brandName") == brand]
    if sku != "all":
        selected = [t for t in selected if t.get("productSku") == sku]
    return selected


def failure_rate(failed: int, inspected: int) -> float:
    if inspected <= 0:
        return 0.0
    return round(failed / inspected * 100, 1)


def calculate_statistics(
    tests: Iterable[dict[str, Any]],
    *,
    brand: str = "all",
    sku: str = "all",
) -> dict[str, Any]:
    selected = _filter(tests, brand=brand, sku=sku)
    total_cases = 0
    inspected = 0
    failed = 0
    by_mode: dict[str, int] = {}
    for test in selected:
        for case in test.get("cases") or []:
            total_cases += 1
            inspected += int(case.get("totalUnitsInspected") or 0)
            for failure in case.get("productFailures") or []:
                units = int(failure.get("unitsFailed") or 0)
                failed += units
                mode = str(failure.get("mode") or "")
                by_mode[mode] = by_mode.get(mode, 0) + units
    return {
        "totalTests": len(selected),
        "totalCases": total_cases,
        "totalInspectedProducts": inspected,
        "totalFailedProducts": failed,
        "failureRate": failure_rate(failed, inspected),
        "failureModeData": by_mode,
    }


def benchmark(tests: Iterable[dict[str, Any]], test_ids: Iterable[int]) -> list[dict[str, Any]]:
    """Side-by-side failure figures for the selected tests, in store order."""
    wanted = set(test_ids)
    rows: list[dict[str, Any]] = []
    for test in tests:
        if test.get("id") not in wanted:
            continue
        stats = calculate_statistics([test])
        rows.append(
            {
                "id": test.get("id"),
                "productName": f"{test.get('brandName', '')} - {test.get('productName', '')}",
                "totalFailedProducts": stats["totalFailedProducts"],
                "failureRate": stats["failureRate"],
            }
        )
    return rows


def list_brands(tests: Iterable[dict[str, Any]]) -> list[str]:
    return sorted({str(t.get("brandName")) for t in tests if t.get("brandName")})


def list_skus(tests: Iterable[dict[str, Any]], *, brand: str = "all") -> list[str]:
    return sorted({str(t.get("productSku")) for t in _filter(tests, brand=brand, sku="all") if t.get("productSku")})
