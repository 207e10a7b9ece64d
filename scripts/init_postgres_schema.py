#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from packlab.db.postgres import PostgresTxRunner
from packlab.repositories.packaging_tests import PostgresTestsRepository


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the tests / test_cases / product_failures tables")
    parser.add_argument("--dsn", default=os.getenv("POSTGRES_DSN", ""), help="PostgreSQL DSN")
    parser.add_argument("--print-only", action="store_true", help="print the DDL instead of applying it")
    args = parser.parse_args()

    dsn = str(args.dsn or "").strip()
    if args.print_only:
        repo = PostgresTestsRepository(tx_runner=PostgresTxRunner(dsn or "postgresql://localhost/unused"))
        print(repo.schema_sql())
        return 0
    if not dsn:
        raise SystemExit("POSTGRES_DSN is required (pass --dsn or set env)")

    repo = PostgresTestsRepository(tx_runner=PostgresTxRunner(dsn))
    repo.ensure_schema()
    print(json.dumps({"success": True, "tables": ["tests", "test_cases", "product_failures"]}, ensure_ascii=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
