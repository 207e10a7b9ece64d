#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from packlab.blob_store import create_blob_store_from_env
from packlab.eviction import create_eviction_scheduler_from_env


def main() -> int:
    parser = argparse.ArgumentParser(description="Evict expired images from the local fallback store.")
    parser.add_argument(
        "--iterations",
        type=int,
        default=1,
        help="Stop after N sweeps (0 means run forever).",
    )
    args = parser.parse_args()

    blob_store = create_blob_store_from_env()
    try:
        scheduler = create_eviction_scheduler_from_env(blob_store=blob_store)
        if args.iterations > 0:
            stats = scheduler.run_forever(stop_after_iterations=args.iterations)
        else:
            stats = scheduler.run_forever(stop_after_iterations=None)
    finally:
        blob_store.close()
    print(json.dumps({"success": True, "stats": stats}, ensure_ascii=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
