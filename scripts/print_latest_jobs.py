#!/usr/bin/env python3
"""
Print the most recently discovered postings from the job_hunt store files.

    python scripts/print_latest_jobs.py            # 15 newest from local/state/*.csv
    python scripts/print_latest_jobs.py 40
"""

import glob
import os
import sys
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent  # ../scripts -> project root
sys.path.insert(0, str(PROJECT_ROOT))

from modules.job_hunt.lib.store import StoreError, load_records  # noqa: E402

STATE_DIR = PROJECT_ROOT / "local" / "state"


def format_timestamp(iso_str: str) -> str:
    """ISO-8601 UTC -> readable local time; anything else is shown as stored."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except ValueError:
        return iso_str or "?"
    return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")


def latest(path: str, limit: int):
    records = load_records(path)
    return sorted(records, key=lambda r: r.first_seen_at, reverse=True)[:limit]


def main() -> int:
    limit = 15
    if len(sys.argv) > 1:
        try:
            limit = int(sys.argv[1])
            if limit <= 0:
                raise ValueError
        except ValueError:
            print(f"Invalid limit: {sys.argv[1]}. Using default (15).", file=sys.stderr)
            limit = 15

    files = sorted(glob.glob(str(STATE_DIR / "*.csv")))
    if not files:
        print(f"No store files found in {STATE_DIR}")
        return 1

    for path in files:
        print("=" * 80)
        print(f"STORE: {os.path.basename(path)}")
        print("-" * 80)
        try:
            entries = latest(path, limit)
        except StoreError as e:
            print(f"  Cannot read {path}: {e}")
            continue
        if not entries:
            print("  No postings.")
            continue
        for i, rec in enumerate(entries, 1):
            print(f"{i:2d}. [{format_timestamp(rec.first_seen_at)}] {rec.company}")
            print(f"     Title: {rec.title}")
            print(f"     Link:  {rec.apply_link or '-'}")
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
