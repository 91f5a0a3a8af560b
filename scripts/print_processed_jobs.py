#!/usr/bin/env python3
"""
print_processed_jobs.py - show the most recently admitted ids in a job_relay dedup store.

Usage:
    python scripts/print_processed_jobs.py [PATH] [--limit N]

PATH defaults to $JOB_RELAY_STATE_PATH, then ./local/state/processed_jobs.json.
"""

import argparse
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from modules.job_relay.lib.store import DedupStore  # noqa: E402

DEFAULT_PATH = PROJECT_ROOT / "local" / "state" / "processed_jobs.json"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print latest entries of the job_relay dedup store")
    parser.add_argument("path", nargs="?", default=os.getenv("JOB_RELAY_STATE_PATH") or str(DEFAULT_PATH))
    parser.add_argument("--limit", type=int, default=15, help="How many entries to show")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if not Path(args.path).exists():
        print(f"No store at {args.path}", file=sys.stderr)
        return 1

    snapshot = DedupStore(args.path).load()
    entries = sorted(snapshot.values(), key=lambda e: e.admitted_at, reverse=True)
    now = datetime.now(timezone.utc)

    print(f"{args.path}: {len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")
    print("-" * 80)
    for e in entries[: args.limit]:
        age_h = (now - e.admitted_at).total_seconds() / 3600
        print(f"{e.admitted_at.strftime('%Y-%m-%d %H:%M:%S')}  ({age_h:6.1f}h ago)  {e.id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
