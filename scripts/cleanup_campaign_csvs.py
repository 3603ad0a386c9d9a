#!/usr/bin/env python3
"""
Delete processed and failed campaign CSVs older than CAMPAIGN_CSV_RETENTION_DAYS.

Run from cron, e.g. daily:
    python scripts/cleanup_campaign_csvs.py
    python scripts/cleanup_campaign_csvs.py --dry-run
"""
import argparse
import os
import sys
import time

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from app.core.config import settings

BUCKETS = ("processed", "failed")


def cleanup_campaign_csvs(upload_dir: str = None, retention_days: int = None, dry_run: bool = False) -> int:
    """Remove expired CSVs. Returns the number of files deleted (or that would be)."""
    upload_dir = upload_dir or settings.CAMPAIGN_UPLOAD_DIR
    retention_days = retention_days if retention_days is not None else settings.CAMPAIGN_CSV_RETENTION_DAYS
    cutoff = time.time() - retention_days * 86400

    removed = 0
    for bucket in BUCKETS:
        directory = os.path.join(upload_dir, bucket)
        if not os.path.isdir(directory):
            continue
        for name in os.listdir(directory):
            path = os.path.join(directory, name)
            if not os.path.isfile(path) or os.path.getmtime(path) >= cutoff:
                continue
            if dry_run:
                print(f"Would delete {path}")
            else:
                try:
                    os.remove(path)
                except OSError as e:
                    print(f"Could not delete {path}: {e}")
                    continue
            removed += 1
    return removed


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="List files without deleting them")
    parser.add_argument("--days", type=int, default=None, help="Override CAMPAIGN_CSV_RETENTION_DAYS")
    args = parser.parse_args()
    count = cleanup_campaign_csvs(retention_days=args.days, dry_run=args.dry_run)
    print(f"{'Found' if args.dry_run else 'Deleted'} {count} campaign CSV files older than the retention window")
