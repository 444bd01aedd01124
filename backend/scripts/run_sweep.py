#!/usr/bin/env python3
"""
Expiration Sweep Script
Runs one lease expiration / debt maturity sweep. Meant for crontab.

Usage:
    python -m scripts.run_sweep [--as-of YYYY-MM-DD] [--interval-hours N]

Example crontab entry (daily at 09:00):
    0 9 * * * cd /srv/alert-engine/backend && python -m scripts.run_sweep
"""
import argparse
import json
import os
import sys
from datetime import date, datetime, time, timezone

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alert_engine.database import SessionLocal, init_db
from alert_engine.logging_config import configure_logging
from alert_engine.services.alerts import ExpirationScanner, validate_sweep_interval


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run one expiration/maturity alert sweep.")
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Replay the sweep for this date (default: today, UTC)",
    )
    parser.add_argument(
        "--interval-hours",
        type=float,
        default=None,
        help="Cron cadence to validate (default: SWEEP_INTERVAL_HOURS)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging()

    try:
        validate_sweep_interval(args.interval_hours)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    init_db()

    now = None
    if args.as_of is not None:
        now = datetime.combine(args.as_of, time.min, tzinfo=timezone.utc)

    db = SessionLocal()
    try:
        summary = ExpirationScanner(db).run_sweep(now=now)
    finally:
        db.close()

    print(json.dumps(summary, indent=2))
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
