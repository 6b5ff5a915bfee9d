#!/usr/bin/env python3
"""
Print slot statuses for a date and resource type (debugging availability rules).
Run: cd backend && python scripts/show_availability.py 2026-10-17 mahjong
"""
import argparse
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from clubhouse.core.clock import SystemClock
from clubhouse.db.session import SessionLocal
from clubhouse.services.availability_service import AvailabilityService


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("date", help="YYYY-MM-DD")
    parser.add_argument("type", choices=["bar", "mahjong", "poker"])
    args = parser.parse_args()

    db = SessionLocal()
    try:
        service = AvailabilityService(db, SystemClock())
        for state in service.compute_status(date.fromisoformat(args.date), args.type):
            marker = "" if state.selectable else " (end only)"
            print(f"{state.time}  {state.status}{marker}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
