#!/usr/bin/env python3
"""
Auto-close poker games that have started and expire stale notification tokens, once.
Point cron (or any scheduler) at it, e.g. every 5 minutes.
Run: cd backend && python scripts/run_sweep.py
"""
import logging
import sys
from pathlib import Path

# backend/scripts/ -> backend/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from clubhouse.config import settings
from clubhouse.scheduler.sweep_job import run_sweep_job


def main():
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    result = run_sweep_job()
    if result is None:
        print("Sweep failed; see log.")
        sys.exit(1)
    print(f"Done. games_closed={result['games_closed']}, tokens_expired={result['tokens_expired']}")


if __name__ == "__main__":
    main()
