#!/usr/bin/env python3
"""
Delete a user and all of their reservations, waitlist entries, tokens and queued messages.
Run from backend dir:
  python scripts/purge_user.py someone@example.com
"""
import argparse
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from clubhouse.core.errors import UserNotFound
from clubhouse.db.session import SessionLocal
from clubhouse.services.admin_service import purge_user


def main():
    parser = argparse.ArgumentParser(description="Purge a user and everything they own.")
    parser.add_argument("user_id")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        counts = purge_user(db, args.user_id)
    except UserNotFound as e:
        print(e)
        sys.exit(1)
    finally:
        db.close()
    print("Done. " + ", ".join(f"{table}={n}" for table, n in counts.items()))


if __name__ == "__main__":
    main()
