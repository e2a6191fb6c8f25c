#!/usr/bin/env python3
"""
Grant a user premium for a number of months (support / comp accounts).

Sets plan=premium and trial_end to now + months * 30 days, so the grant lapses
on its own and the user falls back to free on their next request.

Run from project root with DATABASE_URL set:
  python scripts/upgrade_user.py someone@example.com 12
"""
import argparse
import sys
from datetime import timedelta
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv(project_root / ".env")

from dreamcatcher.core.plan_limits import PLAN_PREMIUM
from dreamcatcher.db.session import SessionLocal
from dreamcatcher.models.user import User
from dreamcatcher.utils.periods import utcnow


def main() -> int:
    parser = argparse.ArgumentParser(description="Upgrade a user to premium for N months.")
    parser.add_argument("email")
    parser.add_argument("months", nargs="?", type=int, default=12)
    args = parser.parse_args()

    if args.months < 1:
        print("ERROR: months must be at least 1")
        return 1

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email.ilike(args.email.strip())).first()
        if not user:
            print(f"❌ User not found with email: {args.email}")
            return 1

        print(f"Found user: {user.email} (ID: {user.id}), current plan: {user.plan}")
        user.plan = PLAN_PREMIUM
        user.trial_end = utcnow() + timedelta(days=30 * args.months)
        db.commit()
        print(f"✅ Upgraded to premium until {user.trial_end.isoformat()}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
