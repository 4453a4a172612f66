#!/usr/bin/env python3
"""
Delete pending subscriptions whose confirmation link expired long ago.
Run: python scripts/purge_expired_pending.py [--days 30] [--dry-run]
"""
import argparse
import sys
from datetime import timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from silksong_site.adapters.sqlalchemy_adapter import SqlAlchemySubscriptionAdapter  # noqa: E402
from silksong_site.database import SessionLocal, create_tables  # noqa: E402
from silksong_site.models.subscription import STATUS_PENDING, utcnow  # noqa: E402


def purge(adapter, days: int, dry_run: bool = False) -> int:
    cutoff = utcnow() - timedelta(days=days)
    stale = [
        sub for sub in adapter.list_subscriptions(status=STATUS_PENDING, until=cutoff)
        if sub.subscribed_at and sub.subscribed_at <= cutoff
    ]
    print(f"🔍 {len(stale)} pending subscription(s) older than {days} days")

    deleted = 0
    for sub in stale:
        if dry_run:
            print(f"   would delete {sub.id}")
            continue
        if adapter.delete(sub.id):
            deleted += 1
    return deleted


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--days", type=int, default=30)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)

    create_tables()
    db = SessionLocal()
    try:
        deleted = purge(SqlAlchemySubscriptionAdapter(db), args.days, args.dry_run)
    finally:
        db.close()

    print(f"✅ Deleted {deleted} subscription(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
