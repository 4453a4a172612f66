#!/usr/bin/env python3
"""
Subscribe an email from the command line through the public API.
Usage: python scripts/subscribe_cli.py user@example.com [--source api] [--tag news]
"""
import argparse
import json
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from silksong_site.client import NewsletterClient  # noqa: E402

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Email subscription CLI tool")
    parser.add_argument("email")
    parser.add_argument("--source", default="api")
    parser.add_argument("--tag", action="append", dest="tags", default=[])
    parser.add_argument("--base-url", default=API_BASE_URL)
    parser.add_argument("--retries", type=int, default=3)
    parser.add_argument("--timeout", type=float, default=10.0)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    print(f"📧 Subscribing email: {args.email}")
    print(f"🔗 Endpoint: {args.base_url}/api/subscribe\n")

    with NewsletterClient(args.base_url, timeout=args.timeout, retries=args.retries) as client:
        outcome = client.subscribe(args.email, source=args.source, tags=args.tags)

    print(f"📊 Response Status: {outcome.status_code} (after {outcome.attempts} attempt(s))")
    if outcome.data:
        print("\n📄 Response Data:")
        print(json.dumps(outcome.data, indent=2, default=str))

    if outcome.success:
        print(f"\n✅ SUCCESS: {outcome.message}")
        subscription = outcome.data.get("subscription") or {}
        if subscription:
            print(f"   ID: {subscription.get('id')}")
            print(f"   Status: {subscription.get('status')}")
        return 0

    print(f"\n❌ FAILED: {outcome.message or 'Unknown error'}")
    if outcome.code:
        print(f"   Error Code: {outcome.code}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
