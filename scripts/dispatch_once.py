#!/usr/bin/env python3
"""Run one dispatch cycle and print its summary.

Usage examples:
    # Dispatch for every owner, using wall-clock now
    uv run python scripts/dispatch_once.py

    # Only one owner's tasks, JSON output for tooling
    uv run python scripts/dispatch_once.py --owner 5f2c... --json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rudder.app import create_app
from rudder.config import settings
from rudder.store import StoreError


async def _run(owner_id: str | None) -> dict:
    app = create_app()
    try:
        summary = await app.dispatch_run.run(owner_id=owner_id)
        return summary.to_dict()
    finally:
        await app.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one push-notification dispatch cycle.")
    parser.add_argument("--owner", help="Only dispatch for this owner id")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level),
    )

    try:
        result = asyncio.run(_run(args.owner))
    except StoreError as exc:
        print(f"Dispatch failed: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(f"Local date:    {result['local_date']}")
        print(f"Window:        {result['window']}")
        print(f"Tasks:         {result['instances']}")
        print(f"Deferred:      {result['deferred']}")
        print(f"Subscriptions: {result['subscriptions']}")
        print(f"Sent:          {result['sent']} / {result['attempted']}")
        for status, count in sorted(result["by_status"].items()):
            print(f"  {status}: {count}")
        if result["pruned_subscriptions"]:
            print(f"Pruned:        {', '.join(result['pruned_subscriptions'])}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
