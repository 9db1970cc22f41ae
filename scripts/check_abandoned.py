"""
Manual abandoned-transfer check — runs one check from the command line.

Usage:
    python scripts/check_abandoned.py            # check every abandoned transfer
    python scripts/check_abandoned.py --list     # only list them

Useful for following up on cancelled transfers without waiting for the
Celery beat schedule.
"""

import argparse
import asyncio
import json
from dataclasses import asdict

from app.config import settings
from app.redis_client import create_redis
from app.services.abandoned_transfers import AbandonedTransferTracker
from app.services.ramp_client import RampClient


async def main(list_only: bool = False):
    """Run a single abandoned transfer check and print the report."""
    redis_client = create_redis()
    ramp_client = RampClient()
    tracker = AbandonedTransferTracker(redis_client)
    try:
        records = await tracker.list()
        print(f"Abandoned transfers: {len(records)}")
        for record in records:
            print(json.dumps(asdict(record), indent=2))

        if list_only or not records:
            return

        result = await tracker.check_all(ramp_client, settings.ABANDONED_TRANSFER_TTL_HOURS)
        print("\n=== Abandoned Transfer Report ===")
        print(json.dumps(result, indent=2))
    finally:
        await ramp_client.aclose()
        await redis_client.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--list", action="store_true", help="list without checking")
    args = parser.parse_args()
    asyncio.run(main(list_only=args.list))
