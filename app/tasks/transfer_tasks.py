"""
Transfer follow-up Celery tasks.

Keeps asking the provider about transfers the wallet stopped watching
(user cancelled while processing, or status polling gave up).
"""

import asyncio
import logging

from app.config import settings
from app.redis_client import create_redis
from app.services.abandoned_transfers import AbandonedTransferTracker
from app.services.ramp_client import RampClient
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _check_abandoned() -> dict:
    redis_client = create_redis()
    ramp_client = RampClient()
    try:
        tracker = AbandonedTransferTracker(redis_client)
        return await tracker.check_all(ramp_client, settings.ABANDONED_TRANSFER_TTL_HOURS)
    finally:
        await ramp_client.aclose()
        await redis_client.aclose()


@celery_app.task(name="app.tasks.transfer_tasks.check_abandoned_transfers")
def check_abandoned_transfers():
    """
    Poll provider status for every abandoned transfer.

    Celery tasks are synchronous, so the async tracker runs in its own
    event loop.
    """
    loop = asyncio.new_event_loop()
    try:
        result = loop.run_until_complete(_check_abandoned())
        if result["checked"]:
            logger.info(
                "Abandoned transfer check: %d checked, %d settled, %d failed, %d expired, %d pending",
                result["checked"], result["succeeded"], result["failed"],
                result["expired"], result["pending"],
            )
        return result
    except Exception:
        logger.exception("Abandoned transfer check failed")
        raise
    finally:
        loop.close()
