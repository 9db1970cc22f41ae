"""
Redis connection setup using redis-py async client.

Configured for Upstash Redis with optional TLS support.
Provides a shared redis instance for the abandoned transfer tracker.
"""

import redis.asyncio as aioredis

from app.config import settings


def create_redis() -> aioredis.Redis:
    """Build a client; workers running their own event loop need a fresh one."""
    url = settings.REDIS_URL
    if settings.REDIS_SSL and url.startswith("redis://"):
        url = "rediss://" + url[len("redis://"):]
    return aioredis.from_url(url, decode_responses=True)


redis = create_redis()
