"""
Integration tests for AbandonedTransferTracker — real Redis.

Tests: mark/list round trip, resolve, check_all removing terminal entries.

Prerequisites:
  A Redis server at REDIS_HOST:REDIS_PORT (defaults localhost:6379).
"""

import os
import socket
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from app.schemas.ramp import TransferStatus, TransferStatusResponse
from app.services.abandoned_transfers import ABANDONED_KEY, AbandonedTransferTracker


# ── Skip if Redis not available ────────────────────────────────────────────

def _port_open(host: str, port: int, timeout: float = 1.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


_REDIS_HOST = os.environ.get("REDIS_HOST", "localhost")
_REDIS_PORT = int(os.environ.get("REDIS_PORT", "6379"))
_REDIS_UP = _port_open(_REDIS_HOST, _REDIS_PORT)

pytestmark = pytest.mark.skipif(
    not _REDIS_UP,
    reason=f"Tracker tests require Redis ({_REDIS_HOST}:{_REDIS_PORT}).",
)


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def redis_client():
    """Provide a real Redis client; the tracker key is removed after each test."""
    if not _REDIS_UP:
        pytest.skip("Redis not available")
    import redis.asyncio as aioredis

    url = os.environ.get("REDIS_URL", f"redis://{_REDIS_HOST}:{_REDIS_PORT}")
    r = aioredis.from_url(url, decode_responses=True)
    await r.delete(ABANDONED_KEY)
    yield r
    await r.delete(ABANDONED_KEY)
    await r.aclose()


@pytest.fixture
def tracker(redis_client) -> AbandonedTransferTracker:
    return AbandonedTransferTracker(redis_client)


# ── Tests ──────────────────────────────────────────────────────────────────


class TestTrackerRoundTrip:

    @pytest.mark.asyncio
    async def test_mark_then_list(self, tracker):
        await tracker.mark("tr-1", "sell", "0xabc")
        await tracker.mark("tr-2", "buy")

        records = {r.transfer_id: r for r in await tracker.list()}

        assert set(records) == {"tr-1", "tr-2"}
        assert records["tr-1"].tx_hash == "0xabc"
        assert records["tr-2"].tx_hash is None

    @pytest.mark.asyncio
    async def test_resolve_removes_field(self, tracker, redis_client):
        await tracker.mark("tr-1", "sell")

        assert await tracker.resolve("tr-1") is True
        assert await redis_client.hlen(ABANDONED_KEY) == 0

    @pytest.mark.asyncio
    async def test_check_all_keeps_pending(self, tracker):
        await tracker.mark("tr-done", "sell")
        await tracker.mark("tr-open", "pay_bill")
        ramp = AsyncMock()
        ramp.get_transfer_status = AsyncMock(side_effect=lambda tid: TransferStatusResponse(
            transfer_id=tid,
            status=(TransferStatus.COMPLETE if tid == "tr-done" else TransferStatus.STARTED).value,
        ))

        summary = await tracker.check_all(ramp, ttl_hours=72)

        assert summary["succeeded"] == 1
        assert summary["pending"] == 1
        assert [r.transfer_id for r in await tracker.list()] == ["tr-open"]
