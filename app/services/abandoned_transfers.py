"""
Abandoned transfer tracking.

A transfer is abandoned when the user cancels while it is processing or
when status polling gives up. The provider may still settle it, so its id
is kept in Redis and a periodic task keeps asking the provider until it
reaches a terminal status or goes stale.

Data layout:
  Hash — ``transfers:abandoned``   field=transfer_id  value=JSON record
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from app.core.errors import WalletError
from app.wallet.lifecycle import ReconcileStatus, map_provider_status

if TYPE_CHECKING:
    import redis.asyncio as aioredis

    from app.services.ramp_client import RampClient

logger = logging.getLogger(__name__)

ABANDONED_KEY = "transfers:abandoned"


@dataclass
class AbandonedTransfer:
    transfer_id: str
    flow: str
    tx_hash: str | None
    marked_at: str

    @property
    def marked_datetime(self) -> datetime:
        return datetime.fromisoformat(self.marked_at)


class AbandonedTransferTracker:
    """
    Redis-backed record of transfers nobody is watching any more.

    Accepts a ``redis`` client on construction; falls back to the shared
    client from ``app.redis_client``.
    """

    def __init__(self, redis_client: "aioredis.Redis | None" = None):
        self._redis = redis_client

    @property
    def redis(self) -> "aioredis.Redis":
        if self._redis is not None:
            return self._redis
        from app.redis_client import redis as _default
        return _default

    async def mark(self, transfer_id: str, flow: str, tx_hash: str | None = None) -> AbandonedTransfer:
        record = AbandonedTransfer(
            transfer_id=transfer_id,
            flow=flow,
            tx_hash=tx_hash,
            marked_at=datetime.now(timezone.utc).isoformat(),
        )
        await self.redis.hset(ABANDONED_KEY, transfer_id, json.dumps(asdict(record)))
        logger.warning("Transfer %s (%s) marked as abandoned", transfer_id, flow)
        return record

    async def list(self) -> list[AbandonedTransfer]:
        raw = await self.redis.hgetall(ABANDONED_KEY)
        records = []
        for transfer_id, value in raw.items():
            try:
                records.append(AbandonedTransfer(**json.loads(value)))
            except (TypeError, ValueError):
                logger.error("Dropping malformed abandoned record %s", transfer_id)
                await self.redis.hdel(ABANDONED_KEY, transfer_id)
        return records

    async def resolve(self, transfer_id: str) -> bool:
        removed = await self.redis.hdel(ABANDONED_KEY, transfer_id)
        return bool(removed)

    async def check_all(self, ramp_client: "RampClient", ttl_hours: int) -> dict:
        """
        Ask the provider about every abandoned transfer.

        Terminal transfers are logged and removed; entries older than
        ``ttl_hours`` are dropped. Returns counts for the task result.
        """
        summary = {"checked": 0, "succeeded": 0, "failed": 0, "expired": 0, "pending": 0}
        cutoff = datetime.now(timezone.utc) - timedelta(hours=ttl_hours)

        for record in await self.list():
            summary["checked"] += 1
            try:
                resp = await ramp_client.get_transfer_status(record.transfer_id)
            except WalletError as exc:
                logger.warning("Status check for abandoned %s failed: %s", record.transfer_id, exc.message)
                status = ReconcileStatus.PENDING
            else:
                status = map_provider_status(resp.status)

            if status == ReconcileStatus.SUCCESS:
                logger.info("Abandoned %s transfer %s settled", record.flow, record.transfer_id)
                summary["succeeded"] += 1
                await self.resolve(record.transfer_id)
            elif status == ReconcileStatus.CANCELLED:
                logger.warning(
                    "Abandoned %s transfer %s failed at provider (tx %s)",
                    record.flow, record.transfer_id, record.tx_hash,
                )
                summary["failed"] += 1
                await self.resolve(record.transfer_id)
            elif record.marked_datetime < cutoff:
                logger.error(
                    "Abandoned transfer %s unresolved after %dh; dropping (tx %s)",
                    record.transfer_id, ttl_hours, record.tx_hash,
                )
                summary["expired"] += 1
                await self.resolve(record.transfer_id)
            else:
                summary["pending"] += 1

        return summary
