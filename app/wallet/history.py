"""
Transaction history view model.

Builds the wallet's KESC activity from contract event logs:

  Transfer(from=wallet)  -> send
  Transfer(to=wallet)    -> receive
  Mint(to=wallet)        -> deposit
  Burn(from=wallet)      -> sell

Records are de-duplicated by (tx hash, type) and kept newest first. A live
subscription appends new events as they are mined.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from web3 import Web3

from app.chain.abi import TOKEN_EVENTS
from app.config import settings
from app.core.validation import from_base_units

if TYPE_CHECKING:
    from app.chain.token_gateway import EventSubscription, TokenGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    type: str
    amount: str
    status: str
    timestamp: int
    from_address: str
    to_address: str
    block_number: int

    @property
    def key(self) -> tuple[str, str]:
        return (self.id, self.type)


class TransactionHistory:
    """KESC activity for the connected wallet, newest first."""

    def __init__(
        self,
        gateway: "TokenGateway",
        from_block: int | None = None,
        decimals: int | None = None,
    ):
        self.gateway = gateway
        self.from_block = settings.HISTORY_FROM_BLOCK if from_block is None else from_block
        self.decimals = settings.TOKEN_DECIMALS if decimals is None else decimals
        self._records: dict[tuple[str, str], TransactionRecord] = {}
        self.loaded_block: int | None = None
        self._subscription: "EventSubscription | None" = None
        self._lock = asyncio.Lock()

    @property
    def transactions(self) -> list[TransactionRecord]:
        return sorted(
            self._records.values(),
            key=lambda r: (r.timestamp, r.block_number),
            reverse=True,
        )

    # --- Classification ---

    def _classify(self, event_name: str, args) -> tuple[str, int, str, str] | None:
        wallet = (self.gateway.address or "").lower()
        if not wallet:
            return None

        if event_name == "Transfer":
            sender, recipient = args["from"], args["to"]
            if sender.lower() == wallet:
                return "send", int(args["value"]), sender, recipient
            if recipient.lower() == wallet:
                return "receive", int(args["value"]), sender, recipient
        elif event_name == "Mint":
            if args["to"].lower() == wallet:
                return "deposit", int(args["amount"]), "", args["to"]
        elif event_name == "Burn":
            if args["from"].lower() == wallet:
                return "sell", int(args["amount"]), args["from"], ""
        return None

    async def _to_record(self, event_name: str, log) -> TransactionRecord | None:
        match = self._classify(event_name, log["args"])
        if match is None:
            return None
        tx_type, value, sender, recipient = match
        tx_hash = log["transactionHash"]
        return TransactionRecord(
            id=tx_hash if isinstance(tx_hash, str) else Web3.to_hex(tx_hash),
            type=tx_type,
            amount=from_base_units(value, self.decimals),
            status="success",
            timestamp=await self.gateway.get_block_timestamp(log["blockHash"]),
            from_address=sender,
            to_address=recipient,
            block_number=int(log["blockNumber"]),
        )

    async def _ingest(self, event_name: str, logs) -> int:
        added = 0
        for log in logs:
            try:
                record = await self._to_record(event_name, log)
            except Exception:
                logger.exception("Skipping unreadable %s log", event_name)
                continue
            if record is None or record.key in self._records:
                continue
            self._records[record.key] = record
            added += 1
        return added

    # --- Loading ---

    async def load(self) -> list[TransactionRecord]:
        """Rebuild history from ``from_block`` to the latest block."""
        if not self.gateway.address:
            self._records = {}
            return []

        async with self._lock:
            latest = await self.gateway.latest_block()
            self._records = {}
            for event_name in TOKEN_EVENTS:
                logs = await self.gateway.get_events(event_name, self.from_block, latest)
                await self._ingest(event_name, logs)
            self.loaded_block = latest
            logger.info("Loaded %d KESC transactions up to block %d", len(self._records), latest)
        return self.transactions

    async def refresh(self) -> list[TransactionRecord]:
        return await self.load()

    # --- Live updates ---

    async def _on_events(self, event_name: str, logs) -> None:
        async with self._lock:
            added = await self._ingest(event_name, logs)
        if added:
            logger.info("Recorded %d new %s event(s)", added, event_name)

    def start(self, interval: float | None = None) -> None:
        """
        Subscribe to new token events. Calling twice keeps one subscription.

        After a load the watcher resumes from the last loaded block.
        """
        if self._subscription is not None and self._subscription.active:
            return
        self._subscription = self.gateway.watch(
            self._on_events, interval=interval, from_block=self.loaded_block,
        )

    async def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()
