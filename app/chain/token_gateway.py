"""
Token contract gateway — KESC reads, transfers, and event logs over web3.py.

The wallet signs locally with an eth-account key; nothing here touches a
browser wallet. All amounts crossing this boundary are integers in the
token's base unit. Node and contract failures are re-raised as
ConnectivityError or ChainGuardError so callers never see raw web3 errors.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from app.chain.abi import KESC_ABI, TOKEN_EVENTS
from app.config import settings
from app.core.errors import ChainGuardError, ConfigurationError, ConnectivityError, WalletError

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, list], Awaitable[None]]


@dataclass(frozen=True)
class PendingTransaction:
    """Handle for a broadcast, not-yet-confirmed transfer."""
    tx_hash: str
    to: str
    amount: int


class EventSubscription:
    """Handle for a running event watcher. ``unsubscribe()`` stops it."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    async def unsubscribe(self) -> None:
        if self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class TokenGateway:
    """KESC contract access for the connected wallet."""

    def __init__(
        self,
        w3: AsyncWeb3 | None = None,
        contract: Any = None,
        contract_address: str | None = None,
        private_key: str | None = None,
        confirmation_interval: float | None = None,
        confirmation_timeout: float | None = None,
    ):
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.RPC_URL))

        address = settings.KESC_CONTRACT_ADDRESS if contract_address is None else contract_address
        if contract is None and address:
            contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=KESC_ABI)
        self.contract = contract

        key = settings.WALLET_PRIVATE_KEY if private_key is None else private_key
        self.account = Account.from_key(key) if key else None

        self.confirmation_interval = (
            settings.CONFIRMATION_POLL_INTERVAL_SECONDS
            if confirmation_interval is None else confirmation_interval
        )
        self.confirmation_timeout = (
            settings.CONFIRMATION_TIMEOUT_SECONDS
            if confirmation_timeout is None else confirmation_timeout
        )
        self._block_timestamps: dict[str, int] = {}

    # --- Helpers ---

    @property
    def address(self) -> str | None:
        """Connected wallet address, or None when no key is configured."""
        return self.account.address if self.account is not None else None

    def _require_contract(self):
        if self.contract is None:
            raise ConfigurationError("KESC contract address is not configured")
        return self.contract

    def _require_account(self):
        if self.account is None:
            raise ConfigurationError("Wallet key is not configured")
        return self.account

    async def _call(self, label: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run one node call, re-bucketing failures into wallet errors."""
        try:
            return await factory()
        except WalletError:
            raise
        except ContractLogicError as exc:
            logger.warning("Contract rejected %s: %s", label, exc)
            reason = getattr(exc, "message", None) or str(exc)
            raise ChainGuardError(f"Transaction rejected: {reason}") from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Chain call %s failed", label)
            raise ConnectivityError(f"Chain call {label} failed") from exc

    # --- Reads ---

    async def get_balance(self, address: str | None = None) -> int:
        contract = self._require_contract()
        owner = Web3.to_checksum_address(address or self._require_account().address)
        return int(await self._call(
            "balanceOf", lambda: contract.functions.balanceOf(owner).call(),
        ))

    async def is_paused(self) -> bool:
        contract = self._require_contract()
        return bool(await self._call("paused", lambda: contract.functions.paused().call()))

    async def is_blacklisted(self, address: str) -> bool:
        contract = self._require_contract()
        target = Web3.to_checksum_address(address)
        return bool(await self._call(
            "isBlackListed", lambda: contract.functions.isBlackListed(target).call(),
        ))

    async def latest_block(self) -> int:
        return int(await self._call("block_number", lambda: self.w3.eth.block_number))

    async def get_block_timestamp(self, block_hash) -> int:
        key = Web3.to_hex(block_hash)
        if key not in self._block_timestamps:
            block = await self._call("get_block", lambda: self.w3.eth.get_block(block_hash))
            self._block_timestamps[key] = int(block["timestamp"])
        return self._block_timestamps[key]

    async def get_events(self, event_name: str, from_block: int, to_block: int) -> list:
        """Return decoded logs for one of Transfer/Mint/Burn in [from_block, to_block]."""
        if event_name not in TOKEN_EVENTS:
            raise ValueError(f"Unknown token event: {event_name}")
        contract = self._require_contract()
        event = getattr(contract.events, event_name)
        logs = await self._call(
            f"get_logs:{event_name}",
            lambda: event.get_logs(from_block=from_block, to_block=to_block),
        )
        return list(logs)

    # --- Writes ---

    async def transfer(self, to: str, amount: int) -> PendingTransaction:
        """Sign and broadcast ``transfer(to, amount)``. Returns without waiting for mining."""
        contract = self._require_contract()
        account = self._require_account()
        recipient = Web3.to_checksum_address(to)

        async def _broadcast():
            nonce = await self.w3.eth.get_transaction_count(account.address, "pending")
            tx = await contract.functions.transfer(recipient, amount).build_transaction(
                {"from": account.address, "nonce": nonce},
            )
            signed = account.sign_transaction(tx)
            return await self.w3.eth.send_raw_transaction(signed.raw_transaction)

        tx_hash = Web3.to_hex(await self._call("transfer", _broadcast))
        logger.info("Broadcast KESC transfer %s -> %s (%d base units)", tx_hash, recipient, amount)
        return PendingTransaction(tx_hash=tx_hash, to=recipient, amount=amount)

    async def await_confirmation(self, pending: PendingTransaction) -> bool:
        """
        Wait until the transaction is mined.

        Returns True for a successful receipt, False for a reverted one.
        Failed receipt lookups are retried on the next tick; only the
        configured timeout ends the wait early.
        """
        started = time.monotonic()
        while True:
            try:
                receipt = await self.w3.eth.get_transaction_receipt(pending.tx_hash)
            except TransactionNotFound:
                receipt = None
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Receipt lookup for %s failed, retrying", pending.tx_hash, exc_info=True)
                receipt = None

            if receipt is not None:
                ok = int(receipt["status"]) == 1
                logger.info(
                    "Transaction %s mined in block %s (status=%s)",
                    pending.tx_hash, receipt.get("blockNumber"), "ok" if ok else "reverted",
                )
                return ok

            if (
                self.confirmation_timeout is not None
                and time.monotonic() - started >= self.confirmation_timeout
            ):
                raise ConnectivityError("Timed out waiting for transaction confirmation")
            await asyncio.sleep(self.confirmation_interval)

    # --- Subscriptions ---

    def watch(
        self,
        handler: EventHandler,
        interval: float | None = None,
        from_block: int | None = None,
    ) -> EventSubscription:
        """
        Poll for new Transfer/Mint/Burn logs and pass them to *handler*.

        The handler receives ``(event_name, logs)`` for every non-empty batch.
        Poll failures are logged and retried on the next tick.
        """
        interval = settings.EVENT_POLL_INTERVAL_SECONDS if interval is None else interval

        async def _run():
            last = from_block
            while True:
                try:
                    latest = await self.latest_block()
                    if last is None:
                        last = latest
                    elif latest > last:
                        for name in TOKEN_EVENTS:
                            logs = await self.get_events(name, last + 1, latest)
                            if logs:
                                await handler(name, logs)
                        last = latest
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Event watcher tick failed")
                await asyncio.sleep(interval)

        return EventSubscription(asyncio.create_task(_run()))
