"""
Status reconciler — polls the provider while a transfer is in flight.

Runs as a cancellable asyncio task bound to one transfer id. Each tick
fetches the transfer status, maps it to a ``ReconcileStatus`` and hands it
to the owner's callback. The loop ends on a terminal status, when the
transfer is cleared from the flow context, when the optional deadline
passes, or when ``stop()`` is called. A failed poll is logged and retried
on the next tick; it never cancels the flow by itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from app.config import settings
from app.wallet.lifecycle import TERMINAL_STATUSES, ReconcileStatus, map_provider_status

if TYPE_CHECKING:
    from app.services.ramp_client import RampClient
    from app.wallet.stores import FlowContextView

logger = logging.getLogger(__name__)

StatusCallback = Callable[[ReconcileStatus, "str | None"], Awaitable[None]]


class StatusReconciler:
    """Periodic transfer-status poller with explicit teardown."""

    def __init__(
        self,
        ramp_client: "RampClient",
        context: "FlowContextView",
        on_status: StatusCallback,
        interval: float | None = None,
        deadline: float | None = None,
    ):
        self.ramp_client = ramp_client
        self.context = context
        self.on_status = on_status
        self.interval = settings.STATUS_POLL_INTERVAL_SECONDS if interval is None else interval
        self.deadline = settings.STATUS_POLL_DEADLINE_SECONDS if deadline is None else deadline
        self.status = ReconcileStatus.IDLE
        self.transfer_id: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, transfer_id: str) -> None:
        """Begin polling *transfer_id*. A second start for the same id is a no-op."""
        if self.running:
            if self.transfer_id == transfer_id:
                return
            self._task.cancel()
        self.transfer_id = transfer_id
        self.status = ReconcileStatus.PENDING
        self._task = asyncio.create_task(self._run(transfer_id))
        logger.info("Reconciling transfer %s every %ss", transfer_id, self.interval)

    async def stop(self) -> None:
        """Cancel the poll task and wait for it to finish."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.status = ReconcileStatus.IDLE
        self.transfer_id = None

    async def wait(self) -> None:
        """Wait for the current poll loop to reach its end."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def _is_current(self, transfer_id: str) -> bool:
        transfer = self.context.transfer
        return transfer is not None and transfer.transfer_id == transfer_id

    async def _run(self, transfer_id: str) -> None:
        started = time.monotonic()
        while True:
            if not self._is_current(transfer_id):
                logger.info("Transfer %s cleared; stopping status polling", transfer_id)
                return

            provider_status = None
            try:
                resp = await self.ramp_client.get_transfer_status(transfer_id)
                provider_status = resp.status
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "Status poll for transfer %s failed (%s); retrying in %ss",
                    transfer_id, exc, self.interval,
                )
            else:
                status = map_provider_status(provider_status)
                if self._is_current(transfer_id):
                    self.status = status
                    await self.on_status(status, provider_status)
                if status in TERMINAL_STATUSES:
                    logger.info("Transfer %s reached %s (%s)", transfer_id, status.value, provider_status)
                    return

            if self.deadline is not None and time.monotonic() - started >= self.deadline:
                logger.warning("Gave up polling transfer %s after %ss", transfer_id, self.deadline)
                self.status = ReconcileStatus.ERROR
                await self.on_status(ReconcileStatus.ERROR, provider_status)
                return

            await asyncio.sleep(self.interval)
