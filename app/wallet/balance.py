"""Cached KESC balance for the connected wallet."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.config import settings
from app.core.validation import from_base_units

if TYPE_CHECKING:
    from app.chain.token_gateway import TokenGateway

logger = logging.getLogger(__name__)


class BalanceView:

    def __init__(self, gateway: "TokenGateway", decimals: int | None = None):
        self.gateway = gateway
        self.decimals = settings.TOKEN_DECIMALS if decimals is None else decimals
        self.raw: int | None = None

    @property
    def address(self) -> str | None:
        return self.gateway.address

    @property
    def formatted(self) -> str | None:
        """Balance as a decimal string, or None before the first refresh."""
        if self.raw is None:
            return None
        return from_base_units(self.raw, self.decimals)

    async def refresh(self) -> int | None:
        if not self.gateway.address:
            self.raw = None
            return None
        self.raw = await self.gateway.get_balance(self.gateway.address)
        logger.debug("Balance for %s: %s", self.gateway.address, self.formatted)
        return self.raw

    async def on_token_events(self, event_name: str, logs) -> None:
        """Event watcher handler: refresh when a log touches the wallet."""
        wallet = (self.gateway.address or "").lower()
        for log in logs:
            args = log["args"]
            parties = {str(args.get(k, "")).lower() for k in ("from", "to")}
            if wallet and wallet in parties:
                await self.refresh()
                return
