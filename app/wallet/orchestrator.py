"""
Transfer orchestrator — drives one buy, sell, pay-bill or send cycle.

Lifecycle (``FlowState``): input -> processing -> success | cancelled, with
``done()`` / ``try_again()`` returning to input and ``cancel_transaction()``
abandoning a processing flow.

Submit flow:
  1. Check preconditions synchronously (wallet, configuration, form fields).
     A failure is recorded as a field/form error and the state stays ``input``.
  2. Clear the quote/transfer stores, enter ``processing`` and schedule the
     flow as an asyncio task. Re-submitting while processing is a no-op.
  3. Request a quote and store it. Reject it locally if already expired.
  4. Create the provider transfer (idempotency key per call) and store it.
  5. Sell/pay-bill/send: re-check on-chain guards, transfer tokens, wait for
     the receipt, then hand the tx hash to the provider. "Already being
     processed" from the provider counts as progress.
  6. Hand over to the StatusReconciler, whose provider status decides
     success or cancellation. Send has no provider leg and succeeds on receipt.

Every failure after step 2 is classified (see ``app.core.errors``) and
moves the flow to ``cancelled``; nothing escapes the flow task.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from app.config import settings
from app.core.countries import Country, get_country
from app.core.errors import (
    AlreadyProcessingError,
    ChainGuardError,
    ConfigurationError,
    DomainError,
    ProviderError,
    QuoteExpiredError,
    ValidationError,
    WalletError,
    classify,
)
from app.core.validation import (
    normalize_phone,
    parse_amount,
    to_base_units,
    validate_account_number,
    validate_address,
    validate_amount,
    validate_business_number,
)
from app.schemas.flow import (
    BuyRequest,
    FlowError,
    FlowSnapshot,
    PayBillRequest,
    SellRequest,
    SendRequest,
)
from app.schemas.ramp import (
    BillQuotePayload,
    BillTransferPayload,
    QuotePayload,
    QuoteResponse,
    Transfer,
    TransferDirection,
    TransferPayload,
    UserDetails,
)
from app.wallet.lifecycle import FlowKind, FlowState, ReconcileStatus
from app.wallet.reconciler import StatusReconciler
from app.wallet.stores import FlowContext, Store

if TYPE_CHECKING:
    from app.chain.token_gateway import TokenGateway
    from app.services.abandoned_transfers import AbandonedTransferTracker
    from app.services.ramp_client import RampClient
    from app.wallet.balance import BalanceView
    from app.wallet.history import TransactionHistory

logger = logging.getLogger(__name__)

WALLET_NOT_CONNECTED = "Please connect your wallet to continue"
APP_CONFIG_ERROR = "Application configuration error. Please contact support."
TRANSFER_FAILED = "Transfer failed. Please try again."
STATUS_UNCONFIRMED = "We could not confirm this transfer yet. It is still being tracked."


@dataclass(frozen=True)
class _MobileMoneyOrder:
    amount: Decimal
    phone: str
    user_details: UserDetails


@dataclass(frozen=True)
class _BillOrder:
    amount: Decimal
    business_number: str
    account_number: str
    account_name: str


@dataclass(frozen=True)
class _SendOrder:
    recipient: str
    amount: int


class TransferOrchestrator:
    """Owns the flow lifecycle and is the only writer of the FlowContext."""

    def __init__(
        self,
        ramp_client: "RampClient",
        gateway: "TokenGateway",
        context: FlowContext | None = None,
        tracker: "AbandonedTransferTracker | None" = None,
        balance: "BalanceView | None" = None,
        history: "TransactionHistory | None" = None,
        country: str | None = None,
        chain: str | None = None,
        crypto_type: str | None = None,
        operator: str | None = None,
        min_amount: Decimal | None = None,
        max_amount: Decimal | None = None,
        decimals: int | None = None,
        poll_interval: float | None = None,
        poll_deadline: float | None = None,
        enforce_quote_expiry: bool | None = None,
    ):
        self.ramp = ramp_client
        self.gateway = gateway
        self.context = context or FlowContext()
        self.tracker = tracker
        self.balance = balance
        self.history = history

        self.country_code = settings.COUNTRY if country is None else country
        self.chain = settings.CHAIN if chain is None else chain
        self.crypto_type = settings.CRYPTO_TYPE if crypto_type is None else crypto_type
        self.operator = settings.OPERATOR if operator is None else operator
        self.min_amount = settings.MIN_TRANSACTION_AMOUNT if min_amount is None else min_amount
        self.max_amount = settings.MAX_TRANSACTION_AMOUNT if max_amount is None else max_amount
        self.decimals = settings.TOKEN_DECIMALS if decimals is None else decimals
        self.enforce_quote_expiry = (
            settings.ENFORCE_QUOTE_EXPIRY if enforce_quote_expiry is None else enforce_quote_expiry
        )

        self.reconciler = StatusReconciler(
            ramp_client,
            self.context.view(),
            self._on_reconcile_status,
            interval=poll_interval,
            deadline=poll_deadline,
        )

        self._state: Store[FlowState] = Store("flow_state", initial=FlowState.INPUT)
        self.status = ReconcileStatus.IDLE
        self.kind: FlowKind | None = None
        self.error: WalletError | None = None
        self.tx_hash: str | None = None
        self.provider_status: str | None = None
        self._task: asyncio.Task | None = None

    # ── State ────────────────────────────────────────────────────────────

    @property
    def state(self) -> FlowState:
        return self._state.value

    def subscribe(self, listener: Callable[[FlowState], None]) -> Callable[[], None]:
        """Observe lifecycle transitions."""
        return self._state.subscribe(listener)

    def _transition(self, new_state: FlowState) -> None:
        old = self.state
        if old == new_state:
            return
        logger.info("Flow %s: %s -> %s", self.kind.value if self.kind else "-", old.value, new_state.value)
        self._state.set(new_state)

    def snapshot(self) -> FlowSnapshot:
        quote = self.context.quote.value
        error = None
        if self.error is not None:
            error = FlowError(
                kind=self.error.kind.value,
                message=self.error.user_message,
                field=getattr(self.error, "field", None),
            )
        return FlowSnapshot(
            state=self.state.value,
            status=self.status.value,
            flow=self.kind.value if self.kind else None,
            error=error,
            quote=quote.quote if quote else None,
            transfer=self.context.transfer.value,
            tx_hash=self.tx_hash,
            provider_status=self.provider_status,
        )

    # ── Submission ───────────────────────────────────────────────────────

    def submit_buy(self, request: BuyRequest) -> FlowSnapshot:
        return self._begin(FlowKind.BUY, lambda: self._prepare_mobile_money(request), self._run_buy)

    def submit_sell(self, request: SellRequest) -> FlowSnapshot:
        return self._begin(FlowKind.SELL, lambda: self._prepare_mobile_money(request), self._run_sell)

    def submit_pay_bill(self, request: PayBillRequest) -> FlowSnapshot:
        return self._begin(FlowKind.PAY_BILL, lambda: self._prepare_bill(request), self._run_pay_bill)

    def submit_send(self, request: SendRequest) -> FlowSnapshot:
        return self._begin(FlowKind.SEND, lambda: self._prepare_send(request), self._run_send)

    def _begin(
        self,
        kind: FlowKind,
        prepare: Callable[[], Any],
        runner: Callable[[Any], Awaitable[None]],
    ) -> FlowSnapshot:
        """Validate synchronously, then enter processing and schedule the flow."""
        if self.state != FlowState.INPUT:
            logger.info("Ignoring %s submission while %s", kind.value, self.state.value)
            return self.snapshot()

        try:
            order = prepare()
        except (ValidationError, ConfigurationError) as exc:
            logger.info("Rejected %s submission: %s", kind.value, exc.message)
            self.error = exc
            return self.snapshot()

        self.error = None
        self.context.clear()
        self.kind = kind
        self.tx_hash = None
        self.provider_status = None
        self.status = ReconcileStatus.PROCESSING
        self._transition(FlowState.PROCESSING)
        self._task = asyncio.create_task(self._run(runner, order))
        return self.snapshot()

    async def _run(self, runner: Callable[[Any], Awaitable[None]], order: Any) -> None:
        try:
            await runner(order)
        except asyncio.CancelledError:
            logger.info("Flow %s task cancelled", self.kind.value if self.kind else "-")
            raise
        except WalletError as exc:
            logger.warning("Flow %s failed (%s): %s", self.kind.value, exc.kind.value, exc.message)
            await self._track_in_flight()
            self._fail(exc)
        except Exception as exc:
            logger.exception("Unexpected failure in %s flow", self.kind.value if self.kind else "-")
            await self._track_in_flight()
            self._fail(classify(exc))

    def _fail(self, error: WalletError) -> None:
        if self.state != FlowState.PROCESSING:
            return
        self.error = error
        self.status = ReconcileStatus.CANCELLED
        self._transition(FlowState.CANCELLED)

    def _succeed(self) -> None:
        if self.state != FlowState.PROCESSING:
            return
        self.status = ReconcileStatus.SUCCESS
        self._transition(FlowState.SUCCESS)

    # ── Preconditions ────────────────────────────────────────────────────

    def _require_wallet(self) -> str:
        address = self.gateway.address
        if not address:
            raise ValidationError(WALLET_NOT_CONNECTED)
        return address

    def _require_ramp_config(self) -> Country:
        country = get_country(self.country_code)
        if not self.country_code or not self.chain:
            raise ConfigurationError(APP_CONFIG_ERROR)
        if country is None:
            raise ConfigurationError(f"Invalid country configuration: {self.country_code}")
        return country

    def _prepare_mobile_money(self, request: BuyRequest | SellRequest) -> _MobileMoneyOrder:
        self._require_wallet()
        country = self._require_ramp_config()
        amount = validate_amount(request.amount, self.min_amount, self.max_amount)
        phone = normalize_phone(request.phone, country)
        return _MobileMoneyOrder(amount=amount, phone=phone, user_details=request.user_details)

    def _prepare_bill(self, request: PayBillRequest) -> _BillOrder:
        self._require_wallet()
        self._require_ramp_config()
        amount = validate_amount(request.amount, self.min_amount, self.max_amount)
        return _BillOrder(
            amount=amount,
            business_number=validate_business_number(request.business_number),
            account_number=validate_account_number(request.account_number),
            account_name=request.account_name,
        )

    def _prepare_send(self, request: SendRequest) -> _SendOrder:
        self._require_wallet()
        recipient = validate_address(request.recipient)
        amount = parse_amount(request.amount)
        return _SendOrder(recipient=recipient, amount=to_base_units(amount, self.decimals))

    # ── Ramp legs ────────────────────────────────────────────────────────

    def _quote_payload(self, amount: Decimal) -> QuotePayload:
        country = self._require_ramp_config()
        return QuotePayload(
            fiat_type=country.currency,
            crypto_type=self.crypto_type,
            network=self.chain,
            fiat_amount=format(amount, "f"),
            country=country.symbol,
            address=self.gateway.address,
        )

    def _accept_quote(self, quote: QuoteResponse) -> QuoteResponse:
        self.context.quote.set(quote)
        logger.info("Quote %s stored (fee %s)", quote.quote.quote_id, quote.quote.fee)
        if self.enforce_quote_expiry and quote.quote.is_expired():
            raise QuoteExpiredError()
        return quote

    def _accept_transfer(self, transfer: Transfer) -> Transfer:
        self.context.transfer.set(transfer)
        logger.info("Transfer %s created (%s)", transfer.transfer_id, transfer.transfer_status)
        return transfer

    def _token_amount(self, *candidates: str | None) -> int:
        value = next((c for c in candidates if c), None)
        if value is None:
            raise ProviderError("Quote did not include an amount to pay")
        try:
            return to_base_units(value, self.decimals)
        except ValidationError as exc:
            raise ProviderError(f"Quote returned an invalid amount: {value}") from exc

    async def _run_buy(self, order: _MobileMoneyOrder) -> None:
        quote = self._accept_quote(await self.ramp.request_quote(
            TransferDirection.IN, self._quote_payload(order.amount),
        ))
        transfer = self._accept_transfer(await self.ramp.create_transfer(
            TransferDirection.IN,
            TransferPayload(
                phone=order.phone,
                operator=self.operator,
                quote_id=quote.quote.quote_id,
                user_details=order.user_details,
            ),
        ))
        # Tokens are minted by the provider once the mobile-money payment lands
        self._reconcile(transfer)

    async def _run_sell(self, order: _MobileMoneyOrder) -> None:
        quote = self._accept_quote(await self.ramp.request_quote(
            TransferDirection.OUT, self._quote_payload(order.amount),
        ))
        transfer = self._accept_transfer(await self.ramp.create_transfer(
            TransferDirection.OUT,
            TransferPayload(
                phone=order.phone,
                operator=self.operator,
                quote_id=quote.quote.quote_id,
                user_details=order.user_details,
            ),
        ))
        amount = self._token_amount(quote.quote.amount_paid, quote.quote.crypto_amount)
        await self._settle_on_chain(transfer, amount)

    async def _run_pay_bill(self, order: _BillOrder) -> None:
        base = self._quote_payload(order.amount)
        quote = self._accept_quote(await self.ramp.request_bill_quote(
            BillQuotePayload(
                **base.model_dump(),
                region=base.country,
                raw_amount=base.fiat_amount,
            ),
        ))
        transfer = self._accept_transfer(await self.ramp.create_bill_transfer(
            BillTransferPayload(
                quote_id=quote.quote.quote_id,
                account_name=order.account_name,
                account_number=order.account_number,
                business_number=order.business_number,
            ),
        ))
        amount = self._token_amount(
            quote.quote.fiat_amount, quote.quote.amount_paid, quote.quote.crypto_amount,
        )
        await self._settle_on_chain(transfer, amount)

    async def _run_send(self, order: _SendOrder) -> None:
        await self._transfer_tokens(order.recipient, order.amount)
        self._succeed()

    # ── On-chain leg ─────────────────────────────────────────────────────

    async def _check_guards(self, recipient: str, amount: int) -> None:
        """Paused, sender blacklist, recipient blacklist, then balance."""
        sender = self.gateway.address
        if await self.gateway.is_paused():
            raise ChainGuardError("Transfers are currently paused")
        if await self.gateway.is_blacklisted(sender):
            raise ChainGuardError("Your address is blacklisted")
        if await self.gateway.is_blacklisted(recipient):
            raise ChainGuardError("Recipient address is blacklisted")
        balance = await self.gateway.get_balance(sender)
        if balance < amount:
            raise ChainGuardError("Insufficient balance")

    async def _transfer_tokens(self, recipient: str, amount: int) -> str:
        await self._check_guards(recipient, amount)
        pending = await self.gateway.transfer(recipient, amount)
        self.tx_hash = pending.tx_hash
        if not await self.gateway.await_confirmation(pending):
            raise ChainGuardError("Transaction failed on-chain")
        return pending.tx_hash

    async def _settle_on_chain(self, transfer: Transfer, amount: int) -> None:
        if not transfer.transfer_address:
            raise ProviderError("Transfer did not include a settlement address")
        tx_hash = await self._transfer_tokens(transfer.transfer_address, amount)

        try:
            await self.ramp.submit_transaction_hash(transfer.transfer_id, tx_hash)
        except AlreadyProcessingError:
            logger.info("Transfer %s is already being processed", transfer.transfer_id)
        except WalletError as exc:
            # On-chain leg is final; the reconciler decides the outcome
            logger.error(
                "Failed to submit tx hash %s for transfer %s: %s",
                tx_hash, transfer.transfer_id, exc.message,
            )
        self._reconcile(transfer)

    # ── Reconciliation ───────────────────────────────────────────────────

    def _reconcile(self, transfer: Transfer) -> None:
        self.status = ReconcileStatus.PENDING
        self.reconciler.start(transfer.transfer_id)

    async def _on_reconcile_status(self, status: ReconcileStatus, provider_status: str | None) -> None:
        if self.state != FlowState.PROCESSING:
            return
        self.provider_status = provider_status
        if status == ReconcileStatus.SUCCESS:
            self._succeed()
        elif status == ReconcileStatus.CANCELLED:
            self._fail(ProviderError(TRANSFER_FAILED))
        elif status == ReconcileStatus.ERROR:
            await self._track_abandoned()
            self._fail(DomainError(STATUS_UNCONFIRMED))
        else:
            self.status = status

    async def _track_abandoned(self) -> None:
        transfer = self.context.transfer.value
        if transfer is None or self.tracker is None:
            return
        try:
            await self.tracker.mark(
                transfer.transfer_id, self.kind.value if self.kind else "", self.tx_hash,
            )
        except Exception:
            logger.exception("Could not record abandoned transfer %s", transfer.transfer_id)

    async def _track_in_flight(self) -> None:
        """Keep watching a provider transfer whose token leg was already broadcast."""
        if self.tx_hash and self.context.transfer.value is not None:
            await self._track_abandoned()

    # ── Exit actions ─────────────────────────────────────────────────────

    async def _reset(self) -> None:
        await self.reconciler.stop()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.context.clear()
        self.kind = None
        self.error = None
        self.tx_hash = None
        self.provider_status = None
        self.status = ReconcileStatus.IDLE
        self._transition(FlowState.INPUT)

    async def done(self) -> FlowSnapshot:
        """Close a successful flow and refresh balance and history."""
        if self.state != FlowState.SUCCESS:
            return self.snapshot()
        await self._reset()
        await self._refresh_views()
        return self.snapshot()

    async def try_again(self) -> FlowSnapshot:
        """Clear a cancelled flow and return to input."""
        if self.state != FlowState.CANCELLED:
            return self.snapshot()
        await self._reset()
        return self.snapshot()

    async def cancel_transaction(self, confirmed: bool = False) -> FlowSnapshot:
        """
        Stop watching a processing flow.

        This does not undo anything: a created provider transfer or a
        broadcast token transfer may still settle. The transfer id is handed
        to the abandoned-transfer tracker so its outcome is still recorded.
        """
        if self.state != FlowState.PROCESSING:
            return self.snapshot()
        if not confirmed:
            raise ValidationError("Cancellation must be confirmed", field="confirm")

        transfer = self.context.transfer.value
        if transfer is not None:
            logger.warning(
                "User abandoned transfer %s (tx %s); it may still settle",
                transfer.transfer_id, self.tx_hash,
            )
            await self._track_abandoned()
        await self._reset()
        return self.snapshot()

    async def _refresh_views(self) -> None:
        for view in (self.balance, self.history):
            if view is None:
                continue
            try:
                await view.refresh()
            except WalletError as exc:
                logger.warning("Refresh of %s failed: %s", type(view).__name__, exc.message)

    async def wait(self) -> None:
        """Wait for the flow task and any reconciliation to finish."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self.reconciler.wait()

    async def aclose(self) -> None:
        await self.reconciler.stop()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
