"""
Flow endpoints — buy, sell, pay-bill and send.

A submit validates synchronously and returns ``202 Accepted`` with the
lifecycle snapshot once the flow is processing; the client then polls
``GET /flow``. A submission that fails validation returns 422 with the
offending field. Submitting while a flow is already processing is a
no-op that returns the current snapshot.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_orchestrator
from app.core.errors import ErrorKind, ValidationError
from app.schemas.flow import (
    BuyRequest,
    CancelRequest,
    FlowSnapshot,
    PayBillRequest,
    SellRequest,
    SendRequest,
)
from app.wallet.lifecycle import FlowState
from app.wallet.orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _accepted(snapshot: FlowSnapshot) -> FlowSnapshot:
    """Raise for a submission rejected before processing started."""
    if snapshot.state != FlowState.INPUT.value or snapshot.error is None:
        return snapshot

    if snapshot.error.kind == ErrorKind.VALIDATION.value:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": snapshot.error.field, "message": snapshot.error.message},
        )
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=snapshot.error.message,
    )


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------


@router.post("/buy", response_model=FlowSnapshot, status_code=status.HTTP_202_ACCEPTED)
async def submit_buy(
    payload: BuyRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Deposit fiat via mobile money; KESC is minted once the payment lands."""
    return _accepted(orchestrator.submit_buy(payload))


@router.post("/sell", response_model=FlowSnapshot, status_code=status.HTTP_202_ACCEPTED)
async def submit_sell(
    payload: SellRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Redeem KESC to a mobile-money wallet."""
    return _accepted(orchestrator.submit_sell(payload))


@router.post("/pay-bill", response_model=FlowSnapshot, status_code=status.HTTP_202_ACCEPTED)
async def submit_pay_bill(
    payload: PayBillRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    return _accepted(orchestrator.submit_pay_bill(payload))


@router.post("/send", response_model=FlowSnapshot, status_code=status.HTTP_202_ACCEPTED)
async def submit_send(
    payload: SendRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    return _accepted(orchestrator.submit_send(payload))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.get("", response_model=FlowSnapshot)
async def get_flow(orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """Current lifecycle snapshot."""
    return orchestrator.snapshot()


@router.post("/done", response_model=FlowSnapshot)
async def done(orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    """Close a successful flow. Refreshes balance and history."""
    return await orchestrator.done()


@router.post("/try-again", response_model=FlowSnapshot)
async def try_again(orchestrator: TransferOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.try_again()


@router.post("/cancel", response_model=FlowSnapshot)
async def cancel(
    payload: CancelRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """
    Abandon a processing flow.

    Requires ``{"confirm": true}``. The provider or the chain may still
    complete the transfer; it is handed to the abandoned-transfer tracker.
    """
    try:
        return await orchestrator.cancel_transaction(confirmed=payload.confirm)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        )
