"""
Wallet endpoints — KESC balance and transaction history.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_balance_view, get_history
from app.core.errors import WalletError
from app.schemas.flow import BalanceResponse, TransactionListResponse, TransactionRecordResponse
from app.wallet.balance import BalanceView
from app.wallet.history import TransactionHistory

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    refresh: bool = Query(True, description="Read the balance from the chain first"),
    balance: BalanceView = Depends(get_balance_view),
):
    if refresh or balance.raw is None:
        try:
            await balance.refresh()
        except WalletError as exc:
            logger.warning("Balance refresh failed: %s", exc.message)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=exc.user_message,
            )

    return BalanceResponse(
        address=balance.address,
        balance=balance.formatted,
        balance_base_units=str(balance.raw) if balance.raw is not None else None,
    )


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    refresh: bool = Query(False, description="Reload history from the chain"),
    history: TransactionHistory = Depends(get_history),
):
    """KESC activity for the connected wallet, newest first."""
    if refresh:
        try:
            await history.refresh()
        except WalletError as exc:
            logger.warning("History refresh failed: %s", exc.message)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=exc.user_message,
            )

    records = history.transactions
    return TransactionListResponse(
        items=[
            TransactionRecordResponse(
                id=r.id,
                type=r.type,
                amount=r.amount,
                status=r.status,
                timestamp=r.timestamp,
                from_address=r.from_address,
                to_address=r.to_address,
                block_number=r.block_number,
            )
            for r in records[offset:offset + limit]
        ],
        total=len(records),
    )
