"""
Reusable FastAPI dependencies for the wallet components.

The lifespan in ``app.main`` builds one set of components per process and
stores them on ``app.state``:
  - get_orchestrator — the TransferOrchestrator driving the active flow
  - get_balance_view — cached KESC balance
  - get_history      — KESC transaction history
"""

from fastapi import HTTPException, Request, status

from app.wallet.balance import BalanceView
from app.wallet.history import TransactionHistory
from app.wallet.orchestrator import TransferOrchestrator


def _component(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Wallet service is starting up",
        )
    return component


async def get_orchestrator(request: Request) -> TransferOrchestrator:
    return _component(request, "orchestrator")


async def get_balance_view(request: Request) -> BalanceView:
    return _component(request, "balance")


async def get_history(request: Request) -> TransactionHistory:
    return _component(request, "history")
