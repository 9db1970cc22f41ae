"""
KESC Wallet — FastAPI application entry point.

Configures the app, middleware, and registers all API routers. The lifespan
builds the wallet components once per process and tears them down on
shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import flows, wallet
from app.chain.token_gateway import TokenGateway
from app.config import settings
from app.core.errors import WalletError
from app.services.abandoned_transfers import AbandonedTransferTracker
from app.services.ramp_client import RampClient
from app.wallet.balance import BalanceView
from app.wallet.history import TransactionHistory
from app.wallet.orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    configure_logging()
    from app.redis_client import redis

    ramp_client = RampClient()
    gateway = TokenGateway()
    balance = BalanceView(gateway)
    history = TransactionHistory(gateway)
    orchestrator = TransferOrchestrator(
        ramp_client,
        gateway,
        tracker=AbandonedTransferTracker(redis),
        balance=balance,
        history=history,
    )

    balance_watch = None
    if gateway.address and gateway.contract is not None:
        try:
            await balance.refresh()
            await history.load()
        except WalletError as exc:
            logger.warning("Initial wallet load failed: %s", exc.message)
        history.start()
        balance_watch = gateway.watch(balance.on_token_events)
    else:
        logger.warning("No wallet key or contract configured; chain features are disabled")

    app.state.orchestrator = orchestrator
    app.state.balance = balance
    app.state.history = history

    yield

    # Shutdown: stop background work, close connections
    await orchestrator.aclose()
    await history.stop()
    if balance_watch is not None:
        await balance_watch.unsubscribe()
    await ramp_client.aclose()
    await redis.aclose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Mobile-money on/off-ramp wallet for the KESC token.",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Routers ---
app.include_router(flows.router, prefix="/api/v1/flow", tags=["Flow"])
app.include_router(wallet.router, prefix="/api/v1/wallet", tags=["Wallet"])


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": "0.1.0",
    }
