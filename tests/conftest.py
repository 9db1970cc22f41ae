"""
Shared test fixtures for KESC Wallet.

Provides a fake OneRamp client, a fake token gateway, Redis mocks, an
orchestrator factory wired to those doubles, and an async HTTP client
for the routers.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.chain.token_gateway import PendingTransaction
from app.schemas.ramp import (
    Quote,
    QuoteResponse,
    Transfer,
    TransferStatus,
    TransferStatusResponse,
)
from app.wallet.orchestrator import TransferOrchestrator

WALLET = "0x7a16ff8270133f063aab6c9977183d9e72835428"
RECIPIENT = "0x1f9090aae28b8a3dceadf281b0f12828e676c326"
SETTLEMENT = "0xdac17f958d2ee523a2206206994597c13d831ec7"
TX_HASH = "0x" + "ab" * 32


def status_response(status: TransferStatus, transfer_id: str = "tr-1") -> TransferStatusResponse:
    return TransferStatusResponse(transfer_id=transfer_id, status=status.value)


# --- Sample Data ---


@pytest.fixture
def user_details():
    """KYC profile accepted by the provider."""
    return {
        "name": "Amina Nakato",
        "country": "UG",
        "address": "Plot 12, Kampala Road",
        "phone": "+256712345678",
        "dob": "1994-03-12",
        "id_number": "CM94012345678",
        "id_type": "NATIONAL_ID",
    }


@pytest.fixture
def quote_response():
    return QuoteResponse(
        quote=Quote(
            quote_id="q-1",
            fiat_type="UGX",
            crypto_type="KESC",
            network="celo",
            fiat_amount="5000",
            crypto_amount="38.5",
            amount_paid="38.5",
            fee="0.5",
        ),
    )


@pytest.fixture
def transfer():
    return Transfer(
        transfer_id="tr-1",
        transfer_address=SETTLEMENT,
        transfer_status=TransferStatus.STARTED.value,
    )


# --- Collaborator doubles ---


@pytest.fixture
def fake_ramp(quote_response, transfer):
    """AsyncMock OneRamp client; transfers complete on the second poll."""
    ramp = AsyncMock()
    ramp.request_quote = AsyncMock(return_value=quote_response)
    ramp.request_bill_quote = AsyncMock(return_value=quote_response)
    ramp.create_transfer = AsyncMock(return_value=transfer)
    ramp.create_bill_transfer = AsyncMock(return_value=transfer)
    ramp.submit_transaction_hash = AsyncMock(return_value={"success": True})
    ramp.get_transfer_status = AsyncMock(side_effect=[
        status_response(TransferStatus.STARTED),
        status_response(TransferStatus.COMPLETE),
    ])
    return ramp


@pytest.fixture
def fake_gateway():
    """Token gateway double: unpaused, nobody blacklisted, ample balance."""
    gateway = MagicMock()
    gateway.address = WALLET
    gateway.contract = MagicMock()
    gateway.is_paused = AsyncMock(return_value=False)
    gateway.is_blacklisted = AsyncMock(return_value=False)
    gateway.get_balance = AsyncMock(return_value=10**24)
    gateway.transfer = AsyncMock(
        side_effect=lambda to, amount: PendingTransaction(tx_hash=TX_HASH, to=to, amount=amount),
    )
    gateway.await_confirmation = AsyncMock(return_value=True)
    gateway.latest_block = AsyncMock(return_value=100)
    gateway.get_events = AsyncMock(return_value=[])
    gateway.get_block_timestamp = AsyncMock(return_value=1_700_000_000)
    return gateway


@pytest.fixture
def mock_redis():
    """AsyncMock Redis client with the hash commands the tracker uses."""
    redis = AsyncMock()
    redis.hset = AsyncMock(return_value=1)
    redis.hgetall = AsyncMock(return_value={})
    redis.hdel = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def fake_tracker():
    tracker = AsyncMock()
    tracker.mark = AsyncMock()
    return tracker


@pytest.fixture
def fake_balance():
    balance = AsyncMock()
    balance.refresh = AsyncMock(return_value=10**24)
    return balance


@pytest.fixture
def fake_history():
    history = AsyncMock()
    history.refresh = AsyncMock(return_value=[])
    return history


@pytest.fixture
def make_orchestrator(fake_ramp, fake_gateway, fake_tracker, fake_balance, fake_history):
    """
    Factory for orchestrators wired to the doubles with instant polling.

    Tests that build their own orchestrator must ``aclose()`` it.
    """

    def _make(**overrides) -> TransferOrchestrator:
        kwargs = {
            "ramp_client": fake_ramp,
            "gateway": fake_gateway,
            "tracker": fake_tracker,
            "balance": fake_balance,
            "history": fake_history,
            "country": "UG",
            "chain": "celo",
            "crypto_type": "KESC",
            "operator": "mtn",
            "poll_interval": 0,
            "poll_deadline": None,
            "enforce_quote_expiry": True,
        }
        kwargs.update(overrides)
        return TransferOrchestrator(**kwargs)

    return _make


@pytest_asyncio.fixture
async def orchestrator(make_orchestrator):
    orch = make_orchestrator()
    yield orch
    await orch.aclose()


# --- HTTP client ---


@pytest_asyncio.fixture
async def client(orchestrator, fake_balance, fake_history):
    """
    Async HTTP test client with the wallet components on ``app.state``
    replaced by test doubles.
    """
    from app.main import app

    app.state.orchestrator = orchestrator
    app.state.balance = fake_balance
    app.state.history = fake_history

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.orchestrator = None
    app.state.balance = None
    app.state.history = None
