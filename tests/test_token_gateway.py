"""Tests for the KESC token gateway (chain/token_gateway.py).

The web3 client and contract are MagicMocks; only the gateway's own
bucketing, signing flow and polling are exercised.
"""

import asyncio
import itertools
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from app.chain.token_gateway import PendingTransaction, TokenGateway
from app.core.errors import ChainGuardError, ConfigurationError, ConnectivityError

from tests.conftest import RECIPIENT, WALLET


def _contract_call(return_value=None, side_effect=None) -> MagicMock:
    """contract.functions.X(...) -> object whose .call() is awaitable."""
    bound = MagicMock()
    bound.call = AsyncMock(return_value=return_value, side_effect=side_effect)
    return MagicMock(return_value=bound)


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.get_transaction_count = AsyncMock(return_value=7)
    w3.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex("12" * 32))
    w3.eth.get_transaction_receipt = AsyncMock()
    w3.eth.get_block = AsyncMock(return_value={"timestamp": 1_700_000_123})
    return w3


@pytest.fixture
def contract():
    contract = MagicMock()
    contract.functions.balanceOf = _contract_call(5 * 10**18)
    contract.functions.paused = _contract_call(False)
    contract.functions.isBlackListed = _contract_call(False)
    return contract


@pytest.fixture
def account():
    account = MagicMock()
    account.address = Web3.to_checksum_address(WALLET)
    account.sign_transaction = MagicMock(return_value=MagicMock(raw_transaction=b"signed"))
    return account


@pytest.fixture
def gateway(w3, contract, account):
    gw = TokenGateway(
        w3=w3,
        contract=contract,
        private_key="",
        confirmation_interval=0,
        confirmation_timeout=None,
    )
    gw.account = account
    return gw


class TestReads:

    @pytest.mark.asyncio
    async def test_balance_defaults_to_own_address(self, gateway, contract):
        assert await gateway.get_balance() == 5 * 10**18
        contract.functions.balanceOf.assert_called_once_with(Web3.to_checksum_address(WALLET))

    @pytest.mark.asyncio
    async def test_is_paused_and_blacklisted(self, gateway, contract):
        contract.functions.paused = _contract_call(True)
        assert await gateway.is_paused() is True
        assert await gateway.is_blacklisted(RECIPIENT) is False

    @pytest.mark.asyncio
    async def test_node_failure_is_connectivity_error(self, gateway, contract):
        contract.functions.paused = _contract_call(side_effect=OSError("connection refused"))
        with pytest.raises(ConnectivityError):
            await gateway.is_paused()

    @pytest.mark.asyncio
    async def test_revert_is_chain_guard_error(self, gateway, contract):
        contract.functions.balanceOf = _contract_call(
            side_effect=ContractLogicError("execution reverted: Blacklistable: account is blacklisted"),
        )
        with pytest.raises(ChainGuardError, match="blacklisted"):
            await gateway.get_balance()

    @pytest.mark.asyncio
    async def test_missing_contract(self, w3):
        gw = TokenGateway(w3=w3, contract_address="", private_key="")
        assert gw.contract is None
        assert gw.address is None
        with pytest.raises(ConfigurationError):
            await gw.is_paused()

    @pytest.mark.asyncio
    async def test_block_timestamp_cached(self, gateway, w3):
        block_hash = bytes.fromhex("ab" * 32)
        assert await gateway.get_block_timestamp(block_hash) == 1_700_000_123
        assert await gateway.get_block_timestamp(block_hash) == 1_700_000_123
        w3.eth.get_block.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_event_rejected(self, gateway):
        with pytest.raises(ValueError):
            await gateway.get_events("Approval", 0, 10)


class TestTransfer:

    @pytest.mark.asyncio
    async def test_signs_and_broadcasts(self, gateway, contract, account, w3):
        bound = MagicMock()
        bound.build_transaction = AsyncMock(return_value={"to": "token", "nonce": 7})
        contract.functions.transfer = MagicMock(return_value=bound)

        pending = await gateway.transfer(RECIPIENT, 1500)

        assert pending == PendingTransaction(
            tx_hash="0x" + "12" * 32,
            to=Web3.to_checksum_address(RECIPIENT),
            amount=1500,
        )
        contract.functions.transfer.assert_called_once_with(Web3.to_checksum_address(RECIPIENT), 1500)
        bound.build_transaction.assert_awaited_once_with({"from": account.address, "nonce": 7})
        w3.eth.get_transaction_count.assert_awaited_once_with(account.address, "pending")
        w3.eth.send_raw_transaction.assert_awaited_once_with(b"signed")

    @pytest.mark.asyncio
    async def test_transfer_requires_account(self, gateway):
        gateway.account = None
        with pytest.raises(ConfigurationError):
            await gateway.transfer(RECIPIENT, 1)


class TestConfirmation:

    @pytest.mark.asyncio
    async def test_waits_until_mined(self, gateway, w3):
        w3.eth.get_transaction_receipt.side_effect = [
            TransactionNotFound("not yet"),
            TransactionNotFound("not yet"),
            {"status": 1, "blockNumber": 42},
        ]
        pending = PendingTransaction(tx_hash="0xabc", to=RECIPIENT, amount=1)

        assert await gateway.await_confirmation(pending) is True
        assert w3.eth.get_transaction_receipt.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_lookup_is_retried(self, gateway, w3):
        w3.eth.get_transaction_receipt.side_effect = [
            ConnectionError("node dropped the connection"),
            TransactionNotFound("not yet"),
            {"status": 1, "blockNumber": 43},
        ]
        pending = PendingTransaction(tx_hash="0xabc", to=RECIPIENT, amount=1)

        assert await gateway.await_confirmation(pending) is True
        assert w3.eth.get_transaction_receipt.await_count == 3

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, gateway, w3):
        w3.eth.get_transaction_receipt.return_value = {"status": 0, "blockNumber": 42}
        pending = PendingTransaction(tx_hash="0xabc", to=RECIPIENT, amount=1)

        assert await gateway.await_confirmation(pending) is False

    @pytest.mark.asyncio
    async def test_timeout(self, gateway, w3):
        gateway.confirmation_timeout = 0
        w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not yet")
        pending = PendingTransaction(tx_hash="0xabc", to=RECIPIENT, amount=1)

        with pytest.raises(ConnectivityError, match="Timed out"):
            await gateway.await_confirmation(pending)


class TestWatch:

    @pytest.mark.asyncio
    async def test_delivers_new_logs_and_unsubscribes(self, gateway, monkeypatch):
        blocks = itertools.chain([10], itertools.repeat(12))
        monkeypatch.setattr(gateway, "latest_block", AsyncMock(side_effect=lambda: next(blocks)))
        log = {"args": {"from": WALLET, "to": RECIPIENT, "value": 1}}
        monkeypatch.setattr(
            gateway, "get_events",
            AsyncMock(side_effect=lambda name, start, end: [log] if name == "Transfer" else []),
        )
        received = []

        async def handler(name, logs):
            received.append((name, logs))

        subscription = gateway.watch(handler, interval=0)
        for _ in range(20):
            if received:
                break
            await asyncio.sleep(0)
        await subscription.unsubscribe()

        assert received == [("Transfer", [log])]
        gateway.get_events.assert_any_await("Transfer", 11, 12)
        assert not subscription.active
