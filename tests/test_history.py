"""Tests for the transaction history and balance view models."""

from unittest.mock import AsyncMock

import pytest

from app.wallet.balance import BalanceView
from app.wallet.history import TransactionHistory

from tests.conftest import RECIPIENT, SETTLEMENT, WALLET

WALLET_MIXED = "0x7A16fF8270133F063aAb6C9977183D9e72835428"


def _log(args, tx_hash, block_number, block_hash=None):
    return {
        "args": args,
        "transactionHash": tx_hash,
        "blockHash": block_hash or f"0xb{block_number}",
        "blockNumber": block_number,
    }


@pytest.fixture
def chain_logs():
    """Transfer/Mint/Burn logs around the wallet, plus noise."""
    return {
        "Transfer": [
            _log({"from": WALLET_MIXED, "to": RECIPIENT, "value": 2 * 10**18}, "0xaa", 12),
            _log({"from": RECIPIENT, "to": WALLET, "value": 5 * 10**17}, "0xbb", 15),
            _log({"from": RECIPIENT, "to": SETTLEMENT, "value": 10**18}, "0xcc", 16),
            # Same event delivered twice by the node
            _log({"from": RECIPIENT, "to": WALLET, "value": 5 * 10**17}, "0xbb", 15),
        ],
        "Mint": [
            _log({"to": WALLET, "amount": 100 * 10**18, "reason": "deposit"}, "0xdd", 10),
            _log({"to": RECIPIENT, "amount": 10**18, "reason": "deposit"}, "0xee", 11),
        ],
        "Burn": [
            _log({"from": WALLET, "amount": 38 * 10**18, "reason": "redeem"}, "0xff", 20),
        ],
    }


@pytest.fixture
def history(fake_gateway, chain_logs):
    fake_gateway.get_events = AsyncMock(
        side_effect=lambda name, start, end: chain_logs[name],
    )
    fake_gateway.get_block_timestamp = AsyncMock(
        side_effect=lambda block_hash: 1_700_000_000 + int(block_hash[3:]),
    )
    return TransactionHistory(fake_gateway, from_block=0)


class TestHistoryLoad:

    @pytest.mark.asyncio
    async def test_classifies_wallet_events(self, history):
        records = await history.load()

        assert [(r.id, r.type) for r in records] == [
            ("0xff", "sell"),
            ("0xbb", "receive"),
            ("0xaa", "send"),
            ("0xdd", "deposit"),
        ]

    @pytest.mark.asyncio
    async def test_amounts_and_parties(self, history):
        records = {r.id: r for r in await history.load()}

        assert records["0xaa"].amount == "2"
        assert records["0xaa"].to_address == RECIPIENT
        assert records["0xbb"].amount == "0.5"
        assert records["0xdd"].amount == "100"
        assert records["0xdd"].from_address == ""
        assert records["0xff"].timestamp == 1_700_000_020
        assert all(r.status == "success" for r in records.values())

    @pytest.mark.asyncio
    async def test_reads_from_configured_block(self, history, fake_gateway):
        await history.load()

        fake_gateway.get_events.assert_any_await("Transfer", 0, 100)
        fake_gateway.get_events.assert_any_await("Burn", 0, 100)

    @pytest.mark.asyncio
    async def test_unreadable_log_is_skipped(self, history, chain_logs):
        chain_logs["Burn"].append({"transactionHash": "0x00", "blockNumber": 1})

        records = await history.load()

        assert len(records) == 4

    @pytest.mark.asyncio
    async def test_no_wallet_means_no_history(self, history, fake_gateway):
        fake_gateway.address = None

        assert await history.load() == []
        fake_gateway.get_events.assert_not_awaited()


class TestHistoryLive:

    @pytest.mark.asyncio
    async def test_live_events_are_merged_without_duplicates(self, history):
        await history.load()

        await history._on_events("Transfer", [
            _log({"from": WALLET, "to": RECIPIENT, "value": 10**18}, "0x11", 30),
            _log({"from": RECIPIENT, "to": WALLET, "value": 5 * 10**17}, "0xbb", 15),
        ])

        records = history.transactions
        assert len(records) == 5
        assert records[0].id == "0x11"

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_unsubscribes(self, history, fake_gateway):
        subscription = AsyncMock()
        subscription.active = True
        fake_gateway.watch.return_value = subscription

        history.start()
        history.start()
        await history.stop()

        fake_gateway.watch.assert_called_once()
        subscription.unsubscribe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_watch_resumes_from_loaded_block(self, history, fake_gateway):
        fake_gateway.latest_block.return_value = 57
        await history.load()

        history.start()

        assert fake_gateway.watch.call_args.kwargs["from_block"] == 57


class TestBalanceView:

    @pytest.mark.asyncio
    async def test_refresh_and_format(self, fake_gateway):
        fake_gateway.get_balance.return_value = 1_500_000_000_000_000_000
        balance = BalanceView(fake_gateway)

        assert balance.formatted is None
        await balance.refresh()

        assert balance.raw == 1_500_000_000_000_000_000
        assert balance.formatted == "1.5"
        fake_gateway.get_balance.assert_awaited_once_with(WALLET)

    @pytest.mark.asyncio
    async def test_refreshes_on_events_touching_wallet(self, fake_gateway):
        balance = BalanceView(fake_gateway)

        await balance.on_token_events("Transfer", [
            {"args": {"from": RECIPIENT, "to": SETTLEMENT, "value": 1}},
        ])
        fake_gateway.get_balance.assert_not_awaited()

        await balance.on_token_events("Mint", [
            {"args": {"to": WALLET_MIXED, "amount": 1, "reason": ""}},
        ])
        fake_gateway.get_balance.assert_awaited_once()
