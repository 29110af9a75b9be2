"""Tests for per-wallet staking ledger updates."""

from __future__ import annotations

import pytest

from staking_indexer.parser.ledger import STAKED, UNSTAKED, LedgerUpdater
from staking_indexer.storage.database import DatabaseManager
from staking_indexer.storage.repos import UserLedgerRepository


async def _apply(db: DatabaseManager, event_type: str, wallet: str, amount: int):
    async with db.get_async_session() as session:
        return await LedgerUpdater().apply(session, event_type=event_type, wallet=wallet, amount=amount)


async def _ledger(db: DatabaseManager, wallet: str):
    async with db.get_async_session() as session:
        return await UserLedgerRepository(session).get_by_address(wallet)


class TestLedgerUpdater:
    @pytest.mark.asyncio
    async def test_first_stake_creates_ledger(self, db_manager, wallet) -> None:
        await _apply(db_manager, STAKED, wallet, 1000)

        ledger = await _ledger(db_manager, wallet)
        assert (ledger.total_staked, ledger.total_unstaked, ledger.current_staked) == ("1000", "0", "1000")

    @pytest.mark.asyncio
    async def test_stake_then_unstake(self, db_manager, wallet) -> None:
        await _apply(db_manager, STAKED, wallet, 1000)
        await _apply(db_manager, UNSTAKED, wallet, 300)

        ledger = await _ledger(db_manager, wallet)
        assert (ledger.total_staked, ledger.total_unstaked, ledger.current_staked) == ("1000", "300", "700")

    @pytest.mark.asyncio
    async def test_repeated_stakes_accumulate(self, db_manager, wallet) -> None:
        for amount in (1, 2, 3):
            await _apply(db_manager, STAKED, wallet, amount)

        ledger = await _ledger(db_manager, wallet)
        assert (ledger.total_staked, ledger.current_staked) == ("6", "6")

    @pytest.mark.asyncio
    async def test_overdrawn_balance_goes_negative(self, db_manager, wallet) -> None:
        await _apply(db_manager, STAKED, wallet, 100)
        await _apply(db_manager, UNSTAKED, wallet, 300)

        ledger = await _ledger(db_manager, wallet)
        assert (ledger.total_staked, ledger.total_unstaked, ledger.current_staked) == ("100", "300", "-200")

    @pytest.mark.asyncio
    async def test_first_event_unstake(self, db_manager, wallet) -> None:
        await _apply(db_manager, UNSTAKED, wallet, 50)

        ledger = await _ledger(db_manager, wallet)
        assert (ledger.total_staked, ledger.total_unstaked, ledger.current_staked) == ("0", "50", "0")

    @pytest.mark.asyncio
    async def test_amounts_beyond_64_bits(self, db_manager, wallet) -> None:
        big = 2**200
        await _apply(db_manager, STAKED, wallet, big)
        await _apply(db_manager, STAKED, wallet, big)
        await _apply(db_manager, UNSTAKED, wallet, 1)

        ledger = await _ledger(db_manager, wallet)
        assert ledger.total_staked == str(2 * big)
        assert ledger.current_staked == str(2 * big - 1)

    @pytest.mark.asyncio
    async def test_other_event_types_ignored(self, db_manager, wallet) -> None:
        assert await _apply(db_manager, "Claimed", wallet, 5) is None
        assert await _ledger(db_manager, wallet) is None

    @pytest.mark.asyncio
    async def test_wallets_are_independent(self, db_manager, wallet) -> None:
        other = "0x" + "f" * 40
        await _apply(db_manager, STAKED, wallet, 10)
        await _apply(db_manager, STAKED, other, 20)

        assert (await _ledger(db_manager, wallet)).current_staked == "10"
        assert (await _ledger(db_manager, other)).current_staked == "20"
