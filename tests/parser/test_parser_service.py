"""Tests for the event parsing service."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from staking_indexer.parser.ledger import LedgerUpdater
from staking_indexer.parser.service import EventParser
from staking_indexer.storage.database import DatabaseManager
from staking_indexer.storage.query import PersistenceError
from staking_indexer.storage.repos import EventRecordRepository, UserLedgerRepository


async def _insert(db: DatabaseManager, *records) -> None:
    async with db.get_async_session() as session:
        await EventRecordRepository(session).insert_batch(list(records))


async def _unprocessed_hashes(db: DatabaseManager) -> list[str]:
    async with db.get_async_session() as session:
        return [r.tx_hash for r in await EventRecordRepository(session).list_unprocessed(limit=100)]


async def _current_staked(db: DatabaseManager, wallet: str) -> str | None:
    async with db.get_async_session() as session:
        ledger = await UserLedgerRepository(session).get_by_address(wallet)
    return ledger.current_staked if ledger else None


class TestEventParser:
    @pytest.mark.asyncio
    async def test_applies_events_in_order(self, db_manager, make_event, wallet) -> None:
        await _insert(
            db_manager,
            make_event(tx_hash="0x01", amount=1000),
            make_event(tx_hash="0x02", event_type="UnStaked", amount=300),
        )

        stats = await EventParser(db_manager).parse_once()

        assert stats.fetched == 2
        assert stats.processed == 2
        assert await _current_staked(db_manager, wallet) == "700"
        assert await _unprocessed_hashes(db_manager) == []

    @pytest.mark.asyncio
    async def test_processes_one_page_per_cycle(self, db_manager, make_event) -> None:
        await _insert(db_manager, *(make_event(tx_hash=f"0x{i:02x}", amount=1) for i in range(5)))

        parser = EventParser(db_manager, page_size=2)
        stats = await parser.parse_once()

        assert stats.processed == 2
        assert await _unprocessed_hashes(db_manager) == ["0x02", "0x03", "0x04"]

        await parser.parse_once()
        await parser.parse_once()
        assert await _unprocessed_hashes(db_manager) == []

    @pytest.mark.asyncio
    async def test_malformed_payload_stays_unprocessed(self, db_manager, make_event, wallet) -> None:
        await _insert(
            db_manager,
            make_event(tx_hash="0x01", raw_data="0x1234"),
            make_event(tx_hash="0x02", amount=5),
        )
        parser = EventParser(db_manager)

        stats = await parser.parse_once()

        assert stats.decode_failures == 1
        assert stats.processed == 1
        assert await _unprocessed_hashes(db_manager) == ["0x01"]
        assert await _current_staked(db_manager, wallet) == "5"

        # Retried, and still failing, on the next cycle
        again = await parser.parse_once()
        assert again.fetched == 1
        assert again.decode_failures == 1
        assert await _unprocessed_hashes(db_manager) == ["0x01"]

    @pytest.mark.asyncio
    async def test_ledger_failure_still_marks_processed(self, db_manager, make_event, wallet) -> None:
        await _insert(db_manager, make_event(tx_hash="0x01", amount=1000))
        ledger = LedgerUpdater()
        ledger.apply = AsyncMock(side_effect=PersistenceError("deadlock detected"))

        stats = await EventParser(db_manager, ledger).parse_once()

        assert stats.ledger_failures == 1
        assert stats.processed == 1
        assert await _unprocessed_hashes(db_manager) == []
        assert await _current_staked(db_manager, wallet) is None

    @pytest.mark.asyncio
    async def test_unknown_event_type_marked_processed(self, db_manager, make_event, wallet) -> None:
        await _insert(db_manager, make_event(tx_hash="0x01", event_type="Claimed"))

        stats = await EventParser(db_manager).parse_once()

        assert stats.processed == 1
        assert await _current_staked(db_manager, wallet) is None
        assert await _unprocessed_hashes(db_manager) == []

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, db_manager) -> None:
        stats = await EventParser(db_manager).parse_once()
        assert stats.fetched == 0
        assert stats.processed == 0

    def test_rejects_invalid_page_size(self, db_manager) -> None:
        with pytest.raises(ValueError):
            EventParser(db_manager, page_size=0)
