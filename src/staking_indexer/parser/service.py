"""Event parsing service.

Reads one page of unprocessed event records, decodes their payloads and
feeds the ledger. The ledger write and the processed mark are independent
units of work: a record is marked processed after dispatch even when the
ledger write failed. Records whose payload cannot be decoded stay
unprocessed and are retried on every later cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from staking_indexer.parser.decoder import DecodePayloadError, decode_stake_payload
from staking_indexer.parser.ledger import LedgerUpdater
from staking_indexer.storage.query import PersistenceError
from staking_indexer.storage.repos import EventRecordDTO, EventRecordRepository

if TYPE_CHECKING:
    from staking_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


@dataclass
class ParseStats:
    """Outcome of one parse pass."""

    fetched: int = 0
    processed: int = 0
    decode_failures: int = 0
    ledger_failures: int = 0
    mark_failures: int = 0


class EventParser:
    """Decodes unprocessed events and applies them to the staking ledger.

    Example:
        ```python
        parser = EventParser(db, page_size=10)
        stats = await parser.parse_once()
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        ledger: LedgerUpdater | None = None,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._db = db
        self._ledger = ledger or LedgerUpdater()
        self._page_size = page_size

    async def parse_once(self) -> ParseStats:
        """Process one page of unprocessed events, oldest first."""
        stats = ParseStats()
        async with self._db.get_async_session() as session:
            records = await EventRecordRepository(session).list_unprocessed(limit=self._page_size)
        stats.fetched = len(records)

        for record in records:
            await self._process(record, stats)

        if records:
            logger.info(
                "Parsed %d event(s): processed=%d, decode_failures=%d, ledger_failures=%d",
                stats.fetched,
                stats.processed,
                stats.decode_failures,
                stats.ledger_failures,
            )
        return stats

    async def _process(self, record: EventRecordDTO, stats: ParseStats) -> None:
        try:
            payload = decode_stake_payload(record.raw_data)
        except DecodePayloadError as e:
            stats.decode_failures += 1
            logger.error("Failed to decode event %s (tx=%s): %s", record.id, record.tx_hash, e)
            return

        try:
            async with self._db.get_async_session() as session:
                await self._ledger.apply(
                    session,
                    event_type=record.event_type,
                    wallet=payload.wallet,
                    amount=payload.amount,
                )
        except (PersistenceError, SQLAlchemyError) as e:
            stats.ledger_failures += 1
            logger.error("Ledger update failed for event %s: %s", record.id, e)

        if record.id is None:
            return
        try:
            async with self._db.get_async_session() as session:
                await EventRecordRepository(session).mark_processed(record.id)
        except (PersistenceError, SQLAlchemyError) as e:
            stats.mark_failures += 1
            logger.error("Failed to mark event %s processed: %s", record.id, e)
            return

        stats.processed += 1
        logger.info(
            "Processed %s - %s - %d (event %s)",
            record.event_type,
            payload.wallet,
            payload.amount,
            record.id,
        )
