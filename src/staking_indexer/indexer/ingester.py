"""Persistence of scanned events and watermark advancement."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from staking_indexer.indexer.models import ChainScanResult, IngestStats
from staking_indexer.storage.query import DEFAULT_BATCH_SIZE, PersistenceError
from staking_indexer.storage.repos import EventRecordRepository, ScanTaskRepository

if TYPE_CHECKING:
    from staking_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class EventIngester:
    """Writes scan results chain by chain.

    For each chain the staged records are inserted first; the chain's
    watermark only moves once that write has committed. The two writes are
    separate units of work, so a crash in between leaves the watermark behind
    and the next scan re-reads the window (duplicates are filtered by the
    scanner's existence check).
    """

    def __init__(self, db: DatabaseManager, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._db = db
        self._batch_size = batch_size

    async def ingest(self, results: list[ChainScanResult]) -> IngestStats:
        stats = IngestStats()
        for result in results:
            try:
                inserted, advanced = await self.ingest_chain(result)
            except (PersistenceError, SQLAlchemyError) as e:
                stats.chains_failed += 1
                logger.error("Failed to persist events for chain %d: %s", result.chain_id, e)
                continue
            stats.chains_written += 1
            stats.records_inserted += inserted
            stats.tasks_advanced += advanced
        return stats

    async def ingest_chain(self, result: ChainScanResult) -> tuple[int, int]:
        """Insert one chain's records, then advance its watermark.

        Returns:
            (records inserted, scan tasks advanced)
        """
        inserted = 0
        if result.records:
            async with self._db.get_async_session() as session:
                inserted = await EventRecordRepository(session).insert_batch(
                    result.records, batch_size=self._batch_size
                )
            logger.info("Chain %d: inserted %d event(s)", result.chain_id, inserted)

        # Empty windows advance too, so they are not rescanned forever.
        async with self._db.get_async_session() as session:
            advanced = await ScanTaskRepository(session).advance_watermark(
                result.chain_id, result.next_from_block
            )
        logger.info(
            "Chain %d: watermark advanced to %d (%d task(s))",
            result.chain_id,
            result.next_from_block,
            advanced,
        )
        return inserted, advanced
