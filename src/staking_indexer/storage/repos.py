"""Repository pattern implementations for data access.

This module provides data access abstractions for scan tasks, indexed
event records, and the per-wallet staking ledger.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from staking_indexer.storage.models import EventRecordModel, ScanTaskModel, UserLedgerModel
from staking_indexer.storage.query import (
    DEFAULT_BATCH_SIZE,
    OrderBy,
    QueryStore,
    eq,
    lt,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

UNPROCESSED = 0
PROCESSED = 1


@dataclass
class ScanTaskDTO:
    """Data transfer object for scan tasks."""

    chain_id: int
    contract_address: str
    from_block: int
    event_type: str
    event_signature: str
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ScanTaskDTO:
        return cls(
            id=row["id"],
            chain_id=row["chain_id"],
            contract_address=row["contract_address"],
            from_block=row["from_block"],
            event_type=row["event_type"],
            event_signature=row["event_signature"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass
class EventRecordDTO:
    """Data transfer object for indexed contract events."""

    chain_id: int
    sender: str
    event_type: str
    contract_address: str
    topic0: str
    topic1: str
    topic2: str
    topic3: str
    raw_data: str
    log_index: int
    tx_hash: str
    block_number: int
    timestamp: int
    tx_index: int
    processed_flag: int = UNPROCESSED
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> EventRecordDTO:
        return cls(
            id=row["id"],
            chain_id=row["chain_id"],
            sender=row["sender"],
            event_type=row["event_type"],
            contract_address=row["contract_address"],
            topic0=row["topic0"],
            topic1=row["topic1"],
            topic2=row["topic2"],
            topic3=row["topic3"],
            raw_data=row["raw_data"],
            log_index=row["log_index"],
            tx_hash=row["tx_hash"],
            block_number=row["block_number"],
            timestamp=row["timestamp"],
            tx_index=row["tx_index"],
            processed_flag=row["processed_flag"],
            created_at=row.get("created_at"),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "sender": self.sender,
            "event_type": self.event_type,
            "contract_address": self.contract_address,
            "topic0": self.topic0,
            "topic1": self.topic1,
            "topic2": self.topic2,
            "topic3": self.topic3,
            "raw_data": self.raw_data,
            "log_index": self.log_index,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "tx_index": self.tx_index,
            "processed_flag": self.processed_flag,
        }


@dataclass
class UserLedgerDTO:
    """Data transfer object for a wallet's staking totals.

    Amounts are decimal strings so values beyond 64 bits survive every hop
    between Python and the database.
    """

    address: str
    total_staked: str
    total_unstaked: str
    current_staked: str
    id: int | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> UserLedgerDTO:
        return cls(
            id=row["id"],
            address=row["address"],
            total_staked=row["total_staked"],
            total_unstaked=row["total_unstaked"],
            current_staked=row["current_staked"],
            updated_at=row.get("updated_at"),
        )


class ScanTaskRepository:
    """Repository for tracked contract events and their watermarks."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._store = QueryStore(session)

    async def list_all(self) -> list[ScanTaskDTO]:
        rows = await self._store.select(ScanTaskModel, order_by=[OrderBy("id")])
        return [ScanTaskDTO.from_row(r) for r in rows]

    async def list_by_chain(self, chain_id: int) -> list[ScanTaskDTO]:
        rows = await self._store.select(
            ScanTaskModel,
            where=[eq("chain_id", chain_id)],
            order_by=[OrderBy("id")],
        )
        return [ScanTaskDTO.from_row(r) for r in rows]

    async def insert(self, dto: ScanTaskDTO) -> int:
        return await self._store.insert(
            ScanTaskModel,
            {
                "chain_id": dto.chain_id,
                "contract_address": dto.contract_address,
                "from_block": dto.from_block,
                "event_type": dto.event_type,
                "event_signature": dto.event_signature,
            },
        )

    async def advance_watermark(self, chain_id: int, next_from_block: int) -> int:
        """Move every task of a chain forward to ``next_from_block``.

        Tasks already at or past ``next_from_block`` are left alone, so
        ``from_block`` never decreases. Returns the number of tasks moved.
        """
        return await self._store.update(
            ScanTaskModel,
            {"from_block": next_from_block},
            where=[eq("chain_id", chain_id), lt("from_block", next_from_block)],
        )


class EventRecordRepository:
    """Repository for indexed contract events."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._store = QueryStore(session)

    async def exists(self, *, chain_id: int, event_type: str, tx_hash: str) -> bool:
        count = await self._store.count(
            EventRecordModel,
            where=[
                eq("chain_id", chain_id),
                eq("event_type", event_type),
                eq("tx_hash", tx_hash),
            ],
        )
        return count > 0

    async def insert_batch(
        self,
        records: Sequence[EventRecordDTO],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        if not records:
            return 0
        return await self._store.insert_batch(
            EventRecordModel,
            [r.to_row() for r in records],
            batch_size=batch_size,
        )

    async def list_unprocessed(self, *, limit: int, offset: int = 0) -> list[EventRecordDTO]:
        rows = await self._store.select(
            EventRecordModel,
            where=[eq("processed_flag", UNPROCESSED)],
            order_by=[OrderBy("id")],
            limit=limit,
            offset=offset or None,
        )
        return [EventRecordDTO.from_row(r) for r in rows]

    async def count_unprocessed(self) -> int:
        return await self._store.count(EventRecordModel, where=[eq("processed_flag", UNPROCESSED)])

    async def mark_processed(self, record_id: int) -> int:
        return await self._store.update(
            EventRecordModel,
            {"processed_flag": PROCESSED},
            where=[eq("id", record_id)],
        )

    async def list_by_sender(
        self,
        sender: str,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[EventRecordDTO]:
        """Newest-first events sent by a wallet (read-only access for display)."""
        rows = await self._store.select(
            EventRecordModel,
            where=[eq("sender", sender)],
            order_by=[OrderBy("block_number", descending=True), OrderBy("log_index", descending=True)],
            limit=limit,
            offset=offset or None,
        )
        return [EventRecordDTO.from_row(r) for r in rows]


class UserLedgerRepository:
    """Repository for per-wallet staking totals."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._store = QueryStore(session)

    async def get_by_address(self, address: str) -> UserLedgerDTO | None:
        rows = await self._store.select(
            UserLedgerModel,
            where=[eq("address", address)],
            limit=1,
        )
        return UserLedgerDTO.from_row(rows[0]) if rows else None

    async def insert(self, dto: UserLedgerDTO) -> int:
        return await self._store.insert(
            UserLedgerModel,
            {
                "address": dto.address,
                "total_staked": dto.total_staked,
                "total_unstaked": dto.total_unstaked,
                "current_staked": dto.current_staked,
            },
        )

    async def update_totals(self, address: str, **totals: str) -> int:
        """Overwrite the given amount columns for a wallet."""
        unknown = set(totals) - {"total_staked", "total_unstaked", "current_staked"}
        if unknown:
            raise ValueError(f"Unknown ledger fields: {sorted(unknown)}")
        return await self._store.update(UserLedgerModel, totals, where=[eq("address", address)])
