"""SQLAlchemy models for persistent storage.

This module defines the database schema for tracked scan tasks, indexed
contract events, and the per-wallet staking ledger.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, SmallInteger, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Decimal strings for uint256 values: 78 digits plus an optional sign.
AMOUNT_STRING_LENGTH = 80


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class ScanTaskModel(Base):
    """Contract event tracked on a chain, with its scan watermark."""

    __tablename__ = "scan_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)

    # Next unscanned block; only the scanner moves it, and only forward.
    from_block: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    event_signature: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_scan_tasks_chain", "chain_id"),)


class EventRecordModel(Base):
    """Raw contract log matched to a scan task."""

    __tablename__ = "event_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    sender: Mapped[str] = mapped_column(String(42), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)

    topic0: Mapped[str] = mapped_column(String(66), nullable=False, default="")
    topic1: Mapped[str] = mapped_column(String(66), nullable=False, default="")
    topic2: Mapped[str] = mapped_column(String(66), nullable=False, default="")
    topic3: Mapped[str] = mapped_column(String(66), nullable=False, default="")
    raw_data: Mapped[str] = mapped_column(Text, nullable=False)

    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tx_index: Mapped[int] = mapped_column(Integer, nullable=False)

    processed_flag: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    # Uniqueness of (chain_id, event_type, tx_hash) is checked by the scanner
    # before insert; the index only serves that lookup.
    __table_args__ = (
        Index("idx_event_records_dedup", "chain_id", "event_type", "tx_hash"),
        Index("idx_event_records_processed", "processed_flag", "id"),
        Index("idx_event_records_sender", "sender"),
    )


class UserLedgerModel(Base):
    """Per-wallet staking totals stored as decimal strings."""

    __tablename__ = "user_ledgers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(42), nullable=False)

    total_staked: Mapped[str] = mapped_column(String(AMOUNT_STRING_LENGTH), nullable=False, default="0")
    total_unstaked: Mapped[str] = mapped_column(String(AMOUNT_STRING_LENGTH), nullable=False, default="0")
    current_staked: Mapped[str] = mapped_column(String(AMOUNT_STRING_LENGTH), nullable=False, default="0")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_user_ledgers_address", "address"),)
