"""Scan tasks, event records and user ledgers.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "scan_tasks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("contract_address", sa.String(42), nullable=False),
        sa.Column("from_block", sa.BigInteger(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("event_signature", sa.String(255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_scan_tasks_chain", "scan_tasks", ["chain_id"])

    op.create_table(
        "event_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("sender", sa.String(42), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("contract_address", sa.String(42), nullable=False),
        sa.Column("topic0", sa.String(66), nullable=False),
        sa.Column("topic1", sa.String(66), nullable=False),
        sa.Column("topic2", sa.String(66), nullable=False),
        sa.Column("topic3", sa.String(66), nullable=False),
        sa.Column("raw_data", sa.Text(), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("tx_hash", sa.String(66), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("tx_index", sa.Integer(), nullable=False),
        sa.Column("processed_flag", sa.SmallInteger(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_event_records_dedup", "event_records", ["chain_id", "event_type", "tx_hash"]
    )
    op.create_index("idx_event_records_processed", "event_records", ["processed_flag", "id"])
    op.create_index("idx_event_records_sender", "event_records", ["sender"])

    op.create_table(
        "user_ledgers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("total_staked", sa.String(80), nullable=False, server_default="0"),
        sa.Column("total_unstaked", sa.String(80), nullable=False, server_default="0"),
        sa.Column("current_staked", sa.String(80), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_user_ledgers_address", "user_ledgers", ["address"])


def downgrade() -> None:
    op.drop_index("idx_user_ledgers_address", table_name="user_ledgers")
    op.drop_table("user_ledgers")

    op.drop_index("idx_event_records_sender", table_name="event_records")
    op.drop_index("idx_event_records_processed", table_name="event_records")
    op.drop_index("idx_event_records_dedup", table_name="event_records")
    op.drop_table("event_records")

    op.drop_index("idx_scan_tasks_chain", table_name="scan_tasks")
    op.drop_table("scan_tasks")
