"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest

from staking_indexer.storage.database import DatabaseManager
from staking_indexer.storage.repos import EventRecordDTO, ScanTaskDTO

STAKING_CONTRACT = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
WALLET = "0x1234567890abcdef1234567890abcdef12345678"


def _stake_payload(wallet: str, amount: int) -> str:
    return "0x" + wallet.lower().removeprefix("0x").rjust(64, "0") + format(amount, "064x")


@pytest.fixture
def wallet() -> str:
    """Sample staker wallet address."""
    return WALLET


@pytest.fixture
def staking_contract() -> str:
    """Sample staking contract address (lower case)."""
    return STAKING_CONTRACT


@pytest.fixture
def stake_payload() -> Callable[[str, int], str]:
    """Build the hex data field of a Staked/UnStaked log."""
    return _stake_payload


@pytest.fixture
def make_event() -> Callable[..., EventRecordDTO]:
    """Factory for unprocessed event records."""

    def _make(
        *,
        tx_hash: str,
        event_type: str = "Staked",
        raw_data: str | None = None,
        amount: int = 1000,
        chain_id: int = 1,
        block_number: int = 150,
        sender: str = WALLET,
    ) -> EventRecordDTO:
        return EventRecordDTO(
            chain_id=chain_id,
            sender=sender,
            event_type=event_type,
            contract_address=STAKING_CONTRACT,
            topic0="0x" + "ab" * 32,
            topic1="",
            topic2="",
            topic3="",
            raw_data=raw_data if raw_data is not None else _stake_payload(WALLET, amount),
            log_index=0,
            tx_hash=tx_hash,
            block_number=block_number,
            timestamp=1_700_000_000,
            tx_index=0,
        )

    return _make


@pytest.fixture
async def db_manager(tmp_path) -> AsyncIterator[DatabaseManager]:
    """DatabaseManager over a throwaway SQLite file with the schema created."""
    db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}")
    await db.init_schema_async()
    yield db
    await db.dispose_async()


@pytest.fixture
def staked_task() -> ScanTaskDTO:
    return ScanTaskDTO(
        chain_id=1,
        contract_address=STAKING_CONTRACT,
        from_block=100,
        event_type="Staked",
        event_signature="Staked(address,uint256)",
    )


@pytest.fixture
def unstaked_task() -> ScanTaskDTO:
    return ScanTaskDTO(
        chain_id=1,
        contract_address=STAKING_CONTRACT,
        from_block=100,
        event_type="UnStaked",
        event_signature="UnStaked(address,uint256)",
    )
