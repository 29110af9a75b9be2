"""Per-wallet staking ledger updates.

Amounts are Python ints parsed from, and written back as, decimal strings.
``current_staked`` is not clamped: an UnStaked amount larger than the
current stake leaves a negative balance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from staking_indexer.storage.repos import UserLedgerDTO, UserLedgerRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

STAKED = "Staked"
UNSTAKED = "UnStaked"


class LedgerUpdater:
    """Applies Staked/UnStaked deltas with a read-modify-write (no row lock)."""

    async def apply(
        self,
        session: AsyncSession,
        *,
        event_type: str,
        wallet: str,
        amount: int,
    ) -> UserLedgerDTO | None:
        """Apply one event; other event types are ignored and return None."""
        if event_type == STAKED:
            return await self.apply_staked(session, wallet=wallet, amount=amount)
        if event_type == UNSTAKED:
            return await self.apply_unstaked(session, wallet=wallet, amount=amount)
        logger.debug("Ignoring event type %s for %s", event_type, wallet)
        return None

    async def apply_staked(self, session: AsyncSession, *, wallet: str, amount: int) -> UserLedgerDTO:
        repo = UserLedgerRepository(session)
        ledger = await repo.get_by_address(wallet)
        if ledger is None:
            ledger = UserLedgerDTO(
                address=wallet,
                total_staked=str(amount),
                total_unstaked="0",
                current_staked=str(amount),
            )
            ledger.id = await repo.insert(ledger)
            return ledger

        ledger.total_staked = str(int(ledger.total_staked) + amount)
        ledger.current_staked = str(int(ledger.current_staked) + amount)
        await repo.update_totals(
            wallet,
            total_staked=ledger.total_staked,
            current_staked=ledger.current_staked,
        )
        return ledger

    async def apply_unstaked(self, session: AsyncSession, *, wallet: str, amount: int) -> UserLedgerDTO:
        repo = UserLedgerRepository(session)
        ledger = await repo.get_by_address(wallet)
        if ledger is None:
            ledger = UserLedgerDTO(
                address=wallet,
                total_staked="0",
                total_unstaked=str(amount),
                current_staked="0",
            )
            ledger.id = await repo.insert(ledger)
            return ledger

        current = int(ledger.current_staked)
        ledger.total_unstaked = str(int(ledger.total_unstaked) + amount)
        ledger.current_staked = str(current - amount)
        if current < amount:
            logger.warning(
                "UnStaked amount exceeds current stake: wallet=%s, current=%d, amount=%d, after=%s",
                wallet,
                current,
                amount,
                ledger.current_staked,
            )
        await repo.update_totals(
            wallet,
            total_unstaked=ledger.total_unstaked,
            current_staked=ledger.current_staked,
        )
        return ledger
