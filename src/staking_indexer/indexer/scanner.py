"""Concurrent multi-chain contract log scanner.

For every chain that has scan tasks, the scanner picks a random RPC endpoint,
computes a confirmed block window starting at the chain watermark, fetches
matching logs and stages new ``EventRecordDTO`` rows. Chains are scanned
concurrently; a failure on one chain never affects the others.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from web3 import AsyncWeb3

from staking_indexer.chain.client import signature_hash, to_hex
from staking_indexer.indexer.models import (
    ChainPlan,
    ChainScanResult,
    compute_scan_window,
    group_tasks_by_chain,
)
from staking_indexer.storage.repos import EventRecordDTO, EventRecordRepository, ScanTaskDTO

if TYPE_CHECKING:
    from staking_indexer.chain.client import ChainClient
    from staking_indexer.chain.pool import RpcPool
    from staking_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_RANGE = 100
DEFAULT_CONFIRMATION_LAG = 6


def _match_task(
    tasks: list[ScanTaskDTO],
    *,
    topic0: str,
    address: str,
    hashes: dict[str, str],
) -> ScanTaskDTO | None:
    """First task whose signature hash and contract match the log."""
    address = address.lower()
    for task in tasks:
        if hashes[task.event_signature] == topic0 and task.contract_address.lower() == address:
            return task
    return None


class ChainScanner:
    """Scans every tracked chain for matching contract logs.

    Example:
        ```python
        scanner = ChainScanner(pool, db, block_range=100, confirmation_lag=6)
        results = await scanner.scan(tasks)
        ```
    """

    def __init__(
        self,
        pool: RpcPool,
        db: DatabaseManager,
        *,
        block_range: int = DEFAULT_BLOCK_RANGE,
        confirmation_lag: int = DEFAULT_CONFIRMATION_LAG,
    ) -> None:
        self._pool = pool
        self._db = db
        self._block_range = block_range
        self._confirmation_lag = confirmation_lag

    async def scan(self, tasks: list[ScanTaskDTO]) -> list[ChainScanResult]:
        """Scan all chains concurrently and collect the successful results."""
        plans = group_tasks_by_chain(tasks)
        if not plans:
            return []

        logger.info("Scanning chains: %s", sorted(plans))
        results = await asyncio.gather(*(self._scan_chain_safe(plan) for plan in plans.values()))
        return [r for r in results if r is not None]

    async def _scan_chain_safe(self, plan: ChainPlan) -> ChainScanResult | None:
        try:
            return await self.scan_chain(plan)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Scan failed for chain %d: %s", plan.chain_id, e)
            return None

    async def scan_chain(self, plan: ChainPlan) -> ChainScanResult | None:
        """Scan one chain; returns None when the chain is skipped this cycle."""
        client = self._pool.pick(plan.chain_id)
        if client is None:
            logger.warning("No RPC endpoint configured for chain %d", plan.chain_id)
            return None

        head = await client.get_block_number()
        window = compute_scan_window(
            watermark=plan.watermark,
            head=head,
            confirmation_lag=self._confirmation_lag,
            block_range=self._block_range,
        )
        if window is None:
            logger.warning(
                "Invalid block range: chain_id=%d, head=%d, confirmation_lag=%d, from_block=%d",
                plan.chain_id,
                head,
                self._confirmation_lag,
                plan.watermark,
            )
            return None

        logger.info(
            "Scanning chain %d blocks %d-%d", plan.chain_id, window.from_block, window.to_block
        )

        hashes = {t.event_signature: signature_hash(t.event_signature) for t in plan.tasks}
        topic_filter = list(dict.fromkeys(hashes[t.event_signature] for t in plan.tasks))
        logs = await client.get_logs(
            {
                "address": [AsyncWeb3.to_checksum_address(c) for c in plan.contracts],
                "fromBlock": window.from_block,
                "toBlock": window.to_block,
                "topics": [topic_filter],
            }
        )

        result = ChainScanResult(chain_id=plan.chain_id, window=window)
        staged: set[tuple[str, str]] = set()
        for log in logs:
            record = await self._stage_log(client, plan, log, hashes=hashes, staged=staged)
            if record is not None:
                result.records.append(record)

        logger.info(
            "Chain %d: %d log(s), %d new event(s) in blocks %d-%d",
            plan.chain_id,
            len(logs),
            len(result.records),
            window.from_block,
            window.to_block,
        )
        return result

    async def _stage_log(
        self,
        client: ChainClient,
        plan: ChainPlan,
        log: dict[str, Any],
        *,
        hashes: dict[str, str],
        staged: set[tuple[str, str]],
    ) -> EventRecordDTO | None:
        topics = [to_hex(t) for t in log.get("topics") or []]
        if not topics or log.get("removed"):
            return None

        address = str(log["address"])
        task = _match_task(plan.tasks, topic0=topics[0], address=address, hashes=hashes)
        if task is None:
            return None

        tx_hash = to_hex(log["transactionHash"])
        block_number = int(log["blockNumber"])
        key = (task.event_type, tx_hash)
        if key in staged or await self._already_indexed(plan.chain_id, task.event_type, tx_hash):
            logger.warning(
                "Event already indexed: chain_id=%d, event_type=%s, block_number=%d, tx_hash=%s",
                plan.chain_id,
                task.event_type,
                block_number,
                tx_hash,
            )
            return None

        sender = await client.get_transaction_sender(tx_hash)
        timestamp = await client.get_block_timestamp(block_number)
        staged.add(key)

        padded = topics + [""] * (4 - len(topics))
        record = EventRecordDTO(
            chain_id=plan.chain_id,
            sender=sender,
            event_type=task.event_type,
            contract_address=address,
            topic0=padded[0],
            topic1=padded[1],
            topic2=padded[2],
            topic3=padded[3],
            raw_data=to_hex(log.get("data") or b""),
            log_index=int(log.get("logIndex") or 0),
            tx_hash=tx_hash,
            block_number=block_number,
            timestamp=timestamp,
            tx_index=int(log.get("transactionIndex") or 0),
        )
        logger.debug(
            "Staged event: chain_id=%d, sender=%s, event_type=%s, block_number=%d, tx_hash=%s, log_index=%d",
            record.chain_id,
            record.sender,
            record.event_type,
            record.block_number,
            record.tx_hash,
            record.log_index,
        )
        return record

    async def _already_indexed(self, chain_id: int, event_type: str, tx_hash: str) -> bool:
        async with self._db.get_async_session() as session:
            return await EventRecordRepository(session).exists(
                chain_id=chain_id,
                event_type=event_type,
                tx_hash=tx_hash,
            )
