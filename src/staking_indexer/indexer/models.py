"""Data models for the scan/ingest stage."""

from __future__ import annotations

from dataclasses import dataclass, field

from staking_indexer.storage.repos import EventRecordDTO, ScanTaskDTO


@dataclass(frozen=True)
class ScanWindow:
    """Inclusive block range examined in one cycle."""

    from_block: int
    to_block: int

    @property
    def next_from_block(self) -> int:
        return self.to_block + 1


def compute_scan_window(
    *,
    watermark: int,
    head: int,
    confirmation_lag: int,
    block_range: int,
) -> ScanWindow | None:
    """Compute the window to scan, or None when nothing is scannable yet.

    ``to_block`` trails the head by ``confirmation_lag`` blocks and is capped
    at ``watermark + block_range``.
    """
    to_block = head - confirmation_lag
    if to_block <= 0 or to_block < watermark:
        return None
    if watermark + block_range < to_block:
        to_block = watermark + block_range
    return ScanWindow(from_block=watermark, to_block=to_block)


@dataclass
class ChainPlan:
    """Scan tasks of one chain, with the chain-level watermark."""

    chain_id: int
    watermark: int
    contracts: list[str] = field(default_factory=list)
    tasks: list[ScanTaskDTO] = field(default_factory=list)


def group_tasks_by_chain(tasks: list[ScanTaskDTO]) -> dict[int, ChainPlan]:
    """Group tasks per chain; the watermark is the lowest task from_block."""
    plans: dict[int, ChainPlan] = {}
    for task in tasks:
        plan = plans.get(task.chain_id)
        if plan is None:
            plan = ChainPlan(chain_id=task.chain_id, watermark=task.from_block)
            plans[task.chain_id] = plan
        elif task.from_block < plan.watermark:
            plan.watermark = task.from_block

        if task.contract_address.lower() not in {c.lower() for c in plan.contracts}:
            plan.contracts.append(task.contract_address)
        plan.tasks.append(task)
    return plans


@dataclass
class ChainScanResult:
    """Records staged for one chain and the watermark to store after writing them."""

    chain_id: int
    window: ScanWindow
    records: list[EventRecordDTO] = field(default_factory=list)

    @property
    def next_from_block(self) -> int:
        return self.window.next_from_block


@dataclass
class IngestStats:
    """Outcome of one ingest pass."""

    chains_written: int = 0
    chains_failed: int = 0
    records_inserted: int = 0
    tasks_advanced: int = 0
