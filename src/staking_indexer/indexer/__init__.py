"""Indexing layer - multi-chain log scanning and event ingestion."""

from staking_indexer.indexer.ingester import EventIngester
from staking_indexer.indexer.models import (
    ChainPlan,
    ChainScanResult,
    IngestStats,
    ScanWindow,
    compute_scan_window,
    group_tasks_by_chain,
)
from staking_indexer.indexer.scanner import ChainScanner

__all__ = [
    "ChainPlan",
    "ChainScanResult",
    "ChainScanner",
    "EventIngester",
    "IngestStats",
    "ScanWindow",
    "compute_scan_window",
    "group_tasks_by_chain",
]
