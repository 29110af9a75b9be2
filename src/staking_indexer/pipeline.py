"""Main pipeline orchestrator for the staking indexer.

This module provides the Pipeline class that wires together the storage
handle, RPC pools, scanner, ingester, parser and their schedulers, and owns
their start/stop lifecycle.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from redis.asyncio import Redis

from staking_indexer.chain.pool import RpcPool
from staking_indexer.config import Settings, get_settings
from staking_indexer.indexer.ingester import EventIngester
from staking_indexer.indexer.scanner import ChainScanner
from staking_indexer.parser.service import EventParser
from staking_indexer.scheduler import ParseScheduler, SyncScheduler
from staking_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    last_error: str | None = None


class Pipeline:
    """Main pipeline orchestrator.

    Pipeline flow:
        ScanTasks -> ChainScanner -> EventIngester -> EventRecords
        EventRecords -> EventParser -> LedgerUpdater -> UserLedgers

    Example:
        ```python
        from staking_indexer.config import get_settings
        from staking_indexer.pipeline import Pipeline

        pipeline = Pipeline(get_settings())
        await pipeline.start()
        # Loops run until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(self, settings: Settings | None = None, *, init_schema: bool = False) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            init_schema: Create missing tables on start (local runs; use Alembic otherwise).
        """
        self._settings = settings or get_settings()
        self._init_schema = init_schema

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._db_manager: DatabaseManager | None = None
        self._rpc_pool: RpcPool | None = None
        self._sync_scheduler: SyncScheduler | None = None
        self._parse_scheduler: ParseScheduler | None = None

        self._stop_event: asyncio.Event | None = None

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def sync_scheduler(self) -> SyncScheduler | None:
        return self._sync_scheduler

    @property
    def parse_scheduler(self) -> ParseScheduler | None:
        return self._parse_scheduler

    async def start(self) -> None:
        """Start the pipeline.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            await self._initialize_components()
            self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        In-flight cycles are allowed to finish before resources are released.
        """
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def _initialize_components(self) -> None:
        """Initialize all pipeline components."""
        settings = self._settings

        if settings.redis.url:
            logger.debug("Initializing Redis connection...")
            self._redis = Redis.from_url(settings.redis.url)

        logger.debug("Initializing database manager...")
        self._db_manager = DatabaseManager(settings.database.url)
        if self._init_schema:
            await self._db_manager.init_schema_async()

        pools = settings.chains.endpoint_pools()
        if not pools:
            logger.warning("No chain RPC endpoints configured; every chain will be skipped")
        logger.debug("Initializing RPC pools for chains %s...", sorted(pools))
        self._rpc_pool = RpcPool(
            pools,
            redis=self._redis,
            cache_ttl_seconds=settings.rpc.cache_ttl_seconds,
            max_requests_per_second=settings.rpc.max_requests_per_second,
            max_retries=settings.rpc.max_retries,
            retry_delay_seconds=settings.rpc.retry_delay_seconds,
        )

        scanner = ChainScanner(
            self._rpc_pool,
            self._db_manager,
            block_range=settings.scan.block_range,
            confirmation_lag=settings.scan.confirmation_lag,
        )
        ingester = EventIngester(self._db_manager, batch_size=settings.scan.insert_batch_size)
        self._sync_scheduler = SyncScheduler(
            self._db_manager,
            scanner,
            ingester,
            interval_seconds=settings.scan.interval_seconds,
        )

        parser = EventParser(self._db_manager, page_size=settings.parse.page_size)
        self._parse_scheduler = ParseScheduler(
            parser,
            interval_seconds=settings.parse.interval_seconds,
        )

    def _start_background_services(self) -> None:
        """Start the scan and parse loops."""
        if self._sync_scheduler:
            logger.debug("Starting sync loop...")
            self._sync_scheduler.start()
        if self._parse_scheduler:
            logger.debug("Starting parse loop...")
            self._parse_scheduler.start()

    async def _stop_background_services(self) -> None:
        """Stop the scan and parse loops."""
        if self._sync_scheduler:
            logger.debug("Stopping sync loop...")
            await self._sync_scheduler.stop()
            self._sync_scheduler = None
        if self._parse_scheduler:
            logger.debug("Stopping parse loop...")
            await self._parse_scheduler.stop()
            self._parse_scheduler = None

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._rpc_pool:
            await self._rpc_pool.aclose()
            self._rpc_pool = None

        if self._db_manager:
            await self._db_manager.dispose_async()
            self._db_manager = None

        if self._redis:
            await self._redis.aclose()
            self._redis = None

        logger.debug("Resources cleaned up")

    async def run(self) -> None:
        """Start the pipeline and run until interrupted.

        Example:
            ```python
            pipeline = Pipeline()
            try:
                await pipeline.run()
            except KeyboardInterrupt:
                pass
            ```
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Ask ``run()`` to return; safe to call from a signal handler."""
        if self._stop_event:
            self._stop_event.set()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
