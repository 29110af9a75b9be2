"""Single-flight periodic loops for the scan and parse stages.

Each loop is IDLE or RUNNING. A trigger that arrives while a cycle is running
is dropped, not queued. The next cycle starts ``interval_seconds`` after the
previous one finished (delay after completion, not a fixed rate). Cycle
errors are logged and never stop the loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from staking_indexer.storage.query import PersistenceError
from staking_indexer.storage.repos import ScanTaskRepository

if TYPE_CHECKING:
    from staking_indexer.indexer.ingester import EventIngester
    from staking_indexer.indexer.scanner import ChainScanner
    from staking_indexer.parser.service import EventParser
    from staking_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class LoopState(str, Enum):
    """State of a single-flight loop."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass
class LoopStats:
    """Statistics for a periodic loop."""

    cycles_started: int = 0
    cycles_completed: int = 0
    cycles_failed: int = 0
    triggers_dropped: int = 0
    last_cycle_started_at: datetime | None = None
    last_cycle_duration_seconds: float = 0.0
    last_error: str | None = None


class SingleFlightLoop:
    """Base class for a periodic job that never overlaps itself.

    Subclasses implement ``run_cycle``. ``trigger()`` runs one cycle unless
    one is already in flight; ``start()``/``stop()`` manage the background
    loop. ``stop()`` lets an in-flight cycle finish.
    """

    name = "loop"

    def __init__(self, *, interval_seconds: float, clock: Clock = time.monotonic) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._interval = interval_seconds
        self._clock = clock
        self._state = LoopState.IDLE
        self._stats = LoopStats()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def stats(self) -> LoopStats:
        return self._stats

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_cycle(self) -> None:
        raise NotImplementedError

    async def trigger(self) -> bool:
        """Run one cycle now unless one is in flight.

        Returns:
            True if a cycle ran, False if the trigger was dropped.
        """
        # No await between the check and the transition, so this is atomic
        # on the event loop.
        if self._state is LoopState.RUNNING:
            self._stats.triggers_dropped += 1
            logger.info("%s: previous cycle still running, skipping this one", self.name)
            return False
        self._state = LoopState.RUNNING

        self._stats.cycles_started += 1
        self._stats.last_cycle_started_at = datetime.now(UTC)
        started = self._clock()
        try:
            await self.run_cycle()
            self._stats.cycles_completed += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats.cycles_failed += 1
            self._stats.last_error = str(e)
            logger.exception("%s: cycle failed: %s", self.name, e)
        finally:
            self._stats.last_cycle_duration_seconds = self._clock() - started
            self._state = LoopState.IDLE
        return True

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self.trigger()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except TimeoutError:
                pass

    def start(self) -> None:
        """Start the background loop; the first cycle runs immediately."""
        if self.is_started:
            raise RuntimeError(f"{self.name} is already started")
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info("%s started (interval=%ss)", self.name, self._interval)

    async def stop(self) -> None:
        """Stop scheduling new cycles and wait for the current one to finish."""
        self._stop_event.set()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("%s stopped", self.name)


class SyncScheduler(SingleFlightLoop):
    """Drives load-tasks -> scan -> ingest."""

    name = "sync"

    def __init__(
        self,
        db: DatabaseManager,
        scanner: ChainScanner,
        ingester: EventIngester,
        *,
        interval_seconds: float,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(interval_seconds=interval_seconds, clock=clock)
        self._db = db
        self._scanner = scanner
        self._ingester = ingester

    async def run_cycle(self) -> None:
        try:
            async with self._db.get_async_session() as session:
                tasks = await ScanTaskRepository(session).list_all()
        except (PersistenceError, SQLAlchemyError) as e:
            logger.error("Failed to load scan tasks: %s", e)
            return

        if not tasks:
            logger.info("No scan tasks")
            return

        results = await self._scanner.scan(tasks)
        stats = await self._ingester.ingest(results)
        logger.info(
            "Sync cycle done: chains_written=%d, chains_failed=%d, records=%d",
            stats.chains_written,
            stats.chains_failed,
            stats.records_inserted,
        )


class ParseScheduler(SingleFlightLoop):
    """Drives the event parser."""

    name = "parse"

    def __init__(
        self,
        parser: EventParser,
        *,
        interval_seconds: float,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(interval_seconds=interval_seconds, clock=clock)
        self._parser = parser

    async def run_cycle(self) -> None:
        await self._parser.parse_once()
