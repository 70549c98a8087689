"""Scheduler that drives periodic and manual integration syncs."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set
import logging
import time

from integration_engine.connectors.registry import ConnectorExecutor
from integration_engine.core.exceptions import error_category
from integration_engine.models import ActivityStatus, Integration
from integration_engine.services.activity_service import ActivityLogger
from integration_engine.store.base import Store

logger = logging.getLogger(__name__)


@dataclass
class SyncRun:
    """In-memory scheduling state for one started integration."""
    integration: Integration
    next_sync: datetime
    is_running: bool = False
    last_result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None
    transient: bool = False
    timer: Optional[asyncio.Task] = None


@dataclass
class SyncOutcome:
    """Result of one execution attempt."""
    integration_id: str
    success: bool
    duration_ms: float
    next_sync: datetime
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_category: Optional[str] = None


class SyncScheduler:
    """Owns the active integrations and executes them on schedule or on demand.

    Two triggers feed executions: a per-integration timer firing every
    ``sync_interval`` seconds, and a coarse global tick that picks up any run
    whose ``next_sync`` has passed. Each run's ``is_running`` flag is set
    before the connector is called and cleared in a ``finally`` block, so an
    integration never overlaps itself however the triggers interleave.
    """

    def __init__(
        self,
        store: Store,
        executor: ConnectorExecutor,
        activity_logger: ActivityLogger,
        default_interval: int = 300,
        tick_seconds: float = 60.0,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.executor = executor
        self.activity_logger = activity_logger
        self.default_interval = default_interval
        self.tick_seconds = tick_seconds
        self.clock = clock

        self.runs: Dict[str, SyncRun] = {}
        self._executing: Set[str] = set()
        self._inflight: Set[asyncio.Task] = set()
        self._tick_task: Optional[asyncio.Task] = None

    # Lifecycle

    async def init(self) -> None:
        """Start the global tick loop."""
        if self._tick_task is None or self._tick_task.done():
            self._tick_task = asyncio.create_task(self._tick_loop())
        logger.info(f"Sync scheduler started (tick every {self.tick_seconds}s)")

    async def shutdown(self) -> None:
        """Cancel timers and the tick loop, then wait for in-flight runs."""
        logger.info("Stopping sync scheduler...")
        tasks = []
        if self._tick_task is not None:
            self._tick_task.cancel()
            tasks.append(self._tick_task)
            self._tick_task = None

        for run in self.runs.values():
            if run.timer is not None:
                run.timer.cancel()
                tasks.append(run.timer)
        self.runs.clear()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # Scheduling

    def interval_for(self, integration: Integration) -> int:
        if integration.polls:
            return integration.sync_interval
        return self.default_interval

    def start(self, integration: Integration) -> SyncRun:
        """Register an integration, replacing any previous timer for it."""
        interval = self.interval_for(integration)
        next_sync = self.clock() + timedelta(seconds=interval)

        run = self.runs.get(integration.id)
        if run is None:
            run = SyncRun(integration=integration, next_sync=next_sync)
            self.runs[integration.id] = run
        else:
            self._cancel_timer(run)
            run.integration = integration
            run.next_sync = next_sync
            run.transient = False

        if integration.polls:
            run.timer = asyncio.create_task(self._timer_loop(integration.id, interval))

        logger.info(f"Started sync for integration {integration.id} (next at {next_sync.isoformat()})")
        return run

    def stop(self, integration_id: str) -> bool:
        """Cancel future firings; an execution already running still finishes."""
        run = self.runs.pop(integration_id, None)
        if run is None:
            return False
        self._cancel_timer(run)
        logger.info(f"Stopped sync for integration {integration_id}")
        return True

    def is_scheduled(self, integration_id: str) -> bool:
        run = self.runs.get(integration_id)
        return run is not None and not run.transient

    def tick(self) -> List[asyncio.Task]:
        """Spawn an execution for every idle run that is due."""
        now = self.clock()
        due = [
            integration_id
            for integration_id, run in self.runs.items()
            if not run.transient
            and run.integration.polls
            and not run.is_running
            and now >= run.next_sync
        ]
        return [self._spawn(integration_id) for integration_id in due]

    async def manual_sync(self, integration_id: str) -> Optional[SyncOutcome]:
        """Execute now, bypassing ``next_sync``; returns None if already running."""
        if integration_id not in self.runs:
            integration = await self.store.get_integration(integration_id)
            if integration is None:
                return None
            # start() may have registered the run while the store was read
            self.runs.setdefault(integration_id, SyncRun(
                integration=integration,
                next_sync=self.clock() + timedelta(seconds=self.interval_for(integration)),
                transient=True,
            ))
        return await self._execute(integration_id, manual=True)

    def stats(self) -> Dict[str, Any]:
        return {
            "scheduled": sum(1 for run in self.runs.values() if not run.transient),
            "running": len(self._executing),
            "tick_seconds": self.tick_seconds,
            "ticking": self._tick_task is not None and not self._tick_task.done(),
        }

    # Internals

    def _cancel_timer(self, run: SyncRun) -> None:
        if run.timer is not None:
            run.timer.cancel()
            run.timer = None

    def _spawn(self, integration_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._execute(integration_id))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _timer_loop(self, integration_id: str, interval: int) -> None:
        while True:
            await asyncio.sleep(interval)
            self._spawn(integration_id)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler tick failed: {e}")

    async def _execute(self, integration_id: str, manual: bool = False) -> Optional[SyncOutcome]:
        run = self.runs.get(integration_id)
        if run is None:
            return None
        if run.is_running or integration_id in self._executing:
            # A transient run created while a stopped run is still finishing
            if run.transient and not run.is_running:
                del self.runs[integration_id]
            logger.debug(f"Sync for integration {integration_id} already running; skipping")
            return None

        run.is_running = True
        self._executing.add(integration_id)
        started = time.perf_counter()
        integration = run.integration
        result: Optional[Dict[str, Any]] = None
        failure: Optional[Exception] = None

        try:
            latest = await self.store.get_integration(integration_id)
            if latest is not None:
                integration = latest
                run.integration = latest
            result = await self.executor.execute(integration)
        except Exception as e:
            failure = e
            logger.error(f"Sync failed for integration {integration_id}: {e}")
        finally:
            run.is_running = False
            self._executing.discard(integration_id)

        duration_ms = (time.perf_counter() - started) * 1000
        completed_at = self.clock()
        run.next_sync = completed_at + timedelta(seconds=self.interval_for(integration))
        persisted_next = run.next_sync if integration.polls else None

        if failure is None:
            run.last_result = result
            run.last_error = None
            logger.info(f"Synced integration {integration_id} in {duration_ms:.0f}ms")
        else:
            run.last_error = str(failure)

        try:
            await self.store.record_sync_result(
                integration_id,
                success=failure is None,
                synced_at=completed_at,
                next_sync_at=persisted_next,
                error=None if failure is None else str(failure),
            )
        except Exception as e:
            logger.error(f"Failed to record sync result for integration {integration_id}: {e}")

        await self.activity_logger.record_sync(
            integration,
            ActivityStatus.SUCCESS if failure is None else ActivityStatus.FAILED,
            duration_ms,
            result=result,
            error=failure,
            manual=manual,
        )

        if run.transient and self.runs.get(integration_id) is run:
            del self.runs[integration_id]

        return SyncOutcome(
            integration_id=integration_id,
            success=failure is None,
            duration_ms=duration_ms,
            next_sync=run.next_sync,
            result=result,
            error=None if failure is None else str(failure),
            error_category=None if failure is None else error_category(failure),
        )
