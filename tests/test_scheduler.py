"""Tests for the sync scheduler."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock, patch

import pytest
import pytest_asyncio

from integration_engine.core.exceptions import NetworkError
from integration_engine.models import ActivityStatus
from integration_engine.services.activity_service import ActivityLogger
from integration_engine.services.sync_service import SyncScheduler
from integration_engine.store import InMemoryStore


@pytest.fixture
def executor():
    executor = Mock()
    executor.execute = AsyncMock(return_value={"delivered": True})
    return executor


@pytest_asyncio.fixture
async def scheduler(store, executor, clock):
    scheduler = SyncScheduler(
        store,
        executor,
        ActivityLogger(store),
        default_interval=300,
        tick_seconds=3600,
        clock=clock,
    )
    yield scheduler
    await scheduler.shutdown()


@pytest_asyncio.fixture
async def polling_integration(store, make_integration):
    return await store.create_integration(make_integration(sync_interval=60))


_real_sleep = asyncio.sleep


class ManualTimers:
    """Replacement for ``asyncio.sleep`` whose timed waits end only when fired."""

    def __init__(self):
        self.pending = []

    async def sleep(self, delay, result=None):
        if delay <= 0:
            return await _real_sleep(0, result)
        future = asyncio.get_running_loop().create_future()
        self.pending.append((delay, future))
        await future
        return result

    def fire(self, delay=None):
        """Wake every sleeper waiting on ``delay`` (all sleepers when None)."""
        remaining = []
        for pending_delay, future in self.pending:
            if delay is None or pending_delay == delay:
                if not future.done():
                    future.set_result(None)
            else:
                remaining.append((pending_delay, future))
        self.pending = remaining


async def settle():
    for _ in range(10):
        await _real_sleep(0)


class YieldingStore(InMemoryStore):
    """Memory store that suspends on every integration read, like a real backend."""

    async def get_integration(self, integration_id):
        await asyncio.sleep(0)
        return await super().get_integration(integration_id)


@pytest.fixture
def timers():
    timers = ManualTimers()
    with patch("asyncio.sleep", timers.sleep):
        yield timers


@pytest_asyncio.fixture
async def yielding_scheduler(executor, clock):
    store = YieldingStore()
    scheduler = SyncScheduler(
        store,
        executor,
        ActivityLogger(store),
        default_interval=300,
        tick_seconds=3600,
        clock=clock,
    )
    yield scheduler
    await scheduler.shutdown()


class TestScheduling:
    """Test start, stop and due detection."""

    @pytest.mark.asyncio
    async def test_start_sets_next_sync(self, scheduler, polling_integration, clock):
        run = scheduler.start(polling_integration)

        assert run.next_sync == clock.now + timedelta(seconds=60)
        assert run.timer is not None
        assert scheduler.is_scheduled(polling_integration.id)

    @pytest.mark.asyncio
    async def test_start_without_interval_never_polls(self, scheduler, store, make_integration, clock, executor):
        integration = await store.create_integration(make_integration(sync_interval=None))

        run = scheduler.start(integration)
        clock.now += timedelta(days=1)

        assert run.next_sync == clock.now - timedelta(days=1) + timedelta(seconds=300)
        assert run.timer is None
        assert scheduler.tick() == []
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_unknown_is_noop(self, scheduler):
        assert scheduler.stop("missing") is False

    @pytest.mark.asyncio
    async def test_stop_cancels_timer(self, scheduler, polling_integration):
        run = scheduler.start(polling_integration)
        timer = run.timer

        assert scheduler.stop(polling_integration.id) is True
        await asyncio.sleep(0)

        assert timer.cancelled()
        assert not scheduler.is_scheduled(polling_integration.id)

    @pytest.mark.asyncio
    async def test_restart_replaces_timer(self, scheduler, polling_integration):
        first = scheduler.start(polling_integration)
        first_timer = first.timer

        second = scheduler.start(polling_integration)
        await asyncio.sleep(0)

        assert second is first
        assert first_timer.cancelled()
        assert second.timer is not first_timer
        assert len(scheduler.runs) == 1

    @pytest.mark.asyncio
    async def test_tick_ignores_runs_not_due(self, scheduler, polling_integration, clock, executor):
        scheduler.start(polling_integration)
        clock.now += timedelta(seconds=59)

        assert scheduler.tick() == []
        executor.execute.assert_not_awaited()


class TestExecution:
    """Test execution outcomes and bookkeeping."""

    @pytest.mark.asyncio
    async def test_success_reschedules_from_completion(self, scheduler, polling_integration, clock, store):
        run = scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)
        completed_at = clock.now

        await asyncio.gather(*scheduler.tick())

        assert run.next_sync == completed_at + timedelta(seconds=60)
        assert run.last_result == {"delivered": True}

        stored = await store.get_integration(polling_integration.id)
        assert stored.sync_count == 1
        assert stored.last_sync_at == completed_at
        assert stored.next_sync_at == run.next_sync

        entries = await store.list_activity(integration_id=polling_integration.id)
        assert len(entries) == 1
        assert entries[0].status == ActivityStatus.SUCCESS
        assert entries[0].event_type == "sync"

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_rescheduled(
        self, scheduler, polling_integration, clock, store, executor
    ):
        executor.execute.side_effect = NetworkError("source unreachable")
        run = scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)

        (outcome,) = await asyncio.gather(*scheduler.tick())

        assert outcome.success is False
        assert outcome.error_category == "network"
        assert run.next_sync == clock.now + timedelta(seconds=60)
        assert run.is_running is False
        assert scheduler.is_scheduled(polling_integration.id)

        stored = await store.get_integration(polling_integration.id)
        assert stored.error_count == 1
        assert stored.sync_count == 0
        assert stored.last_error == "source unreachable"

        entries = await store.list_activity(integration_id=polling_integration.id)
        assert len(entries) == 1
        assert entries[0].status == ActivityStatus.FAILED
        assert entries[0].error_category == "network"

    @pytest.mark.asyncio
    async def test_executes_latest_stored_config(self, scheduler, polling_integration, clock, store, executor):
        scheduler.start(polling_integration)
        await store.update_integration(polling_integration.id, {"name": "Renamed"})
        clock.now += timedelta(seconds=60)

        await asyncio.gather(*scheduler.tick())

        executed = executor.execute.await_args.args[0]
        assert executed.name == "Renamed"

    @pytest.mark.asyncio
    async def test_store_failure_does_not_break_run(self, scheduler, polling_integration, clock, store):
        store.record_sync_result = AsyncMock(side_effect=RuntimeError("store down"))
        run = scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)

        (outcome,) = await asyncio.gather(*scheduler.tick())

        assert outcome.success is True
        assert run.is_running is False


class TestNoOverlap:
    """Test that an integration never runs concurrently with itself."""

    @pytest.mark.asyncio
    async def test_second_trigger_while_running_is_skipped(
        self, scheduler, polling_integration, clock, executor
    ):
        release = asyncio.Event()

        async def slow_execute(integration):
            await release.wait()
            return {"delivered": True}

        executor.execute.side_effect = slow_execute
        run = scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)

        first = scheduler.tick()
        await asyncio.sleep(0)
        assert run.is_running is True

        assert scheduler.tick() == []
        assert await scheduler.manual_sync(polling_integration.id) is None
        assert await scheduler._execute(polling_integration.id) is None

        release.set()
        await asyncio.gather(*first)

        assert executor.execute.await_count == 1
        assert run.is_running is False

    @pytest.mark.asyncio
    async def test_stop_does_not_abort_inflight_run(
        self, scheduler, polling_integration, clock, executor, store
    ):
        release = asyncio.Event()

        async def slow_execute(integration):
            await release.wait()
            return {"delivered": True}

        executor.execute.side_effect = slow_execute
        scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)

        (task,) = scheduler.tick()
        await asyncio.sleep(0)
        scheduler.stop(polling_integration.id)

        release.set()
        outcome = await task

        assert outcome.success is True
        assert polling_integration.id not in scheduler.runs
        assert len(await store.list_activity(integration_id=polling_integration.id)) == 1

    @pytest.mark.asyncio
    async def test_restart_during_run_does_not_overlap(
        self, scheduler, polling_integration, clock, executor
    ):
        release = asyncio.Event()

        async def slow_execute(integration):
            await release.wait()
            return {"delivered": True}

        executor.execute.side_effect = slow_execute
        scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)

        first = scheduler.tick()
        await asyncio.sleep(0)
        scheduler.stop(polling_integration.id)
        scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)

        assert await scheduler.manual_sync(polling_integration.id) is None

        release.set()
        await asyncio.gather(*first)
        assert executor.execute.await_count == 1


class TestManualSync:
    """Test on-demand execution."""

    @pytest.mark.asyncio
    async def test_manual_sync_of_unscheduled_integration(self, scheduler, store, make_integration, executor):
        integration = await store.create_integration(make_integration(sync_interval=None))

        outcome = await scheduler.manual_sync(integration.id)

        assert outcome.success is True
        assert integration.id not in scheduler.runs
        executor.execute.assert_awaited_once()

        entries = await store.list_activity(integration_id=integration.id)
        assert [entry.event_type for entry in entries] == ["manual_sync"]

        stored = await store.get_integration(integration.id)
        assert stored.sync_count == 1
        assert stored.next_sync_at is None

    @pytest.mark.asyncio
    async def test_manual_sync_ignores_next_sync(self, scheduler, polling_integration, executor):
        scheduler.start(polling_integration)

        outcome = await scheduler.manual_sync(polling_integration.id)

        assert outcome.success is True
        assert scheduler.is_scheduled(polling_integration.id)
        executor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_manual_sync_unknown_integration(self, scheduler):
        assert await scheduler.manual_sync("missing") is None


class TestLifecycle:
    """Test scheduler init and shutdown."""

    @pytest.mark.asyncio
    async def test_init_and_shutdown(self, scheduler, polling_integration):
        await scheduler.init()
        scheduler.start(polling_integration)
        assert scheduler.stats()["ticking"] is True
        assert scheduler.stats()["scheduled"] == 1

        await scheduler.shutdown()

        assert scheduler.runs == {}
        assert scheduler.stats()["ticking"] is False

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_inflight(self, scheduler, polling_integration, clock, executor):
        release = asyncio.Event()
        finished = []

        async def slow_execute(integration):
            await release.wait()
            finished.append(integration.id)
            return {}

        executor.execute.side_effect = slow_execute
        scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)
        scheduler.tick()
        await asyncio.sleep(0)

        shutdown = asyncio.create_task(scheduler.shutdown())
        await asyncio.sleep(0)
        release.set()
        await shutdown

        assert finished == [polling_integration.id]


class TestConcurrentTriggers:
    """Test manual syncs that interleave with start, stop and each other."""

    @pytest.mark.asyncio
    async def test_start_during_manual_sync_lookup_stays_scheduled(
        self, yielding_scheduler, make_integration, executor
    ):
        scheduler = yielding_scheduler
        integration = await scheduler.store.create_integration(make_integration(sync_interval=60))

        manual = asyncio.create_task(scheduler.manual_sync(integration.id))
        await asyncio.sleep(0)
        run = scheduler.start(integration)
        outcome = await manual

        assert outcome.success is True
        assert scheduler.runs[integration.id] is run
        assert scheduler.is_scheduled(integration.id)
        assert not run.timer.done()
        executor.execute.assert_awaited_once()

        assert scheduler.stop(integration.id) is True
        assert scheduler.runs == {}

    @pytest.mark.asyncio
    async def test_concurrent_manual_syncs_leave_no_run_behind(
        self, yielding_scheduler, make_integration, executor
    ):
        scheduler = yielding_scheduler
        integration = await scheduler.store.create_integration(make_integration(sync_interval=None))

        outcomes = await asyncio.gather(
            scheduler.manual_sync(integration.id),
            scheduler.manual_sync(integration.id),
        )

        assert sorted(outcome is None for outcome in outcomes) == [False, True]
        assert scheduler.runs == {}
        executor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_manual_sync_after_stop_while_running(
        self, scheduler, polling_integration, clock, executor
    ):
        release = asyncio.Event()

        async def slow_execute(integration):
            await release.wait()
            return {"delivered": True}

        executor.execute.side_effect = slow_execute
        scheduler.start(polling_integration)
        clock.now += timedelta(seconds=60)

        first = scheduler.tick()
        await asyncio.sleep(0)
        scheduler.stop(polling_integration.id)

        assert await scheduler.manual_sync(polling_integration.id) is None
        assert scheduler.runs == {}

        release.set()
        await asyncio.gather(*first)
        assert executor.execute.await_count == 1
        assert scheduler.runs == {}


class TestTimers:
    """Test the per-integration timer and the global tick loop as they fire."""

    @pytest.mark.asyncio
    async def test_timer_executes_every_interval(self, scheduler, polling_integration, executor, timers):
        scheduler.start(polling_integration)
        await settle()

        timers.fire(60)
        await settle()
        assert executor.execute.await_count == 1

        timers.fire(60)
        await settle()
        assert executor.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_double_start_keeps_one_timer(self, scheduler, polling_integration, executor, timers):
        scheduler.start(polling_integration)
        scheduler.start(polling_integration)
        await settle()

        assert len(timers.pending) == 1

        timers.fire(60)
        await settle()
        assert executor.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_stopped_timer_never_fires(self, scheduler, polling_integration, executor, timers):
        scheduler.start(polling_integration)
        await settle()

        scheduler.stop(polling_integration.id)
        await settle()
        timers.fire()
        await settle()

        executor.execute.assert_not_awaited()
        assert timers.pending == []

    @pytest.mark.asyncio
    async def test_tick_loop_runs_due_integrations(
        self, scheduler, polling_integration, clock, executor, timers
    ):
        await scheduler.init()
        scheduler.start(polling_integration)
        await settle()

        clock.now += timedelta(seconds=30)
        timers.fire(3600)
        await settle()
        executor.execute.assert_not_awaited()

        clock.now += timedelta(seconds=30)
        timers.fire(3600)
        await settle()
        assert executor.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_tick_and_timer_together_do_not_overlap(
        self, scheduler, polling_integration, clock, executor, timers
    ):
        release = asyncio.Event()

        async def slow_execute(integration):
            await release.wait()
            return {"delivered": True}

        executor.execute.side_effect = slow_execute
        await scheduler.init()
        scheduler.start(polling_integration)
        await settle()

        clock.now += timedelta(seconds=60)
        timers.fire()
        await settle()
        assert executor.execute.await_count == 1

        release.set()
        await settle()
        assert executor.execute.await_count == 1
        assert scheduler.runs[polling_integration.id].is_running is False
