"""Tests for execution leases and the resume poller."""

from __future__ import annotations

import re
from datetime import timedelta
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from tests.conftest import make_event

if TYPE_CHECKING:
    from litestar_automations.core.definition import WorkflowDefinition
    from litestar_automations.engine.registry import DefinitionRegistry
    from litestar_automations.engine.scheduler import Scheduler
    from tests.conftest import FakeClock

TTL = timedelta(seconds=60)


@pytest.mark.unit
class TestInMemoryLeaseManager:
    """Tests for the process-local lease table."""

    async def test_acquire_conflict_and_release(self, clock: FakeClock) -> None:
        """Test a held lease refuses other owners until released."""
        from litestar_automations.engine.lease import InMemoryLeaseManager

        leases = InMemoryLeaseManager(clock)
        execution_id = uuid4()

        assert await leases.acquire(execution_id, "a", TTL)
        assert not await leases.acquire(execution_id, "b", TTL)
        assert await leases.holder(execution_id) == "a"

        await leases.release(execution_id, "b")
        assert await leases.holder(execution_id) == "a"

        await leases.release(execution_id, "a")
        assert await leases.holder(execution_id) is None
        assert await leases.acquire(execution_id, "b", TTL)

    async def test_owner_renews(self, clock: FakeClock) -> None:
        """Test re-acquiring by the owner extends the lease."""
        from litestar_automations.engine.lease import InMemoryLeaseManager

        leases = InMemoryLeaseManager(clock)
        execution_id = uuid4()

        await leases.acquire(execution_id, "a", TTL)
        clock.advance(seconds=50)
        assert await leases.acquire(execution_id, "a", TTL)
        clock.advance(seconds=50)

        assert await leases.holder(execution_id) == "a"
        assert not await leases.acquire(execution_id, "b", TTL)

    async def test_expired_lease_is_taken_over(self, clock: FakeClock) -> None:
        """Test a lease of a dead worker lapses."""
        from litestar_automations.engine.lease import InMemoryLeaseManager

        leases = InMemoryLeaseManager(clock)
        execution_id = uuid4()

        await leases.acquire(execution_id, "a", TTL)
        clock.advance(seconds=61)

        assert await leases.holder(execution_id) is None
        assert await leases.acquire(execution_id, "b", TTL)
        assert await leases.holder(execution_id) == "b"

    def test_worker_ids_are_unique(self) -> None:
        """Test generated worker ids embed host and pid and differ per call."""
        from litestar_automations.engine.lease import generate_worker_id

        first, second = generate_worker_id(), generate_worker_id()

        assert first != second
        assert re.fullmatch(r".+:\d+:[0-9a-f]{6}", first)


@pytest.mark.unit
class TestResumePoller:
    """Tests for the background poller."""

    async def test_poll_once_resumes_due_runs(
        self,
        scheduler: Scheduler,
        registry: DefinitionRegistry,
        delay_definition: WorkflowDefinition,
        clock: FakeClock,
    ) -> None:
        """Test a poll picks up every due waiting execution."""
        from litestar_automations.core.types import ExecutionStatus
        from litestar_automations.engine.poller import ResumePoller

        await registry.save_definition(delay_definition)
        first = (await scheduler.submit(make_event(), background=False))[0]
        clock.advance(minutes=1)
        second = (await scheduler.submit(make_event(contact={"id": "c_2", "name": "Grace"}), background=False))[0]
        poller = ResumePoller(scheduler, interval=0.01)

        assert await poller.poll_once() == []
        clock.advance(minutes=10)
        assert await poller.poll_once() == [first.id, second.id]
        await scheduler.drain()

        for execution in (first, second):
            assert (await scheduler.get_execution(execution.id)).status == ExecutionStatus.COMPLETED

    async def test_start_and_stop(self, scheduler: Scheduler) -> None:
        """Test the poller loop starts once and stops cleanly."""
        from litestar_automations.engine.poller import ResumePoller

        poller = ResumePoller(scheduler, interval=0.01)

        await poller.start()
        await poller.start()
        assert poller.running

        await poller.stop()
        assert not poller.running

    def test_interval_defaults_to_engine_config(self, scheduler: Scheduler) -> None:
        """Test the poll interval falls back to the engine configuration."""
        from litestar_automations.engine.poller import ResumePoller

        assert ResumePoller(scheduler).interval == scheduler.config.poll_interval
