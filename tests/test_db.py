"""Integration tests for the database persistence layer.

Tests the SQLAlchemy models, repositories and stores using an async SQLite
database file per test.
"""

from __future__ import annotations

import importlib.util
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from litestar_automations.db.models import WorkflowDefinitionModel
from tests.conftest import TRIGGER_HELLO, FakeMessageSender, build_definition, make_event

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from litestar_automations.config import EngineConfig
    from litestar_automations.core.definition import WorkflowDefinition
    from litestar_automations.engine.scheduler import Scheduler
    from tests.conftest import FakeClock

TTL = timedelta(seconds=60)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Create an async SQLite engine on a file, shared by every session of the test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'automations.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(WorkflowDefinitionModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_scheduler(
    session_maker: async_sessionmaker[AsyncSession],
    engine_config: EngineConfig,
    sender: FakeMessageSender,
    clock: FakeClock,
) -> Scheduler:
    """Scheduler whose stores, leases and idempotency records all live in the database."""
    from litestar_automations.actions.dispatcher import ActionDispatcher
    from litestar_automations.db.stores import (
        SQLAlchemyDefinitionStore,
        SQLAlchemyExecutionStore,
        SQLAlchemyIdempotencyStore,
        SQLAlchemyLeaseManager,
    )
    from litestar_automations.engine.scheduler import Scheduler

    return Scheduler(
        definitions=SQLAlchemyDefinitionStore(session_maker, clock=clock),
        executions=SQLAlchemyExecutionStore(session_maker),
        leases=SQLAlchemyLeaseManager(session_maker, clock=clock),
        dispatcher=ActionDispatcher(messages=sender, idempotency=SQLAlchemyIdempotencyStore(session_maker)),
        config=engine_config,
        worker_id="worker-sql",
    )


# =============================================================================
# Definition Store Tests
# =============================================================================


@pytest.mark.integration
class TestSQLAlchemyDefinitionStore:
    """Tests for versioned definition persistence."""

    async def test_versions(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        hello_definition: WorkflowDefinition,
        clock: FakeClock,
    ) -> None:
        """Test each save inserts the next version and keeps older ones readable."""
        from litestar_automations.db.stores import SQLAlchemyDefinitionStore

        store = SQLAlchemyDefinitionStore(session_maker, clock=clock)
        first = await store.save_definition(hello_definition)
        hello_definition.name = "Renamed"
        clock.advance(hours=1)
        second = await store.save_definition(hello_definition)

        latest = await store.get_definition("wf_hello")
        pinned = await store.get_definition("wf_hello", 1)

        assert (first.version, second.version) == (1, 2)
        assert latest.name == "Renamed"
        assert latest.version == 2
        assert latest.created_at == first.created_at
        assert latest.updated_at == clock.now
        assert pinned.name == "Wf Hello"
        assert [node.id for node in pinned.nodes] == ["start", "check", "reply", "hint"]

    async def test_missing_version(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        """Test unknown workflows and versions raise WorkflowNotFoundError."""
        from litestar_automations.db.stores import SQLAlchemyDefinitionStore
        from litestar_automations.exceptions import WorkflowNotFoundError

        store = SQLAlchemyDefinitionStore(session_maker)

        with pytest.raises(WorkflowNotFoundError, match="version 3"):
            await store.get_definition("wf_hello", 3)

    async def test_invalid_enabled_definition_is_not_stored(
        self, session_maker: async_sessionmaker[AsyncSession]
    ) -> None:
        """Test validation runs before insert."""
        from litestar_automations.db.stores import SQLAlchemyDefinitionStore
        from litestar_automations.exceptions import WorkflowNotFoundError, WorkflowValidationError

        store = SQLAlchemyDefinitionStore(session_maker)
        definition = build_definition(nodes=[TRIGGER_HELLO], edges=[("start", "ghost")], workflow_id="wf_broken")

        with pytest.raises(WorkflowValidationError):
            await store.save_definition(definition)
        with pytest.raises(WorkflowNotFoundError):
            await store.get_definition("wf_broken")

    async def test_enabled_definitions_use_latest_version(
        self, session_maker: async_sessionmaker[AsyncSession]
    ) -> None:
        """Test only the latest version of each workflow counts, and only when enabled."""
        from litestar_automations.db.stores import SQLAlchemyDefinitionStore

        store = SQLAlchemyDefinitionStore(session_maker)
        active = build_definition(nodes=[TRIGGER_HELLO], edges=[], workflow_id="wf_active")
        paused = build_definition(nodes=[TRIGGER_HELLO], edges=[], workflow_id="wf_paused")
        other_org = build_definition(nodes=[TRIGGER_HELLO], edges=[], workflow_id="wf_other", organization_id="org_2")
        for definition in (active, paused, other_org):
            await store.save_definition(definition)
        await store.save_definition(active)
        paused.enabled = False
        await store.save_definition(paused)

        enabled = await store.get_enabled_definitions("org_1")

        assert [(definition.id, definition.version) for definition in enabled] == [("wf_active", 2)]


# =============================================================================
# Execution Store Tests
# =============================================================================


@pytest.mark.integration
class TestSQLAlchemyExecutionStore:
    """Tests for checkpoint persistence, driven through the scheduler."""

    async def test_run_to_completion(
        self,
        sql_scheduler: Scheduler,
        hello_definition: WorkflowDefinition,
        sender: FakeMessageSender,
    ) -> None:
        """Test a run over the SQL stores completes with its step log."""
        from litestar_automations.core.types import ExecutionStatus, NodeKind, StepStatus

        await sql_scheduler.definitions.save_definition(hello_definition)

        [created] = await sql_scheduler.submit(make_event(), background=False)
        execution = await sql_scheduler.get_execution(created.id)

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.path == ["start", "check", "reply"]
        assert execution.context["reply.message_id"] == "msg_1"
        assert [(step.node_id, step.kind, step.status) for step in execution.steps] == [
            ("start", NodeKind.TRIGGER, StepStatus.SUCCEEDED),
            ("check", NodeKind.CONDITION, StepStatus.SUCCEEDED),
            ("reply", NodeKind.ACTION, StepStatus.SUCCEEDED),
        ]
        assert len(sender.calls) == 1

    async def test_checkpoint_round_trip(
        self,
        sql_scheduler: Scheduler,
        delay_definition: WorkflowDefinition,
        clock: FakeClock,
    ) -> None:
        """Test a waiting run is found when due and reloads exactly as it was driven."""
        from litestar_automations.core.types import ExecutionStatus

        await sql_scheduler.definitions.save_definition(delay_definition)
        [created] = await sql_scheduler.submit(make_event(), background=False)
        store = sql_scheduler.executions

        assert await store.list_waiting_due(clock.now) == []
        waiting = await store.load_execution(created.id)
        assert waiting.status == ExecutionStatus.WAITING
        assert waiting.resume_at == clock.now + timedelta(minutes=10)

        clock.advance(minutes=10)
        assert await store.list_waiting_due(clock.now) == [created.id]

        driven = await sql_scheduler.resume(created.id)
        reloaded = await store.load_execution(created.id)

        assert reloaded.to_dict() == driven.to_dict()
        assert reloaded.checkpoint_state() == driven.checkpoint_state()
        assert reloaded.status == ExecutionStatus.COMPLETED

    async def test_checkpoint_keeps_cancel_flag(
        self,
        sql_scheduler: Scheduler,
        delay_definition: WorkflowDefinition,
    ) -> None:
        """Test saving a stale execution never clears a cancellation request."""
        await sql_scheduler.definitions.save_definition(delay_definition)
        [created] = await sql_scheduler.submit(make_event(), background=False)
        store = sql_scheduler.executions
        stale = await store.load_execution(created.id)

        await store.request_cancel(created.id)
        await store.save_checkpoint(stale)

        assert await store.is_cancel_requested(created.id)
        assert (await store.load_execution(created.id)).cancel_requested

    async def test_cancel_waiting_run(
        self,
        sql_scheduler: Scheduler,
        delay_definition: WorkflowDefinition,
        clock: FakeClock,
    ) -> None:
        """Test a cancelled waiting run is no longer due."""
        from litestar_automations.core.types import ExecutionStatus

        await sql_scheduler.definitions.save_definition(delay_definition)
        [created] = await sql_scheduler.submit(make_event(), background=False)

        cancelled = await sql_scheduler.cancel(created.id)
        clock.advance(minutes=10)

        assert cancelled.status == ExecutionStatus.CANCELLED
        assert await sql_scheduler.executions.list_waiting_due(clock.now) == []

    async def test_request_cancel_unknown(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        """Test cancelling an unknown execution raises ExecutionNotFoundError."""
        from litestar_automations.db.stores import SQLAlchemyExecutionStore
        from litestar_automations.exceptions import ExecutionNotFoundError

        with pytest.raises(ExecutionNotFoundError):
            await SQLAlchemyExecutionStore(session_maker).request_cancel(uuid4())

    async def test_count_executions(
        self,
        sql_scheduler: Scheduler,
        delay_definition: WorkflowDefinition,
        send_definition: WorkflowDefinition,
    ) -> None:
        """Test counting all or only active runs of a contact."""
        await sql_scheduler.definitions.save_definition(delay_definition)
        await sql_scheduler.definitions.save_definition(send_definition)
        await sql_scheduler.submit(make_event(), background=False)
        store = sql_scheduler.executions

        assert await store.count_executions("wf_delay", "c_1") == 1
        assert await store.count_executions("wf_delay", "c_1", active_only=True) == 1
        assert await store.count_executions("wf_send", "c_1") == 1
        assert await store.count_executions("wf_send", "c_1", active_only=True) == 0
        assert await store.count_executions("wf_send", "c_2") == 0

    async def test_retry_backoff_over_sql(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        engine_config: EngineConfig,
        send_definition: WorkflowDefinition,
        clock: FakeClock,
    ) -> None:
        """Test retry bookkeeping survives checkpoints and ends in a normalized failure."""
        from litestar_automations.actions.dispatcher import ActionDispatcher
        from litestar_automations.core.types import ExecutionStatus, StepStatus
        from litestar_automations.db.stores import SQLAlchemyDefinitionStore, SQLAlchemyExecutionStore
        from litestar_automations.engine.scheduler import Scheduler

        sender = FakeMessageSender(fail_times=3)
        scheduler = Scheduler(
            definitions=SQLAlchemyDefinitionStore(session_maker),
            executions=SQLAlchemyExecutionStore(session_maker),
            dispatcher=ActionDispatcher(messages=sender),
            config=engine_config,
        )
        await scheduler.definitions.save_definition(send_definition)

        [created] = await scheduler.submit(make_event(), background=False)
        for seconds in (1, 2):
            clock.advance(seconds=seconds)
            await scheduler.resume(created.id)
        failed = await scheduler.get_execution(created.id)

        assert failed.status == ExecutionStatus.FAILED
        assert failed.error is not None
        assert failed.error.message == "message delivery failed after 3 attempts"
        assert failed.error.node_id == "send"
        assert [step.status for step in failed.steps[1:]] == [
            StepStatus.RETRYING,
            StepStatus.RETRYING,
            StepStatus.FAILED,
        ]
        assert len(sender.calls) == 3


# =============================================================================
# Repository Tests
# =============================================================================


@pytest.mark.integration
class TestExecutionRepository:
    """Tests for the execution history queries."""

    async def test_find_by_organization(
        self,
        sql_scheduler: Scheduler,
        session_maker: async_sessionmaker[AsyncSession],
        send_definition: WorkflowDefinition,
        delay_definition: WorkflowDefinition,
        clock: FakeClock,
    ) -> None:
        """Test paging and status filtering of an organization's runs."""
        from litestar_automations.core.types import ExecutionStatus
        from litestar_automations.db.repositories import ExecutionRepository

        await sql_scheduler.definitions.save_definition(send_definition)
        await sql_scheduler.definitions.save_definition(delay_definition)
        await sql_scheduler.submit(make_event(), background=False)
        clock.advance(minutes=1)
        await sql_scheduler.submit(make_event(contact={"id": "c_2", "name": "Grace"}), background=False)

        async with session_maker() as session:
            repo = ExecutionRepository(session=session)
            page, total = await repo.find_by_organization("org_1", limit=3)
            waiting, waiting_total = await repo.find_by_organization("org_1", status=ExecutionStatus.WAITING)
            empty, empty_total = await repo.find_by_organization("org_2")

        assert total == 4
        assert len(page) == 3
        assert page[0].started_at >= page[-1].started_at
        assert waiting_total == 2
        assert all(model.status == ExecutionStatus.WAITING for model in waiting)
        assert (list(empty), empty_total) == ([], 0)


# =============================================================================
# Lease and Idempotency Tests
# =============================================================================


@pytest.mark.integration
class TestSQLAlchemyLeaseManager:
    """Tests for database leases."""

    async def test_conflict_renewal_and_release(
        self, session_maker: async_sessionmaker[AsyncSession], clock: FakeClock
    ) -> None:
        """Test only one owner holds a lease until it is released."""
        from litestar_automations.db.stores import SQLAlchemyLeaseManager

        leases = SQLAlchemyLeaseManager(session_maker, clock=clock)
        execution_id = uuid4()

        assert await leases.acquire(execution_id, "a", TTL)
        assert not await leases.acquire(execution_id, "b", TTL)
        assert await leases.acquire(execution_id, "a", TTL)
        assert await leases.holder(execution_id) == "a"

        await leases.release(execution_id, "b")
        assert await leases.holder(execution_id) == "a"

        await leases.release(execution_id, "a")
        assert await leases.holder(execution_id) is None
        assert await leases.acquire(execution_id, "b", TTL)

    async def test_expired_lease_is_taken_over(
        self, session_maker: async_sessionmaker[AsyncSession], clock: FakeClock
    ) -> None:
        """Test a lapsed lease goes to the next worker asking."""
        from litestar_automations.db.stores import SQLAlchemyLeaseManager

        leases = SQLAlchemyLeaseManager(session_maker, clock=clock)
        execution_id = uuid4()

        await leases.acquire(execution_id, "a", TTL)
        clock.advance(seconds=61)

        assert await leases.holder(execution_id) is None
        assert await leases.acquire(execution_id, "b", TTL)
        assert await leases.holder(execution_id) == "b"
        assert not await leases.acquire(execution_id, "a", TTL)


@pytest.mark.integration
class TestSQLAlchemyIdempotencyStore:
    """Tests for recorded side-effect outputs."""

    async def test_first_write_wins(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        """Test a second record for the same key is ignored."""
        from litestar_automations.db.stores import SQLAlchemyIdempotencyStore

        store = SQLAlchemyIdempotencyStore(session_maker)

        assert await store.get("exec:node") is None
        await store.put("exec:node", {"message_id": "first"})
        await store.put("exec:node", {"message_id": "second"})

        assert await store.get("exec:node") == {"message_id": "first"}

    async def test_replay_after_lost_checkpoint(
        self,
        sql_scheduler: Scheduler,
        send_definition: WorkflowDefinition,
        sender: FakeMessageSender,
    ) -> None:
        """Test re-driving a node whose output is recorded skips the adapter."""
        from litestar_automations.core.types import ExecutionStatus

        await sql_scheduler.definitions.save_definition(send_definition)
        [created] = await sql_scheduler.submit(make_event(), background=False)
        stale = await sql_scheduler.executions.load_execution(created.id)
        stale.status = ExecutionStatus.RUNNING
        stale.current_node = "send"
        stale.path = ["start"]
        stale.completed_at = None
        await sql_scheduler.executions.save_checkpoint(stale)

        replayed = await sql_scheduler.drive(created.id)

        assert replayed.status == ExecutionStatus.COMPLETED
        assert len(sender.calls) == 1


# =============================================================================
# Migration Tests
# =============================================================================


@pytest.mark.integration
class TestInitialMigration:
    """Tests for the bundled alembic revision."""

    async def test_upgrade_creates_model_tables(self, tmp_path: Path) -> None:
        """Test the migration creates every table the models declare, and downgrade drops them."""
        from alembic.migration import MigrationContext
        from alembic.operations import Operations

        import litestar_automations.db as db_package

        path = Path(db_package.__file__).parent / "migrations" / "versions" / "001_initial_automation_tables.py"
        spec = importlib.util.spec_from_file_location("automations_initial_migration", path)
        assert spec is not None and spec.loader is not None
        migration = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(migration)

        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'migrated.db'}")

        def run(connection, step) -> set[str]:  # type: ignore[no-untyped-def]
            with Operations.context(MigrationContext.configure(connection)):
                step()
            return set(inspect(connection).get_table_names())

        async with engine.begin() as conn:
            upgraded = await conn.run_sync(run, migration.upgrade)
        async with engine.begin() as conn:
            downgraded = await conn.run_sync(run, migration.downgrade)
        await engine.dispose()

        expected = {table for table in WorkflowDefinitionModel.metadata.tables if table.startswith("automation_")}
        assert expected <= upgraded
        assert not expected & downgraded
