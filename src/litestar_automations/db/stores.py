"""SQLAlchemy implementations of the engine's stores.

Each store opens a short-lived session per operation from an
``async_sessionmaker``, so one store instance can be shared by every worker task
of a process, and any number of processes can share the same database.

Example:
    >>> engine = create_async_engine("postgresql+asyncpg://localhost/automations")
    >>> session_maker = async_sessionmaker(engine, expire_on_commit=False)
    >>> scheduler = Scheduler(
    ...     definitions=SQLAlchemyDefinitionStore(session_maker),
    ...     executions=SQLAlchemyExecutionStore(session_maker),
    ...     leases=SQLAlchemyLeaseManager(session_maker),
    ...     dispatcher=ActionDispatcher(idempotency=SQLAlchemyIdempotencyStore(session_maker), ...),
    ... )
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from litestar_automations.config import utcnow
from litestar_automations.core.definition import WorkflowDefinition
from litestar_automations.core.models import Execution, ExecutionError, StepRecord
from litestar_automations.db.models import (
    ExecutionLeaseModel,
    ExecutionModel,
    ExecutionStepModel,
    IdempotencyRecordModel,
    WorkflowDefinitionModel,
)
from litestar_automations.db.repositories import (
    ExecutionLeaseRepository,
    ExecutionRepository,
    ExecutionStepRepository,
    IdempotencyRecordRepository,
    WorkflowDefinitionRepository,
)
from litestar_automations.engine.graph import DEFAULT_MAX_NODES, validate
from litestar_automations.exceptions import (
    ErrorKind,
    ExecutionNotFoundError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from litestar_automations.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime, timedelta
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = [
    "SQLAlchemyDefinitionStore",
    "SQLAlchemyExecutionStore",
    "SQLAlchemyIdempotencyStore",
    "SQLAlchemyLeaseManager",
]

logger = get_logger(__name__)


class SQLAlchemyDefinitionStore:
    """Versioned definition store backed by ``automation_workflow_definitions``."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        max_nodes: int = DEFAULT_MAX_NODES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the store.

        Args:
            session_maker: Factory of database sessions.
            max_nodes: Node-count ceiling enforced by validation.
            clock: Source of the current time for version timestamps.
        """
        self.session_maker = session_maker
        self.max_nodes = max_nodes
        self._clock = clock

    async def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Validate and insert a definition as the next version of its workflow.

        Raises:
            WorkflowValidationError: If the definition is enabled and invalid.
        """
        errors = validate(definition, max_nodes=self.max_nodes)
        if errors and definition.enabled:
            logger.info("definition.rejected", workflow_id=definition.id, errors=[str(e) for e in errors])
            raise WorkflowValidationError(errors)

        stored = copy.deepcopy(definition)
        async with self.session_maker() as session:
            repo = WorkflowDefinitionRepository(session=session)
            stored.version = await repo.get_latest_version_number(definition.id) + 1
            if stored.version > 1:
                first = await repo.get_version(definition.id, 1)
                if first is not None:
                    stored.created_at = WorkflowDefinition.from_dict(first.definition_json).created_at
            stored.updated_at = self._clock()

            await repo.add(
                WorkflowDefinitionModel(
                    workflow_id=stored.id,
                    version=stored.version,
                    organization_id=stored.organization_id,
                    name=stored.name,
                    description=stored.description or None,
                    enabled=stored.enabled,
                    definition_json=stored.to_dict(),
                )
            )
            await session.commit()

        logger.info("definition.saved", workflow_id=stored.id, version=stored.version, enabled=stored.enabled)
        return stored

    async def get_definition(self, workflow_id: str, version: int | None = None) -> WorkflowDefinition:
        async with self.session_maker() as session:
            model = await WorkflowDefinitionRepository(session=session).get_version(workflow_id, version)
            if model is None:
                raise WorkflowNotFoundError(workflow_id, version)
            return WorkflowDefinition.from_dict(model.definition_json)

    async def get_enabled_definitions(self, organization_id: str) -> list[WorkflowDefinition]:
        async with self.session_maker() as session:
            models = await WorkflowDefinitionRepository(session=session).list_latest_enabled(organization_id)
            return [WorkflowDefinition.from_dict(model.definition_json) for model in models]


class SQLAlchemyExecutionStore:
    """Execution checkpoints backed by ``automation_executions``.

    The step log is append-only: a checkpoint inserts the step records not yet
    stored. Terminal executions are flagged ``archived`` and kept.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def save_checkpoint(self, execution: Execution) -> None:
        async with self.session_maker() as session:
            executions = ExecutionRepository(session=session)
            steps = ExecutionStepRepository(session=session)

            model = await executions.get_one_or_none(id=execution.id)
            if model is None:
                model = ExecutionModel(id=execution.id)
                _apply_checkpoint(model, execution)
                model.cancel_requested = execution.cancel_requested
                await executions.add(model)
            else:
                _apply_checkpoint(model, execution)
                # the flag is owned by request_cancel and never cleared here
                model.cancel_requested = model.cancel_requested or execution.cancel_requested

            stored = await steps.count_by_execution(execution.id)
            new_steps = [
                _step_model(execution.id, sequence, record)
                for sequence, record in enumerate(execution.steps)
                if sequence >= stored
            ]
            if new_steps:
                await steps.add_many(new_steps)
            await session.commit()

    async def load_execution(self, execution_id: UUID) -> Execution:
        async with self.session_maker() as session:
            model = await ExecutionRepository(session=session).get_one_or_none(id=execution_id)
            if model is None:
                raise ExecutionNotFoundError(execution_id)
            step_models = await ExecutionStepRepository(session=session).find_by_execution(execution_id)
            return _to_execution(model, step_models)

    async def list_waiting_due(self, now: datetime, limit: int | None = None) -> list[UUID]:
        async with self.session_maker() as session:
            return list(await ExecutionRepository(session=session).find_waiting_due(now, limit))

    async def list_running(self) -> list[UUID]:
        async with self.session_maker() as session:
            return list(await ExecutionRepository(session=session).find_running())

    async def count_executions(self, workflow_id: str, contact_id: str, *, active_only: bool = False) -> int:
        async with self.session_maker() as session:
            return await ExecutionRepository(session=session).count_for_contact(
                workflow_id, contact_id, active_only=active_only
            )

    async def request_cancel(self, execution_id: UUID) -> None:
        async with self.session_maker() as session:
            found = await ExecutionRepository(session=session).mark_cancel_requested(execution_id)
            if not found:
                raise ExecutionNotFoundError(execution_id)
            await session.commit()

    async def is_cancel_requested(self, execution_id: UUID) -> bool:
        async with self.session_maker() as session:
            model = await ExecutionRepository(session=session).get_one_or_none(id=execution_id)
            return bool(model and model.cancel_requested)


class SQLAlchemyLeaseManager:
    """Lease table backed by ``automation_execution_leases``.

    Taking over relies on a conditional ``UPDATE`` and on the unique constraint of
    ``execution_id``, so two workers racing for a lease cannot both win.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock: Callable[[], datetime] = utcnow) -> None:
        self.session_maker = session_maker
        self._clock = clock

    async def acquire(self, execution_id: UUID, owner: str, ttl: timedelta) -> bool:
        now = self._clock()
        async with self.session_maker() as session:
            repo = ExecutionLeaseRepository(session=session)
            if await repo.take_over(execution_id, owner, now, now + ttl):
                await session.commit()
                return True
            if await repo.get_for_execution(execution_id) is not None:
                return False

            session.add(ExecutionLeaseModel(execution_id=execution_id, owner=owner, expires_at=now + ttl))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
            return True

    async def release(self, execution_id: UUID, owner: str) -> None:
        async with self.session_maker() as session:
            repo = ExecutionLeaseRepository(session=session)
            lease = await repo.get_for_execution(execution_id)
            if lease is not None and lease.owner == owner:
                await repo.delete(lease.id)
                await session.commit()

    async def holder(self, execution_id: UUID) -> str | None:
        async with self.session_maker() as session:
            lease = await ExecutionLeaseRepository(session=session).get_for_execution(execution_id)
            if lease is None or lease.expires_at <= self._clock():
                return None
            return lease.owner


class SQLAlchemyIdempotencyStore:
    """Idempotency records backed by ``automation_idempotency_records``.

    The first recorded output for a key wins.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def get(self, key: str) -> dict[str, Any] | None:
        async with self.session_maker() as session:
            record = await IdempotencyRecordRepository(session=session).get_by_key(key)
            return copy.deepcopy(record.output) if record is not None else None

    async def put(self, key: str, output: dict[str, Any]) -> None:
        async with self.session_maker() as session:
            session.add(IdempotencyRecordModel(key=key, output=copy.deepcopy(output)))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug("idempotency.exists", key=key)


def _apply_checkpoint(model: ExecutionModel, execution: Execution) -> None:
    model.workflow_id = execution.workflow_id
    model.workflow_version = execution.workflow_version
    model.organization_id = execution.organization_id
    model.event_type = execution.event_type
    model.event_id = execution.event_id
    model.contact_id = execution.contact_id
    model.status = execution.status
    model.current_node = execution.current_node
    model.context_data = copy.deepcopy(execution.context)
    model.path = list(execution.path)
    model.attempts = dict(execution.attempts)
    model.started_at = execution.started_at
    model.deadline = execution.deadline
    model.resume_at = execution.resume_at
    model.completed_at = execution.completed_at
    model.error_kind = str(execution.error.kind) if execution.error else None
    model.error_message = execution.error.message if execution.error else None
    model.error_node_id = execution.error.node_id if execution.error else None
    model.archived = execution.is_terminal


def _step_model(execution_id: UUID, sequence: int, record: StepRecord) -> ExecutionStepModel:
    return ExecutionStepModel(
        execution_id=execution_id,
        sequence=sequence,
        node_id=record.node_id,
        node_kind=record.kind,
        status=record.status,
        attempt=record.attempt,
        output=copy.deepcopy(record.output),
        error=record.error,
        started_at=record.started_at,
        completed_at=record.completed_at,
    )


def _to_execution(model: ExecutionModel, step_models: Any) -> Execution:
    error = None
    if model.error_kind is not None:
        error = ExecutionError(
            kind=ErrorKind(model.error_kind),
            message=model.error_message or "",
            node_id=model.error_node_id,
        )
    return Execution(
        id=model.id,
        workflow_id=model.workflow_id,
        workflow_version=model.workflow_version,
        organization_id=model.organization_id,
        event_type=model.event_type,
        event_id=model.event_id,
        contact_id=model.contact_id,
        status=model.status,
        current_node=model.current_node,
        context=copy.deepcopy(model.context_data or {}),
        path=list(model.path or []),
        started_at=model.started_at,
        deadline=model.deadline,
        resume_at=model.resume_at,
        completed_at=model.completed_at,
        error=error,
        attempts=dict(model.attempts or {}),
        steps=[
            StepRecord(
                node_id=step.node_id,
                kind=step.node_kind,
                status=step.status,
                attempt=step.attempt,
                started_at=step.started_at,
                completed_at=step.completed_at,
                output=copy.deepcopy(step.output),
                error=step.error,
            )
            for step in step_models
        ],
        cancel_requested=model.cancel_requested,
    )
