"""Scheduler and runner.

The scheduler turns events into executions and drives them. Executions are driven
by pooled asyncio tasks; each one is stepped by at most one worker at a time,
enforced by a lease keyed by the execution id.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from litestar_automations.config import EngineConfig
from litestar_automations.core.context import ExecutionContext
from litestar_automations.core.models import Execution, StepRecord
from litestar_automations.core.types import ExecutionStatus, NodeKind, StepStatus
from litestar_automations.engine.graph import WorkflowGraph
from litestar_automations.engine.interpreter import StepInterpreter
from litestar_automations.engine.lease import InMemoryLeaseManager, generate_worker_id
from litestar_automations.engine.matcher import TriggerMatcher
from litestar_automations.exceptions import (
    DefinitionError,
    ExecutionNotFoundError,
    LeaseConflictError,
    WorkflowNotFoundError,
)
from litestar_automations.logging import bind_execution, get_logger, unbind_execution

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from litestar_automations.actions.dispatcher import ActionDispatcher
    from litestar_automations.core.definition import WorkflowDefinition
    from litestar_automations.core.models import TriggerEvent
    from litestar_automations.core.protocols import DefinitionStore, EventBus, ExecutionStore, LeaseManager

__all__ = ["Scheduler"]

logger = get_logger(__name__)


class Scheduler:
    """Orchestrates runs: creation, driving, resumption and cancellation.

    Each run gets a deadline from its plan tier when it is created. Delay nodes
    extend it by the time they suspend the run (see :class:`EngineConfig`), so
    only driven time and retry waits count against it.

    Attributes:
        definitions: Definition store.
        executions: Execution store.
        dispatcher: Gateway for side effects.
        config: Engine limits and clock.
        leases: Per-execution lease manager.
        event_bus: Optional receiver of lifecycle notifications.
        worker_id: Lease owner id of this scheduler.

    Example:
        >>> scheduler = Scheduler(
        ...     definitions=DefinitionRegistry(),
        ...     executions=InMemoryExecutionStore(),
        ...     dispatcher=ActionDispatcher(messages=sender),
        ... )
        >>> executions = await scheduler.submit(event)
        >>> await scheduler.drain()
    """

    def __init__(
        self,
        definitions: DefinitionStore,
        executions: ExecutionStore,
        dispatcher: ActionDispatcher,
        config: EngineConfig | None = None,
        leases: LeaseManager | None = None,
        event_bus: EventBus | None = None,
        worker_id: str | None = None,
    ) -> None:
        self.definitions = definitions
        self.executions = executions
        self.dispatcher = dispatcher
        self.config = config or EngineConfig()
        self.leases: LeaseManager = leases if leases is not None else InMemoryLeaseManager(self.config.clock)
        self.event_bus = event_bus
        self.worker_id = worker_id or generate_worker_id()
        self.matcher = TriggerMatcher(definitions)
        self.interpreter = StepInterpreter(executions, dispatcher, self.config, event_bus)
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_runs)
        self._tasks: dict[UUID, asyncio.Task[None]] = {}
        self._driving: set[UUID] = set()

    async def submit(self, event: TriggerEvent, *, background: bool = True) -> list[Execution]:
        """Match an event and create one execution per matching definition.

        Args:
            event: The business event.
            background: If True, created runs are driven by background tasks; if
                False, they are driven before this call returns.

        Returns:
            The created executions, as checkpointed at creation.
        """
        created: list[Execution] = []
        for definition in await self.matcher.match(event):
            if not await self._admits(definition, event):
                continue
            execution = await self._create(definition, event)
            created.append(execution)

        for execution in created:
            if execution.status != ExecutionStatus.RUNNING:
                continue
            if background:
                self._spawn(execution.id, resuming=False)
            else:
                await self._run_guarded(execution.id, resuming=False)
        return created

    async def drive(self, execution_id: UUID) -> Execution:
        """Step an execution until it leaves ``running`` status.

        A waiting execution whose ``resume_at`` has elapsed is resumed first;
        any other non-running execution is returned untouched.

        Raises:
            LeaseConflictError: If another worker is driving the execution.
            ExecutionNotFoundError: If the execution does not exist.
        """
        return await self._run(execution_id, resuming=False)

    async def resume(self, execution_id: UUID) -> Execution:
        """Resume a waiting execution whose ``resume_at`` has elapsed.

        Executions that are not waiting, or not due yet, are returned untouched.

        Raises:
            LeaseConflictError: If another worker is driving the execution.
            ExecutionNotFoundError: If the execution does not exist.
        """
        return await self._run(execution_id, resuming=True)

    async def cancel(self, execution_id: UUID) -> Execution:
        """Request cancellation of an execution.

        An idle execution is cancelled right away. An execution currently being
        driven is cancelled by its driver at the start of its next step, without
        executing further side effects.

        Raises:
            ExecutionNotFoundError: If the execution does not exist.
        """
        await self.executions.request_cancel(execution_id)
        # leases are reentrant for their owner, so our own in-flight runs are checked first
        if execution_id in self._driving:
            logger.info("execution.cancel_deferred", execution_id=str(execution_id))
            return await self.executions.load_execution(execution_id)
        self._driving.add(execution_id)
        try:
            if not await self.leases.acquire(execution_id, self.worker_id, self.config.lease_ttl):
                logger.info("execution.cancel_deferred", execution_id=str(execution_id))
                return await self.executions.load_execution(execution_id)
            try:
                execution = await self.executions.load_execution(execution_id)
                await self.interpreter.cancel(execution)
                logger.info("execution.cancelled", execution_id=str(execution_id), status=str(execution.status))
                return execution
            finally:
                await self.leases.release(execution_id, self.worker_id)
        finally:
            self._driving.discard(execution_id)

    async def get_execution(self, execution_id: UUID) -> Execution:
        """Return the current checkpoint of an execution."""
        return await self.executions.load_execution(execution_id)

    async def resume_due(self, now: datetime | None = None) -> list[UUID]:
        """Schedule the resumption of every waiting execution that is due.

        Returns:
            Ids of the executions scheduled.
        """
        now = now or self.config.now()
        due = await self.executions.list_waiting_due(now, limit=self.config.poll_batch_size)
        scheduled = [execution_id for execution_id in due if execution_id not in self._tasks]
        for execution_id in scheduled:
            self._spawn(execution_id, resuming=True)
        if scheduled:
            logger.debug("scheduler.resume_due", count=len(scheduled))
        return scheduled

    async def recover(self) -> list[UUID]:
        """Re-drive running executions left behind by a crashed worker.

        Only executions whose lease has lapsed are picked up; they continue from
        their last checkpoint.

        Returns:
            Ids of the executions scheduled.
        """
        recovered = []
        for execution_id in await self.executions.list_running():
            if execution_id in self._tasks or await self.leases.holder(execution_id) is not None:
                continue
            self._spawn(execution_id, resuming=False)
            recovered.append(execution_id)
        if recovered:
            logger.info("scheduler.recovered", count=len(recovered))
        return recovered

    async def drain(self) -> None:
        """Wait until every background run of this scheduler has returned."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    @property
    def active_runs(self) -> int:
        return len(self._tasks)

    async def _admits(self, definition: WorkflowDefinition, event: TriggerEvent) -> bool:
        settings = definition.settings
        contact_id = event.contact_id
        if contact_id is None:
            return True

        total = await self.executions.count_executions(definition.id, contact_id)
        if not total:
            return True
        if not settings.allow_reentry:
            logger.info("submit.skipped", workflow_id=definition.id, contact_id=contact_id, reason="reentry")
            return False

        active = await self.executions.count_executions(definition.id, contact_id, active_only=True)
        if active:
            logger.info("submit.skipped", workflow_id=definition.id, contact_id=contact_id, reason="active_run")
            return False

        limit = settings.max_executions_per_contact
        if limit is not None and total - active >= limit:
            logger.info("submit.skipped", workflow_id=definition.id, contact_id=contact_id, reason="max_executions")
            return False
        return True

    async def _create(self, definition: WorkflowDefinition, event: TriggerEvent) -> Execution:
        graph = WorkflowGraph(definition)
        trigger = graph.trigger
        if trigger is None:
            msg = "Workflow has no trigger node"
            raise DefinitionError(msg)
        now = self.config.now()
        start = graph.next_node(trigger.id)

        execution = Execution(
            workflow_id=definition.id,
            workflow_version=definition.version,
            organization_id=event.organization_id,
            event_type=event.type,
            event_id=event.id,
            contact_id=event.contact_id,
            status=ExecutionStatus.RUNNING if start is not None else ExecutionStatus.COMPLETED,
            current_node=start,
            context=ExecutionContext.from_event(event).snapshot(),
            path=[trigger.id],
            started_at=now,
            deadline=now + self.config.run_timeout_for(event.plan_tier),
            completed_at=None if start is not None else now,
            steps=[
                StepRecord(
                    node_id=trigger.id,
                    kind=NodeKind.TRIGGER,
                    status=StepStatus.SUCCEEDED,
                    attempt=1,
                    started_at=now,
                    completed_at=now,
                    output={"event_type": str(event.type)},
                )
            ],
        )
        await self.executions.save_checkpoint(execution)
        logger.info(
            "execution.created",
            execution_id=str(execution.id),
            workflow_id=definition.id,
            version=definition.version,
            organization_id=event.organization_id,
        )
        if self.event_bus:
            await self.event_bus.emit(
                "execution.started",
                execution_id=execution.id,
                workflow_id=definition.id,
                organization_id=event.organization_id,
            )
            if execution.status == ExecutionStatus.COMPLETED:
                await self.event_bus.emit(
                    "execution.completed",
                    execution_id=execution.id,
                    workflow_id=definition.id,
                    organization_id=event.organization_id,
                )
        return execution

    async def _run(self, execution_id: UUID, *, resuming: bool) -> Execution:
        # leases are reentrant for their owner, so a second driver in this scheduler is refused here
        if execution_id in self._driving:
            logger.info("lease.conflict", execution_id=str(execution_id), reason="driven_locally")
            raise LeaseConflictError(execution_id)
        self._driving.add(execution_id)
        if not await self.leases.acquire(execution_id, self.worker_id, self.config.lease_ttl):
            self._driving.discard(execution_id)
            logger.info("lease.conflict", execution_id=str(execution_id))
            raise LeaseConflictError(execution_id)

        try:
            execution = await self.executions.load_execution(execution_id)
            bind_execution(execution.id, execution.workflow_id, execution.organization_id)

            if execution.status == ExecutionStatus.WAITING:
                if not self._is_due(execution):
                    logger.debug("execution.not_due", resume_at=str(execution.resume_at))
                    return execution
                execution.status = ExecutionStatus.RUNNING
                execution.resume_at = None
                await self.executions.save_checkpoint(execution)
                logger.info("execution.resumed", node_id=execution.current_node)
            elif resuming or execution.status != ExecutionStatus.RUNNING:
                logger.debug("execution.not_resumable", status=str(execution.status))
                return execution

            try:
                definition = await self.definitions.get_definition(execution.workflow_id, execution.workflow_version)
            except WorkflowNotFoundError as exc:
                logger.warning("execution.definition_missing", error=str(exc))
                await self.interpreter.fail(execution, exc)
                return execution

            graph = WorkflowGraph(definition)
            while execution.status == ExecutionStatus.RUNNING:
                if not await self.leases.acquire(execution_id, self.worker_id, self.config.lease_ttl):
                    logger.warning("lease.lost", node_id=execution.current_node)
                    raise LeaseConflictError(execution_id)
                await self.interpreter.step(execution, graph)
            return execution
        finally:
            self._driving.discard(execution_id)
            await self.leases.release(execution_id, self.worker_id)
            unbind_execution()

    def _is_due(self, execution: Execution) -> bool:
        return execution.resume_at is None or execution.resume_at <= self.config.now()

    def _spawn(self, execution_id: UUID, *, resuming: bool) -> None:
        task = asyncio.create_task(self._run_guarded(execution_id, resuming=resuming))
        self._tasks[execution_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(execution_id, None))

    async def _run_guarded(self, execution_id: UUID, *, resuming: bool) -> None:
        async with self._semaphore:
            try:
                await self._run(execution_id, resuming=resuming)
            except LeaseConflictError:
                # the poller picks the execution up again once the lease is free
                logger.info("lease.conflict_deferred", execution_id=str(execution_id))
            except ExecutionNotFoundError:
                logger.warning("execution.not_found", execution_id=str(execution_id))
            except Exception:
                logger.exception("scheduler.run_crashed", execution_id=str(execution_id))
