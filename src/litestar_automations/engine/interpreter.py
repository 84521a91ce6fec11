"""Step interpreter.

This module provides the state machine that executes one node of an execution,
resolves the next node, enforces the run limits and checkpoints the result.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from litestar_automations.actions.dispatcher import ActionCall
from litestar_automations.core.configs import (
    AIResponseConfig,
    ConditionConfig,
    DelayConfig,
)
from litestar_automations.core.context import ExecutionContext
from litestar_automations.core.models import ExecutionError, StepRecord
from litestar_automations.core.types import EdgeLabel, ExecutionStatus, FailurePolicy, NodeKind, StepStatus
from litestar_automations.engine.conditions import evaluate_rules
from litestar_automations.engine.retry import RetryPolicy
from litestar_automations.exceptions import (
    ActionFailedError,
    AutomationsError,
    CycleDetectedError,
    DefinitionError,
    ErrorKind,
    ExecutionTimeoutError,
    InvalidTransitionError,
    NodeConfigError,
)
from litestar_automations.logging import get_logger

if TYPE_CHECKING:
    from litestar_automations.actions.dispatcher import ActionDispatcher
    from litestar_automations.config import EngineConfig
    from litestar_automations.core.configs import ActionConfig
    from litestar_automations.core.definition import Node
    from litestar_automations.core.models import Execution
    from litestar_automations.core.protocols import EventBus, ExecutionStore
    from litestar_automations.engine.graph import WorkflowGraph

__all__ = ["StepInterpreter"]

logger = get_logger(__name__)

_STATUS_EVENTS = {
    ExecutionStatus.WAITING: "execution.waiting",
    ExecutionStatus.COMPLETED: "execution.completed",
    ExecutionStatus.FAILED: "execution.failed",
    ExecutionStatus.TIMED_OUT: "execution.timed_out",
    ExecutionStatus.CANCELLED: "execution.canceled",
}


class StepInterpreter:
    """Executes one step of an execution at a time.

    Every call to :meth:`step` leaves the execution in a consistent state and
    checkpoints it before returning, so a crash between two steps loses nothing.
    The checks run in a fixed order: cancellation, path length, deadline, then the
    node itself.

    Attributes:
        store: Execution store receiving checkpoints.
        dispatcher: Gateway for side effects.
        config: Engine limits and clock.
        event_bus: Optional receiver of lifecycle notifications.
    """

    def __init__(
        self,
        store: ExecutionStore,
        dispatcher: ActionDispatcher,
        config: EngineConfig,
        event_bus: EventBus | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.config = config
        self.event_bus = event_bus

    async def step(self, execution: Execution, graph: WorkflowGraph) -> ExecutionStatus:
        """Execute the current node of a running execution.

        Args:
            execution: The execution, in ``running`` status. Mutated in place.
            graph: Graph of the definition version the execution runs.

        Returns:
            The status after the step.

        Raises:
            InvalidTransitionError: If the execution is not running.
        """
        if execution.status != ExecutionStatus.RUNNING:
            raise InvalidTransitionError(execution.id, execution.status, "only running executions can step")

        now = self.config.now()
        if execution.cancel_requested or await self.store.is_cancel_requested(execution.id):
            execution.cancel_requested = True
            await self._finish(execution, ExecutionStatus.CANCELLED, now)
        elif execution.current_node is None:
            await self._finish(execution, ExecutionStatus.COMPLETED, now)
        elif len(execution.path) + 1 > graph.node_count:
            error = CycleDetectedError(
                execution.current_node,
                f"Run visited {len(execution.path)} nodes of a {graph.node_count}-node workflow",
            )
            await self._fail(execution, error, now)
        elif now > execution.deadline:
            await self._fail(execution, ExecutionTimeoutError("Run exceeded its deadline"), now)
        else:
            try:
                await self._execute(execution, graph, now)
            except AutomationsError as exc:
                await self._fail(execution, exc, now)
            except Exception:
                logger.exception("step.internal_error", node_id=execution.current_node)
                message = f"Internal error while executing node '{execution.current_node}'"
                await self._fail(execution, AutomationsError(message), now)

        await self.store.save_checkpoint(execution)
        return execution.status

    async def cancel(self, execution: Execution) -> ExecutionStatus:
        """Move a running or waiting execution to ``cancelled`` and checkpoint it.

        Terminal executions are left untouched.
        """
        if execution.is_terminal:
            return execution.status
        execution.cancel_requested = True
        await self._finish(execution, ExecutionStatus.CANCELLED, self.config.now())
        await self.store.save_checkpoint(execution)
        return execution.status

    async def fail(self, execution: Execution, error: AutomationsError) -> ExecutionStatus:
        """Fail a non-terminal execution outside of a step and checkpoint it.

        Used when the run cannot be stepped at all, such as when its pinned
        definition version is gone. Terminal executions are left untouched.
        """
        if execution.is_terminal:
            return execution.status
        await self._fail(execution, error, self.config.now())
        await self.store.save_checkpoint(execution)
        return execution.status

    async def _execute(self, execution: Execution, graph: WorkflowGraph, now: datetime) -> None:
        node_id = execution.current_node
        if node_id is None:
            raise InvalidTransitionError(execution.id, execution.status, "execution has no current node")
        node = graph.node(node_id)
        if node is None:
            msg = f"Node '{node_id}' not found in workflow"
            raise DefinitionError(msg, node_id)

        config = graph.config(node_id)
        context = ExecutionContext.from_snapshot(execution.context)

        if node.kind == NodeKind.CONDITION:
            if not isinstance(config, ConditionConfig):
                msg = "Condition node has no condition config"
                raise NodeConfigError(msg, node_id=node_id)
            result = evaluate_rules(config.rules, context, config.match)
            context.set(node_id, "result", result)
            label = EdgeLabel.TRUE if result else EdgeLabel.FALSE
            self._record(execution, node, StepStatus.SUCCEEDED, now, output={"result": result})
            execution.context = context.snapshot()
            await self._advance(execution, node_id, graph.next_node(node_id, label), now)
        elif node.kind == NodeKind.DELAY:
            if not isinstance(config, DelayConfig):
                msg = "Delay node has no delay config"
                raise NodeConfigError(msg, node_id=node_id)
            await self._suspend_on_delay(execution, graph, node, config, now)
        elif node.kind in (NodeKind.ACTION, NodeKind.AI_RESPONSE):
            await self._perform(execution, graph, node, config, context, now)  # type: ignore[arg-type]
        else:
            # a trigger only starts runs; reaching one again just moves on
            self._record(execution, node, StepStatus.SUCCEEDED, now)
            await self._advance(execution, node_id, graph.next_node(node_id), now)

    async def _suspend_on_delay(
        self,
        execution: Execution,
        graph: WorkflowGraph,
        node: Node,
        config: DelayConfig,
        now: datetime,
    ) -> None:
        duration = config.duration
        execution.resume_at = now + duration
        # time spent suspended on a delay does not count against the run deadline
        execution.deadline = execution.deadline + duration
        execution.path.append(node.id)
        execution.current_node = graph.next_node(node.id)
        execution.status = ExecutionStatus.WAITING
        self._record(execution, node, StepStatus.WAITING, now, output={"resume_at": execution.resume_at.isoformat()})
        logger.info("step.delayed", node_id=node.id, resume_at=execution.resume_at.isoformat())
        await self._emit(execution)

    async def _perform(
        self,
        execution: Execution,
        graph: WorkflowGraph,
        node: Node,
        config: ActionConfig | AIResponseConfig,
        context: ExecutionContext,
        now: datetime,
    ) -> None:
        policy = RetryPolicy.for_node(config, self.config)
        attempt = execution.attempts.get(node.id, 0) + 1
        call = ActionCall(
            execution_id=execution.id,
            node_id=node.id,
            organization_id=execution.organization_id,
            contact_id=execution.contact_id,
            attempt=attempt,
            timeout=policy.call_timeout.total_seconds(),
        )

        try:
            output = await self.dispatcher.dispatch(config, context, call)
        except ActionFailedError as exc:
            await self._on_action_failure(execution, graph, node, policy, exc, attempt, context, now)
            return

        for key, value in output.items():
            context.set(node.id, key, value)
        execution.context = context.snapshot()
        execution.attempts.pop(node.id, None)
        self._record(execution, node, StepStatus.SUCCEEDED, now, output=output, attempt=attempt)
        await self._advance(execution, node.id, graph.next_node(node.id), now)

    async def _on_action_failure(
        self,
        execution: Execution,
        graph: WorkflowGraph,
        node: Node,
        policy: RetryPolicy,
        error: ActionFailedError,
        attempt: int,
        context: ExecutionContext,
        now: datetime,
    ) -> None:
        error = error.with_attempts(attempt)
        execution.attempts[node.id] = attempt

        if policy.can_retry(attempt):
            backoff = policy.backoff_for(attempt)
            execution.status = ExecutionStatus.WAITING
            execution.resume_at = now + backoff
            self._record(execution, node, StepStatus.RETRYING, now, error=str(error), attempt=attempt)
            logger.info(
                "step.retry_scheduled",
                node_id=node.id,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                backoff=backoff.total_seconds(),
            )
            return

        if policy.failure_policy == FailurePolicy.SKIP_NODE:
            context.set(node.id, "error", str(error))
            execution.context = context.snapshot()
            execution.attempts.pop(node.id, None)
            self._record(execution, node, StepStatus.SKIPPED, now, error=str(error), attempt=attempt)
            logger.info("step.skipped", node_id=node.id, error=str(error))
            await self._advance(execution, node.id, graph.next_node(node.id), now)
            return

        self._record(execution, node, StepStatus.FAILED, now, error=str(error), attempt=attempt)
        await self._fail(execution, error, now)

    async def _advance(self, execution: Execution, node_id: str, next_node: str | None, now: datetime) -> None:
        execution.path.append(node_id)
        execution.current_node = next_node
        logger.debug("step.completed", node_id=node_id, next_node=next_node)
        if next_node is None:
            await self._finish(execution, ExecutionStatus.COMPLETED, now)

    async def _fail(self, execution: Execution, error: AutomationsError, now: datetime) -> None:
        execution.error = ExecutionError(kind=error.kind, message=str(error), node_id=execution.current_node)
        status = ExecutionStatus.TIMED_OUT if error.kind == ErrorKind.TIMEOUT else ExecutionStatus.FAILED
        logger.warning("execution.failed", status=str(status), error_kind=str(error.kind), error=str(error))
        await self._finish(execution, status, now)

    async def _finish(self, execution: Execution, status: ExecutionStatus, now: datetime) -> None:
        execution.status = status
        execution.resume_at = None
        execution.completed_at = now
        logger.info("execution.finished", status=str(status), path=list(execution.path))
        await self._emit(execution)

    async def _emit(self, execution: Execution) -> None:
        if self.event_bus is None:
            return
        payload: dict[str, Any] = {
            "execution_id": execution.id,
            "workflow_id": execution.workflow_id,
            "organization_id": execution.organization_id,
        }
        if execution.error is not None:
            payload["error_kind"] = str(execution.error.kind)
            payload["error"] = execution.error.message
        await self.event_bus.emit(_STATUS_EVENTS[execution.status], **payload)

    def _record(
        self,
        execution: Execution,
        node: Node,
        status: StepStatus,
        started_at: datetime,
        *,
        output: dict[str, Any] | None = None,
        error: str | None = None,
        attempt: int = 1,
    ) -> None:
        execution.steps.append(
            StepRecord(
                node_id=node.id,
                kind=node.kind,
                status=status,
                attempt=attempt,
                started_at=started_at,
                completed_at=self.config.now(),
                output=output,
                error=error,
            )
        )
