"""Core protocols for litestar-automations.

This module defines the Protocol-based interfaces of the engine's collaborators:
definition and execution stores, the per-execution lease, the idempotency record
store and the optional event bus. In-memory implementations live in
:mod:`litestar_automations.engine`, SQLAlchemy implementations in
:mod:`litestar_automations.db`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime, timedelta
    from uuid import UUID

    from litestar_automations.core.definition import WorkflowDefinition
    from litestar_automations.core.models import Execution

__all__ = ["DefinitionStore", "EventBus", "ExecutionStore", "IdempotencyStore", "LeaseManager"]


@runtime_checkable
class DefinitionStore(Protocol):
    """Versioned storage of workflow definitions.

    Example:
        >>> store = DefinitionRegistry()
        >>> saved = await store.save_definition(definition)
        >>> await store.get_enabled_definitions("org_1")
        [WorkflowDefinition(id='welcome', ...)]
    """

    async def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Validate and persist a definition as a new version.

        Args:
            definition: The definition to save.

        Returns:
            The stored definition, with its assigned version.

        Raises:
            WorkflowValidationError: If the definition is enabled and invalid.
        """
        ...

    async def get_definition(self, workflow_id: str, version: int | None = None) -> WorkflowDefinition:
        """Return a definition version, the latest one when ``version`` is None.

        Raises:
            WorkflowNotFoundError: If no such definition exists.
        """
        ...

    async def get_enabled_definitions(self, organization_id: str) -> list[WorkflowDefinition]:
        """Return the latest version of every enabled workflow of an organization."""
        ...


@runtime_checkable
class ExecutionStore(Protocol):
    """Durable storage of execution checkpoints."""

    async def save_checkpoint(self, execution: Execution) -> None:
        """Persist the full state of an execution, creating it if needed.

        The cancellation flag is owned by :meth:`request_cancel` and is never
        cleared by a checkpoint.
        """
        ...

    async def load_execution(self, execution_id: UUID) -> Execution:
        """Load an execution.

        Raises:
            ExecutionNotFoundError: If the execution does not exist.
        """
        ...

    async def list_waiting_due(self, now: datetime, limit: int | None = None) -> list[UUID]:
        """Return ids of waiting executions whose ``resume_at`` is at or before ``now``."""
        ...

    async def list_running(self) -> list[UUID]:
        """Return ids of executions checkpointed in ``running`` status."""
        ...

    async def count_executions(self, workflow_id: str, contact_id: str, *, active_only: bool = False) -> int:
        """Count executions of a workflow for a contact, optionally only non-terminal ones."""
        ...

    async def request_cancel(self, execution_id: UUID) -> None:
        """Flag an execution for cooperative cancellation.

        Raises:
            ExecutionNotFoundError: If the execution does not exist.
        """
        ...

    async def is_cancel_requested(self, execution_id: UUID) -> bool:
        """Return whether cancellation has been requested for an execution."""
        ...


@runtime_checkable
class LeaseManager(Protocol):
    """Mutual exclusion keyed by execution id.

    A lease expires after its ttl so that a crashed worker cannot hold an
    execution forever. Acquiring a lease already held by the same owner renews it.
    """

    async def acquire(self, execution_id: UUID, owner: str, ttl: timedelta) -> bool:
        """Try to take or renew the lease. Returns False when another owner holds it."""
        ...

    async def release(self, execution_id: UUID, owner: str) -> None:
        """Release the lease if ``owner`` holds it."""
        ...

    async def holder(self, execution_id: UUID) -> str | None:
        """Return the owner of the live lease, if any."""
        ...


@runtime_checkable
class IdempotencyStore(Protocol):
    """Record of side effects already performed, keyed by idempotency key."""

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the recorded output for ``key``, or None if nothing was recorded."""
        ...

    async def put(self, key: str, output: dict[str, Any]) -> None:
        """Record the output of a successful side effect."""
        ...


@runtime_checkable
class EventBus(Protocol):
    """Receiver of execution lifecycle notifications."""

    async def emit(self, event: str, **payload: Any) -> None:
        """Publish ``event`` with keyword payload."""
        ...
