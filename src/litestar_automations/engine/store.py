"""In-memory execution store."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from litestar_automations.core.models import Execution
from litestar_automations.core.types import ExecutionStatus
from litestar_automations.exceptions import ExecutionNotFoundError

if TYPE_CHECKING:
    from uuid import UUID

__all__ = ["InMemoryExecutionStore"]


class InMemoryExecutionStore:
    """Process-local execution store.

    Executions are stored serialized, so a loaded execution never shares state with
    the one that was checkpointed. Suitable for development, testing and
    single-instance deployments.
    """

    def __init__(self) -> None:
        self._executions: dict[UUID, dict[str, Any]] = {}
        self._cancel_requested: set[UUID] = set()

    async def save_checkpoint(self, execution: Execution) -> None:
        self._executions[execution.id] = execution.to_dict()

    async def load_execution(self, execution_id: UUID) -> Execution:
        data = self._executions.get(execution_id)
        if data is None:
            raise ExecutionNotFoundError(execution_id)
        execution = Execution.from_dict(data)
        execution.cancel_requested = execution.cancel_requested or execution_id in self._cancel_requested
        return execution

    async def list_waiting_due(self, now: datetime, limit: int | None = None) -> list[UUID]:
        due: list[tuple[datetime, UUID]] = []
        for execution_id, data in self._executions.items():
            if data["status"] != ExecutionStatus.WAITING or data["resume_at"] is None:
                continue
            resume_at = datetime.fromisoformat(data["resume_at"])
            if resume_at <= now:
                due.append((resume_at, execution_id))
        due.sort(key=lambda item: item[0])
        ids = [execution_id for _, execution_id in due]
        return ids[:limit] if limit is not None else ids

    async def list_running(self) -> list[UUID]:
        return [
            execution_id
            for execution_id, data in self._executions.items()
            if data["status"] == ExecutionStatus.RUNNING
        ]

    async def count_executions(self, workflow_id: str, contact_id: str, *, active_only: bool = False) -> int:
        count = 0
        for data in self._executions.values():
            if data["workflow_id"] != workflow_id or data["contact_id"] != contact_id:
                continue
            if active_only and ExecutionStatus(data["status"]).is_terminal:
                continue
            count += 1
        return count

    async def request_cancel(self, execution_id: UUID) -> None:
        if execution_id not in self._executions:
            raise ExecutionNotFoundError(execution_id)
        self._cancel_requested.add(execution_id)

    async def is_cancel_requested(self, execution_id: UUID) -> bool:
        return execution_id in self._cancel_requested

    def __len__(self) -> int:
        return len(self._executions)
