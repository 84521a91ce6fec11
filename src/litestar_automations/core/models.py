"""Runtime data models for litestar-automations.

This module provides the dataclasses describing triggering events, executions and
their per-node step records.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from litestar_automations.core.types import EventType, ExecutionStatus, NodeKind, StepStatus
from litestar_automations.exceptions import ErrorKind

__all__ = ["Execution", "ExecutionError", "StepRecord", "TriggerEvent"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class TriggerEvent:
    """A business event delivered to the scheduler.

    Attributes:
        type: The event type.
        organization_id: Organization the event belongs to.
        payload: Event data, e.g. ``{"message": {...}, "contact": {...}}``.
        occurred_at: When the event happened.
        id: Producer-assigned event id, if any.
        contact_id: Contact the event concerns. Derived from the payload when
            not given.
        plan_tier: The organization's plan tier, used to pick the run deadline.
    """

    type: EventType
    organization_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=_utcnow)
    id: str | None = None
    contact_id: str | None = None
    plan_tier: str | None = None

    def __post_init__(self) -> None:
        self.type = EventType(self.type)
        if self.contact_id is None:
            contact = self.payload.get("contact")
            if isinstance(contact, dict) and contact.get("id") is not None:
                self.contact_id = str(contact["id"])
            elif self.payload.get("contact_id") is not None:
                self.contact_id = str(self.payload["contact_id"])


@dataclass
class ExecutionError:
    """Terminal error recorded on an execution.

    Attributes:
        kind: Error category.
        message: User-presentable message. Never carries provider error text.
        node_id: The node being executed when the error happened.
    """

    kind: ErrorKind
    message: str
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": str(self.kind), "message": self.message, "node_id": self.node_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionError:
        return cls(kind=ErrorKind(data["kind"]), message=data["message"], node_id=data.get("node_id"))


@dataclass
class StepRecord:
    """Audit record of one node step.

    Attributes:
        node_id: The executed node.
        kind: Its kind.
        status: Outcome of the step.
        attempt: Attempt number, starting at 1.
        started_at: When the step began.
        completed_at: When the step ended.
        output: Values the step stored in the context.
        error: Normalized error message, if the step failed.
    """

    node_id: str
    kind: NodeKind
    status: StepStatus
    attempt: int
    started_at: datetime
    completed_at: datetime | None = None
    output: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "kind": str(self.kind),
            "status": str(self.status),
            "attempt": self.attempt,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "output": copy.deepcopy(self.output),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepRecord:
        return cls(
            node_id=data["node_id"],
            kind=NodeKind(data["kind"]),
            status=StepStatus(data["status"]),
            attempt=int(data["attempt"]),
            started_at=_dt(data["started_at"]),  # type: ignore[arg-type]
            completed_at=_dt(data.get("completed_at")),
            output=copy.deepcopy(data.get("output")),
            error=data.get("error"),
        )


@dataclass
class Execution:
    """One traversal of a workflow definition for one triggering event.

    An execution is mutated only by the interpreter of the worker holding its
    lease, and is checkpointed after every step.

    Attributes:
        workflow_id: Identifier of the definition being executed.
        workflow_version: Version of that definition.
        organization_id: Owning organization.
        event_type: Type of the triggering event.
        status: Current status.
        current_node: Node to execute next, None once finished.
        context: Snapshot of the execution context.
        path: Ordered ids of the nodes already executed, trigger included.
        started_at: Creation time.
        deadline: Absolute time after which the run times out.
        resume_at: When a waiting run becomes due.
        completed_at: When the run reached a terminal status.
        error: Terminal error, if any.
        attempts: Failed attempts per node, for retry bookkeeping.
        steps: Per-node step log.
        cancel_requested: Set when cancellation has been requested.
        event_id: Identifier of the triggering event, if any.
        contact_id: Contact the run concerns, if any.
        id: Unique identifier.
    """

    workflow_id: str
    workflow_version: int
    organization_id: str
    event_type: EventType
    status: ExecutionStatus
    current_node: str | None
    context: dict[str, Any]
    path: list[str]
    started_at: datetime
    deadline: datetime
    resume_at: datetime | None = None
    completed_at: datetime | None = None
    error: ExecutionError | None = None
    attempts: dict[str, int] = field(default_factory=dict)
    steps: list[StepRecord] = field(default_factory=list)
    cancel_requested: bool = False
    event_id: str | None = None
    contact_id: str | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_terminal(self) -> bool:
        """Whether the execution has reached a terminal status."""
        return self.status.is_terminal

    def checkpoint_state(self) -> tuple[ExecutionStatus, str | None, dict[str, Any], list[str]]:
        """Return the ``(status, current_node, context, path)`` tuple a checkpoint must preserve."""
        return self.status, self.current_node, self.context, self.path

    def to_dict(self) -> dict[str, Any]:
        """Serialize the execution to a JSON-compatible mapping."""
        return {
            "id": str(self.id),
            "workflow_id": self.workflow_id,
            "workflow_version": self.workflow_version,
            "organization_id": self.organization_id,
            "event_type": str(self.event_type),
            "event_id": self.event_id,
            "contact_id": self.contact_id,
            "status": str(self.status),
            "current_node": self.current_node,
            "context": copy.deepcopy(self.context),
            "path": list(self.path),
            "started_at": _iso(self.started_at),
            "deadline": _iso(self.deadline),
            "resume_at": _iso(self.resume_at),
            "completed_at": _iso(self.completed_at),
            "error": self.error.to_dict() if self.error else None,
            "attempts": dict(self.attempts),
            "steps": [step.to_dict() for step in self.steps],
            "cancel_requested": self.cancel_requested,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Execution:
        """Build an execution from the output of :meth:`to_dict`."""
        return cls(
            id=UUID(str(data["id"])),
            workflow_id=data["workflow_id"],
            workflow_version=int(data["workflow_version"]),
            organization_id=data["organization_id"],
            event_type=EventType(data["event_type"]),
            event_id=data.get("event_id"),
            contact_id=data.get("contact_id"),
            status=ExecutionStatus(data["status"]),
            current_node=data.get("current_node"),
            context=copy.deepcopy(data.get("context") or {}),
            path=list(data.get("path") or []),
            started_at=_dt(data["started_at"]),  # type: ignore[arg-type]
            deadline=_dt(data["deadline"]),  # type: ignore[arg-type]
            resume_at=_dt(data.get("resume_at")),
            completed_at=_dt(data.get("completed_at")),
            error=ExecutionError.from_dict(data["error"]) if data.get("error") else None,
            attempts=dict(data.get("attempts") or {}),
            steps=[StepRecord.from_dict(step) for step in data.get("steps") or []],
            cancel_requested=bool(data.get("cancel_requested", False)),
        )
