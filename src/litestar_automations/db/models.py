"""SQLAlchemy models for automation persistence.

This module defines the database models for persisting automation state:
- WorkflowDefinitionModel: Stores every version of a workflow definition
- ExecutionModel: Stores execution checkpoints
- ExecutionStepModel: Records the per-node step log of executions
- ExecutionLeaseModel: Holds the per-execution driver lease
- IdempotencyRecordModel: Records outputs of completed side effects
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Enum, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from litestar_automations.core.types import EventType, ExecutionStatus, NodeKind, StepStatus

__all__ = [
    "ExecutionLeaseModel",
    "ExecutionModel",
    "ExecutionStepModel",
    "IdempotencyRecordModel",
    "WorkflowDefinitionModel",
]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


class WorkflowDefinitionModel(UUIDAuditBase):
    """One persisted version of a workflow definition.

    Attributes:
        workflow_id: Stable identifier of the workflow across versions.
        version: Version number, starting at 1.
        organization_id: Owning organization.
        name: Human-readable name.
        description: Optional description.
        enabled: Whether this version reacts to events.
        definition_json: Serialized WorkflowDefinition.
    """

    __tablename__ = "automation_workflow_definitions"
    __table_args__ = (
        Index("ix_automation_definitions_workflow_version", "workflow_id", "version", unique=True),
        Index("ix_automation_definitions_org_enabled", "organization_id", "enabled"),
    )

    workflow_id: Mapped[str] = mapped_column(String(255))
    version: Mapped[int] = mapped_column(Integer)
    organization_id: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(default=False)
    definition_json: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)


class ExecutionModel(UUIDAuditBase):
    """Checkpoint of an execution.

    Terminal executions are flagged ``archived`` and kept for audit and analytics.

    Attributes:
        workflow_id: Identifier of the executed workflow.
        workflow_version: Version of the executed definition.
        organization_id: Owning organization.
        event_type: Type of the triggering event.
        event_id: Producer id of the triggering event.
        contact_id: Contact the run concerns.
        status: Current status.
        current_node: Node to execute next.
        context_data: Execution context snapshot.
        path: Ids of the nodes already executed.
        attempts: Failed attempts per node.
        started_at: Creation time.
        deadline: Absolute run deadline.
        resume_at: When a waiting run becomes due.
        completed_at: When the run ended.
        error_kind: Error category of a failed run.
        error_message: Error message of a failed run.
        error_node_id: Node being executed when the run failed.
        cancel_requested: Set by cancellation requests; never cleared.
        archived: Set once the run is terminal.
    """

    __tablename__ = "automation_executions"
    __table_args__ = (
        Index("ix_automation_executions_status_resume_at", "status", "resume_at"),
        Index("ix_automation_executions_workflow_contact", "workflow_id", "contact_id"),
        Index("ix_automation_executions_organization_id", "organization_id"),
    )

    workflow_id: Mapped[str] = mapped_column(String(255))
    workflow_version: Mapped[int] = mapped_column(Integer)
    organization_id: Mapped[str] = mapped_column(String(255))
    event_type: Mapped[EventType] = mapped_column(Enum(EventType, native_enum=False, length=50))
    event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[ExecutionStatus] = mapped_column(
        Enum(ExecutionStatus, native_enum=False, length=50),
        default=ExecutionStatus.RUNNING,
    )
    current_node: Mapped[str | None] = mapped_column(String(255), nullable=True)
    context_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    path: Mapped[list[str]] = mapped_column(JSONType, default=list)
    attempts: Mapped[dict[str, int]] = mapped_column(JSONType, default=dict)
    started_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    deadline: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    resume_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    error_kind: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_node_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancel_requested: Mapped[bool] = mapped_column(default=False)
    archived: Mapped[bool] = mapped_column(default=False)

    # Relationships
    steps: Mapped[list[ExecutionStepModel]] = relationship(
        back_populates="execution",
        lazy="noload",
        order_by="ExecutionStepModel.sequence",
    )


class ExecutionStepModel(UUIDAuditBase):
    """One entry of an execution's step log.

    Attributes:
        execution_id: Foreign key to the execution.
        sequence: Position of the entry in the log.
        node_id: The executed node.
        node_kind: Its kind.
        status: Outcome of the step.
        attempt: Attempt number.
        output: Values stored in the context by the step.
        error: Normalized error message.
        started_at: When the step began.
        completed_at: When the step ended.
    """

    __tablename__ = "automation_execution_steps"
    __table_args__ = (
        Index("ix_automation_steps_execution_sequence", "execution_id", "sequence", unique=True),
        Index("ix_automation_steps_node_id", "node_id"),
    )

    execution_id: Mapped[UUID] = mapped_column(
        ForeignKey("automation_executions.id", ondelete="CASCADE"),
    )
    sequence: Mapped[int] = mapped_column(Integer)
    node_id: Mapped[str] = mapped_column(String(255))
    node_kind: Mapped[NodeKind] = mapped_column(Enum(NodeKind, native_enum=False, length=50))
    status: Mapped[StepStatus] = mapped_column(Enum(StepStatus, native_enum=False, length=50))
    attempt: Mapped[int] = mapped_column(Integer, default=1)
    output: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)

    # Relationships
    execution: Mapped[ExecutionModel] = relationship(back_populates="steps")


class ExecutionLeaseModel(UUIDAuditBase):
    """Driver lease of an execution.

    Attributes:
        execution_id: The leased execution. At most one row per execution.
        owner: Worker holding the lease.
        expires_at: When the lease lapses unless renewed.
    """

    __tablename__ = "automation_execution_leases"

    execution_id: Mapped[UUID] = mapped_column(Uuid, unique=True)
    owner: Mapped[str] = mapped_column(String(255))
    expires_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))


class IdempotencyRecordModel(UUIDAuditBase):
    """Output of a side effect already performed.

    Attributes:
        key: Idempotency key, ``<execution_id>:<node_id>``.
        output: Output returned by the side effect.
    """

    __tablename__ = "automation_idempotency_records"

    key: Mapped[str] = mapped_column(String(512), unique=True)
    output: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
