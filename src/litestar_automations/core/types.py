"""Core type definitions for litestar-automations.

This module defines the fundamental enums and type aliases used throughout the
automation engine.
"""

from __future__ import annotations

from enum import StrEnum, auto
from typing import Any, TypeAlias

__all__ = [
    "ActionType",
    "AITask",
    "ConditionOperator",
    "Context",
    "DelayUnit",
    "EdgeLabel",
    "EventType",
    "ExecutionStatus",
    "FailurePolicy",
    "MatchMode",
    "NodeKind",
    "StepStatus",
    "TERMINAL_STATUSES",
]


class NodeKind(StrEnum):
    """Kind of a workflow node.

    Attributes:
        TRIGGER: Entry point; decides which events start a run.
        CONDITION: Boolean branch with ``true`` and ``false`` edges.
        ACTION: Side effect performed through the action dispatcher.
        DELAY: Suspends the run until a point in time.
        AI_RESPONSE: Text generation through the AI provider.
    """

    TRIGGER = "trigger"
    CONDITION = "condition"
    ACTION = "action"
    DELAY = "delay"
    AI_RESPONSE = "ai_response"


class EventType(StrEnum):
    """Business events that can start a workflow run."""

    MESSAGE_RECEIVED = "message_received"
    CONTACT_CREATED = "contact_created"
    SCHEDULE_TICK = "schedule_tick"
    WEBHOOK_RECEIVED = "webhook_received"
    MANUAL = "manual"


class ExecutionStatus(StrEnum):
    """Status of a workflow execution.

    Attributes:
        RUNNING: The run is being stepped.
        WAITING: The run is suspended until ``resume_at``.
        COMPLETED: The run reached a terminal node.
        FAILED: The run stopped on an error.
        TIMED_OUT: The run outlived its deadline.
        CANCELLED: The run was cancelled by request.
    """

    RUNNING = "running"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible from this status."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.TIMED_OUT,
        ExecutionStatus.CANCELLED,
    }
)


class StepStatus(StrEnum):
    """Outcome of a single node step, as recorded in the step log."""

    SUCCEEDED = auto()
    FAILED = auto()
    SKIPPED = auto()
    RETRYING = auto()
    WAITING = auto()


class FailurePolicy(StrEnum):
    """What an action or AI node does when its side effect fails."""

    ABORT_RUN = "abort_run"
    SKIP_NODE = "skip_node"
    RETRY_THEN_ABORT = "retry_then_abort"


class ConditionOperator(StrEnum):
    """Operators available to condition nodes and trigger sub-conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    TAG_HAS = "tag_has"
    FIELD_IS_EMPTY = "field_is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class MatchMode(StrEnum):
    """How a list of condition rules is combined."""

    ALL = "all"
    ANY = "any"


class EdgeLabel(StrEnum):
    """Labels carried by condition branches."""

    TRUE = "true"
    FALSE = "false"


class DelayUnit(StrEnum):
    """Units accepted by delay nodes."""

    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"


class ActionType(StrEnum):
    """Side effects an action node can request."""

    SEND_MESSAGE = "send_message"
    ASSIGN_AGENT = "assign_agent"
    UPDATE_CONTACT_FIELD = "update_contact_field"
    ADD_TAGS = "add_tags"
    REMOVE_TAGS = "remove_tags"
    CALL_WEBHOOK = "call_webhook"


class AITask(StrEnum):
    """Tasks an ``ai_response`` node can ask the AI provider for."""

    GENERATE_RESPONSE = "generate_response"
    CATEGORIZE = "categorize"
    SENTIMENT = "sentiment"


# Type aliases for workflow data
Context: TypeAlias = dict[str, Any]
"""Type alias for a plain context snapshot."""
