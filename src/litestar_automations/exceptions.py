"""Exception hierarchy for litestar-automations."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

__all__ = (
    "ActionFailedError",
    "AutomationsError",
    "ContextConflictError",
    "CycleDetectedError",
    "DefinitionError",
    "ErrorKind",
    "ExecutionNotFoundError",
    "ExecutionTimeoutError",
    "InvalidTransitionError",
    "LeaseConflictError",
    "NodeConfigError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
)


class ErrorKind(StrEnum):
    """Error taxonomy recorded on failed executions."""

    VALIDATION = "ValidationError"
    CYCLE_DETECTED = "CycleDetectedError"
    TIMEOUT = "TimeoutError"
    ACTION_FAILED = "ActionFailedError"
    CONFIG = "ConfigError"
    LEASE_CONFLICT = "LeaseConflictError"
    INTERNAL = "InternalError"


class AutomationsError(Exception):
    """Base exception for all litestar-automations errors.

    Every error carries an :class:`ErrorKind` so that a failure can be recorded
    on an execution without keeping the exception object around.
    """

    kind: ErrorKind = ErrorKind.INTERNAL


class DefinitionError(AutomationsError):
    """A single structural problem found while validating a workflow definition.

    Attributes:
        message: Description of the problem.
        node_id: The offending node, when the problem is tied to one.
    """

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, node_id: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Description of the problem.
            node_id: The offending node, if any.
        """
        self.message = message
        self.node_id = node_id
        super().__init__(message)


class NodeConfigError(DefinitionError):
    """Raised when a node configuration does not match its kind-specific schema."""

    kind = ErrorKind.CONFIG


class CycleDetectedError(AutomationsError):
    """Raised when a cycle is reachable from the trigger node.

    This is reported by validation at save time and used again at run time as a
    backstop when an execution's path outgrows the definition.

    Attributes:
        node_id: A node that lies on the cycle.
    """

    kind = ErrorKind.CYCLE_DETECTED

    def __init__(self, node_id: str, message: str | None = None) -> None:
        """Initialize the error.

        Args:
            node_id: A node that lies on the cycle.
            message: Optional override for the default message.
        """
        self.node_id = node_id
        self.message = message or f"Cycle detected at node '{node_id}'"
        super().__init__(self.message)


class WorkflowValidationError(AutomationsError):
    """Raised when a workflow definition fails validation on save.

    Attributes:
        errors: The individual problems returned by validation.
    """

    kind = ErrorKind.VALIDATION

    def __init__(self, errors: list[AutomationsError]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation errors.
        """
        self.errors = errors
        super().__init__(f"Workflow validation failed: {'; '.join(str(e) for e in errors)}")


class ExecutionTimeoutError(AutomationsError):
    """Raised when a run outlives its deadline or an adapter call its timeout."""

    kind = ErrorKind.TIMEOUT


_ACTION_PHRASES = {
    "send_message": "message delivery",
    "assign_agent": "agent assignment",
    "update_contact_field": "contact update",
    "add_tags": "tag update",
    "remove_tags": "tag update",
    "call_webhook": "webhook call",
    "generate_ai_response": "AI response generation",
}


class ActionFailedError(AutomationsError):
    """Raised when an external side effect fails.

    The message is normalized and never contains provider-specific error text;
    the underlying exception is kept in ``cause`` for logging only.

    Attributes:
        action: Name of the dispatcher action that failed.
        attempts: Number of attempts made so far.
        cause: The underlying exception, if any.
    """

    kind = ErrorKind.ACTION_FAILED

    def __init__(self, action: str, attempts: int = 1, cause: BaseException | None = None) -> None:
        """Initialize the error.

        Args:
            action: Name of the dispatcher action that failed.
            attempts: Number of attempts made so far.
            cause: The underlying exception, if any.
        """
        self.action = action
        self.attempts = attempts
        self.cause = cause
        phrase = _ACTION_PHRASES.get(action, action.replace("_", " "))
        noun = "attempt" if attempts == 1 else "attempts"
        super().__init__(f"{phrase} failed after {attempts} {noun}")

    def with_attempts(self, attempts: int) -> ActionFailedError:
        """Return a copy of this error reporting a different attempt count."""
        return ActionFailedError(self.action, attempts=attempts, cause=self.cause)


class LeaseConflictError(AutomationsError):
    """Raised when another worker already holds the lease for an execution.

    Attributes:
        execution_id: The execution that could not be leased.
    """

    kind = ErrorKind.LEASE_CONFLICT

    def __init__(self, execution_id: str | UUID) -> None:
        """Initialize the error.

        Args:
            execution_id: The execution that could not be leased.
        """
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' is already being driven by another worker")


class ExecutionNotFoundError(AutomationsError):
    """Raised when an execution is not found in the execution store.

    Attributes:
        execution_id: The ID of the execution that was not found.
    """

    def __init__(self, execution_id: str | UUID) -> None:
        """Initialize the exception with execution details.

        Args:
            execution_id: The ID of the execution that was not found.
        """
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' not found")


class WorkflowNotFoundError(AutomationsError):
    """Raised when a workflow definition is not found.

    Attributes:
        workflow_id: The ID of the workflow that was not found.
        version: The specific version requested, if any.
    """

    def __init__(self, workflow_id: str | UUID, version: int | None = None) -> None:
        """Initialize the exception with workflow details.

        Args:
            workflow_id: The ID of the workflow that was not found.
            version: The specific version requested, if any.
        """
        self.workflow_id = workflow_id
        self.version = version
        msg = f"Workflow '{workflow_id}'"
        if version is not None:
            msg += f" version {version}"
        msg += " not found"
        super().__init__(msg)


class InvalidTransitionError(AutomationsError):
    """Raised when an execution is asked to move out of a state that does not allow it.

    Attributes:
        execution_id: The execution concerned.
        status: Its current status.
    """

    def __init__(self, execution_id: str | UUID, status: str, reason: str | None = None) -> None:
        """Initialize the exception with transition details.

        Args:
            execution_id: The execution concerned.
            status: Its current status.
            reason: Additional context about why the transition is invalid.
        """
        self.execution_id = execution_id
        self.status = status
        msg = f"Execution '{execution_id}' cannot advance from status '{status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ContextConflictError(AutomationsError, TypeError):
    """Raised when a context key would be overwritten with an incompatible type."""

    def __init__(self, key: str, existing: type, new: type) -> None:
        """Initialize the error.

        Args:
            key: The namespaced context key.
            existing: Type of the value already stored.
            new: Type of the rejected value.
        """
        self.key = key
        super().__init__(f"Context key '{key}' holds {existing.__name__}, refusing {new.__name__}")
