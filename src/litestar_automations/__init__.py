"""Litestar Automations - Workflow automation engine for Litestar.

This package executes tenant-authored automation workflows: directed graphs of
trigger, condition, action, delay and AI-response nodes, driven to completion in
response to business events.

Key Features:
    - Graph validation with cycle detection and per-kind config schemas
    - Trigger matching with keyword and contact conditions
    - Durable, resumable executions checkpointed after every step
    - Delays and retry backoff without holding workers
    - Idempotent side effects keyed by execution and node
    - In-memory and SQLAlchemy stores

Example:
    >>> from litestar_automations import Scheduler, TriggerEvent
    >>> from litestar_automations.engine import DefinitionRegistry, InMemoryExecutionStore
    >>>
    >>> scheduler = Scheduler(DefinitionRegistry(), InMemoryExecutionStore(), dispatcher)
    >>> await scheduler.submit(TriggerEvent(type="message_received", organization_id="org_1"))
"""

from __future__ import annotations

from litestar_automations.__metadata__ import __project__, __version__
from litestar_automations.actions.dispatcher import ActionDispatcher
from litestar_automations.config import EngineConfig
from litestar_automations.core.definition import Edge, Node, WorkflowDefinition, WorkflowSettings
from litestar_automations.core.models import Execution, ExecutionError, TriggerEvent
from litestar_automations.core.types import EventType, ExecutionStatus, NodeKind
from litestar_automations.engine.scheduler import Scheduler
from litestar_automations.exceptions import (
    ActionFailedError,
    AutomationsError,
    ContextConflictError,
    CycleDetectedError,
    DefinitionError,
    ErrorKind,
    ExecutionNotFoundError,
    ExecutionTimeoutError,
    InvalidTransitionError,
    LeaseConflictError,
    NodeConfigError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

__all__ = (
    "ActionDispatcher",
    "ActionFailedError",
    "AutomationsError",
    "ContextConflictError",
    "CycleDetectedError",
    "DefinitionError",
    "Edge",
    "EngineConfig",
    "ErrorKind",
    "EventType",
    "Execution",
    "ExecutionError",
    "ExecutionNotFoundError",
    "ExecutionStatus",
    "ExecutionTimeoutError",
    "InvalidTransitionError",
    "LeaseConflictError",
    "Node",
    "NodeConfigError",
    "NodeKind",
    "Scheduler",
    "TriggerEvent",
    "WorkflowDefinition",
    "WorkflowNotFoundError",
    "WorkflowSettings",
    "WorkflowValidationError",
    "__project__",
    "__version__",
)
