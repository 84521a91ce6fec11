"""Core domain module for litestar-automations.

This module exports the fundamental building blocks of workflow automations:
types, node configurations, definitions, the execution context, runtime models
and collaborator protocols.
"""

from __future__ import annotations

from litestar_automations.core.configs import (
    ActionConfig,
    AddTagsConfig,
    AIResponseConfig,
    AssignAgentConfig,
    CallWebhookConfig,
    ConditionConfig,
    ConditionRule,
    DelayConfig,
    NodeConfig,
    RemoveTagsConfig,
    SendMessageConfig,
    TriggerConfig,
    UpdateContactFieldConfig,
    parse_node_config,
)
from litestar_automations.core.context import ExecutionContext
from litestar_automations.core.definition import Edge, Node, WorkflowDefinition, WorkflowSettings
from litestar_automations.core.models import Execution, ExecutionError, StepRecord, TriggerEvent
from litestar_automations.core.protocols import (
    DefinitionStore,
    EventBus,
    ExecutionStore,
    IdempotencyStore,
    LeaseManager,
)
from litestar_automations.core.types import (
    TERMINAL_STATUSES,
    ActionType,
    AITask,
    ConditionOperator,
    Context,
    DelayUnit,
    EdgeLabel,
    EventType,
    ExecutionStatus,
    FailurePolicy,
    MatchMode,
    NodeKind,
    StepStatus,
)

__all__ = [
    "TERMINAL_STATUSES",
    "AIResponseConfig",
    "AITask",
    "ActionConfig",
    "ActionType",
    "AddTagsConfig",
    "AssignAgentConfig",
    "CallWebhookConfig",
    "ConditionConfig",
    "ConditionOperator",
    "ConditionRule",
    "Context",
    "DefinitionStore",
    "DelayConfig",
    "DelayUnit",
    "Edge",
    "EdgeLabel",
    "EventBus",
    "EventType",
    "Execution",
    "ExecutionContext",
    "ExecutionError",
    "ExecutionStatus",
    "ExecutionStore",
    "FailurePolicy",
    "IdempotencyStore",
    "LeaseManager",
    "MatchMode",
    "Node",
    "NodeConfig",
    "NodeKind",
    "RemoveTagsConfig",
    "SendMessageConfig",
    "StepRecord",
    "StepStatus",
    "TriggerConfig",
    "TriggerEvent",
    "UpdateContactFieldConfig",
    "WorkflowDefinition",
    "WorkflowSettings",
    "parse_node_config",
]
