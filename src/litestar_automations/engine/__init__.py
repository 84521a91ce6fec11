"""Workflow execution engine.

This module provides graph validation, trigger matching, the step interpreter, the
scheduler and the in-memory collaborators used for development and testing.
"""

from __future__ import annotations

from litestar_automations.engine.conditions import evaluate_rule, evaluate_rules
from litestar_automations.engine.graph import DEFAULT_MAX_NODES, WorkflowGraph, validate
from litestar_automations.engine.interpreter import StepInterpreter
from litestar_automations.engine.lease import InMemoryLeaseManager, generate_worker_id
from litestar_automations.engine.matcher import TriggerMatcher, trigger_matches
from litestar_automations.engine.poller import ResumePoller
from litestar_automations.engine.registry import DefinitionRegistry
from litestar_automations.engine.retry import RetryPolicy
from litestar_automations.engine.scheduler import Scheduler
from litestar_automations.engine.store import InMemoryExecutionStore

__all__ = [
    "DEFAULT_MAX_NODES",
    "DefinitionRegistry",
    "InMemoryExecutionStore",
    "InMemoryLeaseManager",
    "ResumePoller",
    "RetryPolicy",
    "Scheduler",
    "StepInterpreter",
    "TriggerMatcher",
    "WorkflowGraph",
    "evaluate_rule",
    "evaluate_rules",
    "generate_worker_id",
    "trigger_matches",
    "validate",
]
