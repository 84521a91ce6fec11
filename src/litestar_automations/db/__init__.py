"""Database persistence layer for litestar-automations.

This module provides SQLAlchemy models, repositories and stores for persisting
workflow definitions, execution checkpoints, leases and idempotency records.

Requires the [db] extra:
    pip install litestar-automations[db]
"""

from __future__ import annotations

from litestar_automations.db.models import (
    ExecutionLeaseModel,
    ExecutionModel,
    ExecutionStepModel,
    IdempotencyRecordModel,
    WorkflowDefinitionModel,
)
from litestar_automations.db.repositories import (
    ExecutionLeaseRepository,
    ExecutionRepository,
    ExecutionStepRepository,
    IdempotencyRecordRepository,
    WorkflowDefinitionRepository,
)
from litestar_automations.db.stores import (
    SQLAlchemyDefinitionStore,
    SQLAlchemyExecutionStore,
    SQLAlchemyIdempotencyStore,
    SQLAlchemyLeaseManager,
)

__all__ = [
    "ExecutionLeaseModel",
    "ExecutionLeaseRepository",
    "ExecutionModel",
    "ExecutionRepository",
    "ExecutionStepModel",
    "ExecutionStepRepository",
    "IdempotencyRecordModel",
    "IdempotencyRecordRepository",
    "SQLAlchemyDefinitionStore",
    "SQLAlchemyExecutionStore",
    "SQLAlchemyIdempotencyStore",
    "SQLAlchemyLeaseManager",
    "WorkflowDefinitionModel",
    "WorkflowDefinitionRepository",
]
