"""Repository implementations for automation persistence.

This module provides async repositories for the automation models using
advanced-alchemy's repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from advanced_alchemy.filters import LimitOffset, OrderBy
from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, func, or_, select, update

from litestar_automations.core.types import TERMINAL_STATUSES, ExecutionStatus
from litestar_automations.db.models import (
    ExecutionLeaseModel,
    ExecutionModel,
    ExecutionStepModel,
    IdempotencyRecordModel,
    WorkflowDefinitionModel,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

__all__ = [
    "ExecutionLeaseRepository",
    "ExecutionRepository",
    "ExecutionStepRepository",
    "IdempotencyRecordRepository",
    "WorkflowDefinitionRepository",
]


class WorkflowDefinitionRepository(SQLAlchemyAsyncRepository[WorkflowDefinitionModel]):
    """Repository for versioned workflow definitions."""

    model_type = WorkflowDefinitionModel

    async def get_version(self, workflow_id: str, version: int | None = None) -> WorkflowDefinitionModel | None:
        """Get a definition version, the latest one when ``version`` is None.

        Args:
            workflow_id: The workflow id.
            version: Optional specific version.

        Returns:
            The definition or None if not found.
        """
        conditions = [WorkflowDefinitionModel.workflow_id == workflow_id]
        if version is not None:
            conditions.append(WorkflowDefinitionModel.version == version)

        stmt = (
            select(WorkflowDefinitionModel)
            .where(and_(*conditions))
            .order_by(WorkflowDefinitionModel.version.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_latest_version_number(self, workflow_id: str) -> int:
        """Return the highest stored version of a workflow, 0 if none."""
        stmt = select(func.max(WorkflowDefinitionModel.version)).where(
            WorkflowDefinitionModel.workflow_id == workflow_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() or 0

    async def list_latest_enabled(self, organization_id: str) -> Sequence[WorkflowDefinitionModel]:
        """List the latest version of each workflow of an organization, when it is enabled.

        Args:
            organization_id: The organization.

        Returns:
            Enabled latest versions, ordered by workflow id.
        """
        latest = (
            select(
                WorkflowDefinitionModel.workflow_id,
                func.max(WorkflowDefinitionModel.version).label("version"),
            )
            .where(WorkflowDefinitionModel.organization_id == organization_id)
            .group_by(WorkflowDefinitionModel.workflow_id)
            .subquery()
        )
        stmt = (
            select(WorkflowDefinitionModel)
            .join(
                latest,
                and_(
                    WorkflowDefinitionModel.workflow_id == latest.c.workflow_id,
                    WorkflowDefinitionModel.version == latest.c.version,
                ),
            )
            .where(WorkflowDefinitionModel.enabled == True)  # noqa: E712
            .order_by(WorkflowDefinitionModel.workflow_id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class ExecutionRepository(SQLAlchemyAsyncRepository[ExecutionModel]):
    """Repository for execution checkpoints."""

    model_type = ExecutionModel

    async def find_waiting_due(self, now: datetime, limit: int | None = None) -> Sequence[UUID]:
        """Find waiting executions whose ``resume_at`` has elapsed, oldest first."""
        stmt = (
            select(ExecutionModel.id)
            .where(
                and_(
                    ExecutionModel.status == ExecutionStatus.WAITING,
                    ExecutionModel.resume_at.is_not(None),
                    ExecutionModel.resume_at <= now,
                )
            )
            .order_by(ExecutionModel.resume_at)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_running(self) -> Sequence[UUID]:
        stmt = select(ExecutionModel.id).where(ExecutionModel.status == ExecutionStatus.RUNNING)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_for_contact(self, workflow_id: str, contact_id: str, *, active_only: bool = False) -> int:
        """Count executions of a workflow for a contact.

        Args:
            workflow_id: The workflow.
            contact_id: The contact.
            active_only: If True, count only non-terminal executions.
        """
        conditions = [ExecutionModel.workflow_id == workflow_id, ExecutionModel.contact_id == contact_id]
        if active_only:
            conditions.append(ExecutionModel.status.not_in(list(TERMINAL_STATUSES)))
        stmt = select(func.count()).select_from(ExecutionModel).where(and_(*conditions))
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def find_by_organization(
        self,
        organization_id: str,
        status: ExecutionStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[ExecutionModel], int]:
        """Find executions of an organization for the execution history view.

        Args:
            organization_id: The organization.
            status: Optional status filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (executions, total_count).
        """
        filters = [ExecutionModel.organization_id == organization_id]
        if status:
            filters.append(ExecutionModel.status == status)

        return await self.list_and_count(
            *filters,
            LimitOffset(limit=limit, offset=offset),
            OrderBy(field_name="started_at", sort_order="desc"),
        )

    async def mark_cancel_requested(self, execution_id: UUID) -> bool:
        """Set the cancellation flag. Returns False if the execution does not exist."""
        stmt = update(ExecutionModel).where(ExecutionModel.id == execution_id).values(cancel_requested=True)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)


class ExecutionStepRepository(SQLAlchemyAsyncRepository[ExecutionStepModel]):
    """Repository for execution step logs."""

    model_type = ExecutionStepModel

    async def find_by_execution(self, execution_id: UUID) -> Sequence[ExecutionStepModel]:
        stmt = (
            select(ExecutionStepModel)
            .where(ExecutionStepModel.execution_id == execution_id)
            .order_by(ExecutionStepModel.sequence)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_by_execution(self, execution_id: UUID) -> int:
        stmt = select(func.count()).select_from(ExecutionStepModel).where(
            ExecutionStepModel.execution_id == execution_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()


class ExecutionLeaseRepository(SQLAlchemyAsyncRepository[ExecutionLeaseModel]):
    """Repository for execution leases."""

    model_type = ExecutionLeaseModel

    async def take_over(self, execution_id: UUID, owner: str, now: datetime, expires_at: datetime) -> bool:
        """Renew a lease held by ``owner`` or take over a lapsed one.

        Returns:
            True if a lease row was updated.
        """
        stmt = (
            update(ExecutionLeaseModel)
            .where(
                and_(
                    ExecutionLeaseModel.execution_id == execution_id,
                    or_(ExecutionLeaseModel.owner == owner, ExecutionLeaseModel.expires_at <= now),
                )
            )
            .values(owner=owner, expires_at=expires_at)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def get_for_execution(self, execution_id: UUID) -> ExecutionLeaseModel | None:
        stmt = select(ExecutionLeaseModel).where(ExecutionLeaseModel.execution_id == execution_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class IdempotencyRecordRepository(SQLAlchemyAsyncRepository[IdempotencyRecordModel]):
    """Repository for idempotency records."""

    model_type = IdempotencyRecordModel

    async def get_by_key(self, key: str) -> IdempotencyRecordModel | None:
        stmt = select(IdempotencyRecordModel).where(IdempotencyRecordModel.key == key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
