"""Repository implementations for the execution log.

This module provides async repositories for the engine's tables using
advanced-alchemy's repository pattern. Repositories never commit; the unit of
work that owns the session does.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from advanced_alchemy.filters import LimitOffset, OrderBy
from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, func, select, update

from litestar_hil.core.types import InterruptStatus, NotificationType, Priority, SignalStatus, TaskStatus
from litestar_hil.db.models import (
    AuditEventModel,
    InterruptModel,
    NotificationModel,
    ResumeSignalModel,
    TaskExecutionModel,
    WorkflowInstanceModel,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from litestar_hil.core.types import SLAStatus

__all__ = [
    "AuditEventRepository",
    "InterruptRepository",
    "NotificationRepository",
    "ResumeSignalRepository",
    "TaskExecutionRepository",
    "WorkflowInstanceRepository",
]

_OPEN_TASK_STATUSES = (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS, TaskStatus.INTERRUPT)


class WorkflowInstanceRepository(SQLAlchemyAsyncRepository[WorkflowInstanceModel]):
    """Repository for workflow instances."""

    model_type = WorkflowInstanceModel


class TaskExecutionRepository(SQLAlchemyAsyncRepository[TaskExecutionModel]):
    """Repository for task execution records.

    Provides the workflow-scoped reads the state engine needs and the
    batch reads and compare-and-set writes of the SLA sweep.
    """

    model_type = TaskExecutionModel

    async def find_by_workflow(self, workflow_id: UUID) -> Sequence[TaskExecutionModel]:
        """Find all tasks of a workflow.

        Args:
            workflow_id: The workflow ID.

        Returns:
            Tasks ordered by sequence order.
        """
        stmt = (
            select(TaskExecutionModel)
            .where(TaskExecutionModel.workflow_id == workflow_id)
            .order_by(TaskExecutionModel.sequence_order)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_by_workflow(self, workflow_id: UUID) -> int:
        """Count the tasks of a workflow."""
        stmt = select(func.count()).select_from(TaskExecutionModel).where(TaskExecutionModel.workflow_id == workflow_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def find_open_with_due_date(
        self,
        *,
        after_id: UUID | None = None,
        limit: int = 500,
    ) -> Sequence[TaskExecutionModel]:
        """Read one batch of open tasks that have an SLA due date.

        Batches are keyed on the primary key so a sweep can page through
        the table without holding locks.

        Args:
            after_id: Return tasks with an ID greater than this one.
            limit: Maximum number of tasks to return.

        Returns:
            Open tasks ordered by ID.
        """
        conditions = [
            TaskExecutionModel.status.in_(_OPEN_TASK_STATUSES),
            TaskExecutionModel.sla_due_at.isnot(None),
        ]
        if after_id is not None:
            conditions.append(TaskExecutionModel.id > after_id)

        stmt = select(TaskExecutionModel).where(and_(*conditions)).order_by(TaskExecutionModel.id).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def compare_and_set_sla_status(
        self,
        task_id: UUID,
        expected: SLAStatus,
        new: SLAStatus,
    ) -> bool:
        """Escalate a task's SLA status if nobody else did it first.

        The old status is part of the WHERE clause, so of several concurrent
        sweepers exactly one observes a changed row. The optimistic version
        counter is deliberately left alone.

        Args:
            task_id: The task to update.
            expected: The status the caller observed.
            new: The status to store.

        Returns:
            True if this call changed the row.
        """
        stmt = (
            update(TaskExecutionModel)
            .where(
                TaskExecutionModel.id == task_id,
                TaskExecutionModel.sla_status == expected,
                TaskExecutionModel.status.in_(_OPEN_TASK_STATUSES),
            )
            .values(sla_status=new)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class InterruptRepository(SQLAlchemyAsyncRepository[InterruptModel]):
    """Repository for interrupts."""

    model_type = InterruptModel

    async def find_open_for_task(self, task_id: UUID) -> InterruptModel | None:
        """Find the open interrupt of a task, if any."""
        stmt = select(InterruptModel).where(
            InterruptModel.task_id == task_id,
            InterruptModel.status == InterruptStatus.OPEN,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_open_for_tasks(self, task_ids: Sequence[UUID]) -> Sequence[InterruptModel]:
        """Find the open interrupts of several tasks."""
        if not task_ids:
            return []
        stmt = select(InterruptModel).where(
            InterruptModel.task_id.in_(task_ids),
            InterruptModel.status == InterruptStatus.OPEN,
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_open(
        self,
        workflow_id: UUID | None = None,
        priority: Priority | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[InterruptModel], int]:
        """Find open interrupts with optional filters.

        Args:
            workflow_id: Optional workflow filter.
            priority: Optional priority filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (interrupts, total_count), oldest first.
        """
        conditions = [InterruptModel.status == InterruptStatus.OPEN]

        if workflow_id:
            conditions.append(InterruptModel.workflow_id == workflow_id)
        if priority:
            conditions.append(InterruptModel.priority == priority)

        return await self.list_and_count(
            *conditions,
            LimitOffset(limit=limit, offset=offset),
            OrderBy(field_name="created_at", sort_order="asc"),
        )


class NotificationRepository(SQLAlchemyAsyncRepository[NotificationModel]):
    """Repository for operator notifications."""

    model_type = NotificationModel

    async def find_for_user(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        notification_type: NotificationType | None = None,
        priority: Priority | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[NotificationModel], int]:
        """Find a user's notifications, newest first.

        Args:
            user_id: The recipient.
            unread_only: Only return unread notifications.
            notification_type: Optional type filter.
            priority: Optional priority filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (notifications, total_count).
        """
        conditions = [NotificationModel.user_id == user_id]

        if unread_only:
            conditions.append(NotificationModel.read == False)  # noqa: E712
        if notification_type:
            conditions.append(NotificationModel.type == notification_type)
        if priority:
            conditions.append(NotificationModel.priority == priority)

        return await self.list_and_count(
            *conditions,
            LimitOffset(limit=limit, offset=offset),
            OrderBy(field_name="created_at", sort_order="desc"),
        )

    async def count_unread(self, user_id: str) -> int:
        """Count a user's unread notifications."""
        return await self.count(NotificationModel.user_id == user_id, NotificationModel.read == False)  # noqa: E712

    async def find_unread_ids(self, user_id: str) -> list[UUID]:
        """List the IDs of a user's unread notifications."""
        stmt = select(NotificationModel.id).where(
            NotificationModel.user_id == user_id,
            NotificationModel.read == False,  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_read_bulk(self, notification_ids: Sequence[UUID], read_at: datetime) -> None:
        """Mark notifications read in one statement."""
        if not notification_ids:
            return
        stmt = (
            update(NotificationModel)
            .where(NotificationModel.id.in_(notification_ids))
            .values(read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)


class AuditEventRepository(SQLAlchemyAsyncRepository[AuditEventModel]):
    """Repository for audit events. Rows are only ever inserted."""

    model_type = AuditEventModel

    async def find_events(
        self,
        *,
        resource_type: str | None = None,
        resource_id: UUID | None = None,
        workflow_id: UUID | None = None,
        event_type: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[AuditEventModel], int]:
        """Find audit events, oldest first.

        Args:
            resource_type: Optional resource type filter.
            resource_id: Optional resource ID filter.
            workflow_id: Optional workflow filter.
            event_type: Optional event type filter.
            limit: Maximum number of results.
            offset: Number of results to skip.

        Returns:
            Tuple of (events, total_count).
        """
        conditions = []

        if resource_type:
            conditions.append(AuditEventModel.resource_type == resource_type)
        if resource_id:
            conditions.append(AuditEventModel.resource_id == resource_id)
        if workflow_id:
            conditions.append(AuditEventModel.workflow_id == workflow_id)
        if event_type:
            conditions.append(AuditEventModel.event_type == event_type)

        return await self.list_and_count(
            *conditions,
            LimitOffset(limit=limit, offset=offset),
            OrderBy(field_name="created_at", sort_order="asc"),
        )


class ResumeSignalRepository(SQLAlchemyAsyncRepository[ResumeSignalModel]):
    """Repository for the resume-signal outbox."""

    model_type = ResumeSignalModel

    async def find_due(self, now: datetime, limit: int = 100) -> Sequence[ResumeSignalModel]:
        """Find pending signals whose next attempt is due.

        Args:
            now: The current time.
            limit: Maximum number of signals to return.

        Returns:
            Due signals, oldest first.
        """
        stmt = (
            select(ResumeSignalModel)
            .where(
                ResumeSignalModel.status == SignalStatus.PENDING,
                ResumeSignalModel.next_attempt_at <= now,
            )
            .order_by(ResumeSignalModel.next_attempt_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_for_interrupt(self, task_id: UUID, interrupt_id: UUID) -> ResumeSignalModel | None:
        """Find the signal enqueued for an interrupt resolution."""
        stmt = select(ResumeSignalModel).where(
            ResumeSignalModel.task_id == task_id,
            ResumeSignalModel.interrupt_id == interrupt_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
