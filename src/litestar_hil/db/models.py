"""SQLAlchemy models for the execution log.

This module defines the tables that make up the engine's single source of truth:
- WorkflowInstanceModel: Workflow instances (aggregate status is never stored)
- TaskExecutionModel: One row per task blueprint of an activated workflow
- InterruptModel: Human-in-the-loop review items
- NotificationModel: Operator notifications with read tracking
- AuditEventModel: Append-only log of every state change
- ResumeSignalModel: Outbox of resume webhooks for the orchestrator
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Enum, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, event, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from litestar_hil.core.types import (
    ActorType,
    AuditAction,
    ExecutorKind,
    InterruptOutcome,
    InterruptStatus,
    InterruptType,
    NotificationType,
    Priority,
    SignalStatus,
    SLAStatus,
    TaskStatus,
)

__all__ = [
    "AuditEventModel",
    "InterruptModel",
    "NotificationModel",
    "ResumeSignalModel",
    "TaskExecutionModel",
    "WorkflowInstanceModel",
]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


def _enum(enum_class: type[PyEnum]) -> Enum:
    """String-backed enum column storing member values."""
    return Enum(
        enum_class,
        native_enum=False,
        length=50,
        values_callable=lambda members: [member.value for member in members],
    )


class WorkflowInstanceModel(UUIDAuditBase):
    """A workflow instance whose tasks are tracked by the engine.

    The aggregate status is derived from the task rows on every read.

    Attributes:
        workflow_type: Workflow type used to pick the template.
        title: Display title, e.g. the property address.
        due_date: Business due date of the whole workflow.
        assigned_operator: Operator notified about this workflow.
        template_version: Template version the tasks were created from.
        activated_at: When the tasks were created.
        metadata_: Free-form metadata supplied by the caller.
        version: Optimistic concurrency counter, shared by all tasks of the workflow.
    """

    __tablename__ = "workflows"
    __table_args__ = (
        Index("ix_workflows_workflow_type", "workflow_type"),
        Index("ix_workflows_assigned_operator", "assigned_operator"),
    )

    workflow_type: Mapped[str] = mapped_column(String(100))
    title: Mapped[str] = mapped_column(String(500), default="")
    due_date: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    assigned_operator: Mapped[str | None] = mapped_column(String(255), nullable=True)
    template_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # bumped explicitly by every task transition, see TaskStateEngine
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    @property
    def is_activated(self) -> bool:
        return self.activated_at is not None


class TaskExecutionModel(UUIDAuditBase):
    """Execution record of one task of a workflow.

    Blueprint data is copied onto the row at activation so transitions never
    need the template again. Rows are never deleted.

    Attributes:
        workflow_id: Owning workflow.
        task_type: Blueprint task type, unique within the workflow.
        title: Display title.
        executor_kind: Whether an agent or a human performs the task.
        sequence_order: Order within the workflow.
        status: Current execution status.
        depends_on: Task types that must complete before this task starts.
        sla_hours: Hours allotted once the task starts.
        business_hours_only: Whether the SLA clock skips non-business hours.
        alert_window_hours: Length of the AT_RISK window before the due date.
        sla_due_at: Deadline, set once when the task first starts.
        sla_status: Last persisted SLA classification.
        retry_count: Retries consumed so far.
        max_retries: Retries allowed.
        retryable: False once the task was failed by a cancellation.
        started_at: When the task first started.
        completed_at: When the task completed or failed.
        error_message: Failure reason.
        output_data: Result reported by the executor.
        version: Optimistic concurrency counter.
    """

    __tablename__ = "task_executions"
    __table_args__ = (
        UniqueConstraint("workflow_id", "task_type", name="uq_task_executions_workflow_task_type"),
        Index("ix_task_executions_workflow_id", "workflow_id"),
        Index("ix_task_executions_status", "status"),
        Index("ix_task_executions_sla_due_at", "sla_due_at"),
    )

    workflow_id: Mapped[UUID] = mapped_column(ForeignKey("workflows.id", ondelete="CASCADE"))
    task_type: Mapped[str] = mapped_column(String(100))
    title: Mapped[str] = mapped_column(String(500))
    executor_kind: Mapped[ExecutorKind] = mapped_column(_enum(ExecutorKind))
    sequence_order: Mapped[int] = mapped_column(Integer)
    status: Mapped[TaskStatus] = mapped_column(_enum(TaskStatus), default=TaskStatus.NOT_STARTED)
    depends_on: Mapped[list[str]] = mapped_column(JSONType, default=list)
    sla_hours: Mapped[float] = mapped_column(Float)
    business_hours_only: Mapped[bool] = mapped_column(default=False)
    alert_window_hours: Mapped[float] = mapped_column(Float)
    sla_due_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    sla_status: Mapped[SLAStatus] = mapped_column(_enum(SLAStatus), default=SLAStatus.ON_TIME)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer)
    retryable: Mapped[bool] = mapped_column(default=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    output_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class InterruptModel(UUIDAuditBase):
    """An item that needs a human operator before its task can proceed.

    At most one OPEN interrupt exists per task, enforced by a partial unique
    index.

    Attributes:
        task_id: The interrupted task.
        workflow_id: Denormalized owning workflow.
        reason: Why human help is needed, e.g. ``low_confidence``.
        interrupt_type: Optional classification.
        priority: Urgency for the operator queue.
        status: OPEN until resolved.
        resolved_at: When it was resolved.
        resolved_by: Who resolved it.
        resolution_outcome: How it was resolved.
        resolution_notes: Operator notes.
    """

    __tablename__ = "interrupts"
    __table_args__ = (
        Index("ix_interrupts_task_id", "task_id"),
        Index("ix_interrupts_workflow_id", "workflow_id"),
        Index("ix_interrupts_status_priority", "status", "priority"),
        Index(
            "uq_interrupts_open_task",
            "task_id",
            unique=True,
            sqlite_where=text("status = 'OPEN'"),
            postgresql_where=text("status = 'OPEN'"),
        ),
    )

    task_id: Mapped[UUID] = mapped_column(ForeignKey("task_executions.id", ondelete="CASCADE"))
    workflow_id: Mapped[UUID] = mapped_column(ForeignKey("workflows.id", ondelete="CASCADE"))
    reason: Mapped[str] = mapped_column(Text)
    interrupt_type: Mapped[InterruptType | None] = mapped_column(_enum(InterruptType), nullable=True)
    priority: Mapped[Priority] = mapped_column(_enum(Priority), default=Priority.HIGH)
    status: Mapped[InterruptStatus] = mapped_column(_enum(InterruptStatus), default=InterruptStatus.OPEN)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resolution_outcome: Mapped[InterruptOutcome | None] = mapped_column(_enum(InterruptOutcome), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class NotificationModel(UUIDAuditBase):
    """A notification addressed to one operator.

    Attributes:
        user_id: Recipient.
        type: Notification type.
        priority: Notification priority.
        title: Short title.
        message: Body text.
        action_ref: ``"<resource_type>:<uuid>"`` reference to act on.
        metadata_: Whitelisted metadata for the notification type.
        read: Whether the recipient has read it.
        read_at: When it was read.
    """

    __tablename__ = "hil_notifications"
    __table_args__ = (
        Index("ix_hil_notifications_user_read", "user_id", "read"),
        Index("ix_hil_notifications_created_at", "created_at"),
    )

    user_id: Mapped[str] = mapped_column(String(255))
    type: Mapped[NotificationType] = mapped_column(_enum(NotificationType))
    priority: Mapped[Priority] = mapped_column(_enum(Priority), default=Priority.NORMAL)
    title: Mapped[str] = mapped_column(String(500))
    message: Mapped[str] = mapped_column(Text)
    action_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    read: Mapped[bool] = mapped_column(default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)


class AuditEventModel(UUIDAuditBase):
    """Append-only record of a state change.

    Attributes:
        actor_type: Whether a human, an agent or the system acted.
        actor_id: Identifier of the actor.
        actor_name: Display name of the actor.
        event_type: Dotted event name, e.g. ``task.transitioned``.
        action: Audit verb.
        resource_type: Kind of the changed resource.
        resource_id: Identifier of the changed resource.
        workflow_id: Workflow the change belongs to, if any.
        event_data: Whitelisted metadata for the event type.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_resource", "resource_type", "resource_id"),
        Index("ix_audit_events_workflow_id", "workflow_id"),
        Index("ix_audit_events_created_at", "created_at"),
    )

    actor_type: Mapped[ActorType] = mapped_column(_enum(ActorType))
    actor_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_type: Mapped[str] = mapped_column(String(100))
    action: Mapped[AuditAction] = mapped_column(_enum(AuditAction))
    resource_type: Mapped[str] = mapped_column(String(50))
    resource_id: Mapped[UUID]
    workflow_id: Mapped[UUID | None] = mapped_column(nullable=True)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)


class ResumeSignalModel(UUIDAuditBase):
    """Outbound resume webhook waiting for delivery.

    Written in the same transaction as the interrupt resolution that causes
    it, delivered at least once afterwards.

    Attributes:
        task_id: The resumed task.
        interrupt_id: The resolved interrupt.
        workflow_id: Owning workflow.
        outcome: How the interrupt was resolved.
        payload: Body posted to the orchestrator.
        status: Delivery state.
        attempts: Delivery attempts made.
        next_attempt_at: Earliest time of the next attempt.
        last_error: Error of the last failed attempt.
        delivered_at: When the orchestrator acknowledged the signal.
    """

    __tablename__ = "resume_signals"
    __table_args__ = (
        UniqueConstraint("task_id", "interrupt_id", name="uq_resume_signals_task_interrupt"),
        Index("ix_resume_signals_status_next_attempt", "status", "next_attempt_at"),
    )

    task_id: Mapped[UUID] = mapped_column(ForeignKey("task_executions.id", ondelete="CASCADE"))
    interrupt_id: Mapped[UUID] = mapped_column(ForeignKey("interrupts.id", ondelete="CASCADE"))
    workflow_id: Mapped[UUID] = mapped_column(ForeignKey("workflows.id", ondelete="CASCADE"))
    outcome: Mapped[InterruptOutcome] = mapped_column(_enum(InterruptOutcome))
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    status: Mapped[SignalStatus] = mapped_column(_enum(SignalStatus), default=SignalStatus.PENDING)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)

    @property
    def idempotency_key(self) -> str:
        """Key the orchestrator deduplicates repeated deliveries by."""
        return f"{self.task_id}:{self.interrupt_id}"


@event.listens_for(AuditEventModel, "before_update")
def _reject_audit_update(_mapper: Any, _connection: Any, target: AuditEventModel) -> None:
    msg = f"Audit event '{target.id}' is immutable"
    raise RuntimeError(msg)


@event.listens_for(AuditEventModel, "before_delete")
def _reject_audit_delete(_mapper: Any, _connection: Any, target: AuditEventModel) -> None:
    msg = f"Audit event '{target.id}' cannot be deleted"
    raise RuntimeError(msg)
