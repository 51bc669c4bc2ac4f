"""Data Transfer Objects for the HIL web API.

This module defines the request bodies accepted by the controllers and the
response payloads they return, together with the converters from the
persistence models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from litestar_hil.core.definition import TaskBlueprint, WorkflowTemplate
from litestar_hil.core.types import (
    Actor,
    ActorType,
    InterruptOutcome,
    InterruptType,
    TaskStatus,
)
from litestar_hil.db.models import (
    AuditEventModel,
    InterruptModel,
    NotificationModel,
    TaskExecutionModel,
)
from litestar_hil.engine.state_machine import WorkflowView

__all__ = [
    "ActivateWorkflowDTO",
    "ActorDTO",
    "AuditEventDTO",
    "BlueprintDTO",
    "CancelWorkflowDTO",
    "CreateWorkflowDTO",
    "InterruptDTO",
    "MarkReadDTO",
    "NotificationDTO",
    "PageDTO",
    "ReadAllResultDTO",
    "ResolveInterruptDTO",
    "RetryTaskDTO",
    "TaskDTO",
    "TemplateDTO",
    "TransitionTaskDTO",
    "UnreadCountDTO",
    "WorkflowDTO",
]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass
class ActorDTO:
    """Who is making a request.

    Attributes:
        type: ``human``, ``agent`` or ``system``.
        id: Identifier of the actor.
        name: Display name of the actor.
    """

    type: ActorType = ActorType.SYSTEM
    id: str | None = None
    name: str | None = None

    def to_actor(self) -> Actor:
        return Actor(type=self.type, id=self.id, name=self.name)


def _actor(dto: ActorDTO | None) -> Actor:
    return dto.to_actor() if dto is not None else Actor.system()


@dataclass
class CreateWorkflowDTO:
    """DTO for creating a workflow instance.

    Attributes:
        workflow_type: Workflow type; a template must be registered for it.
        title: Display title, e.g. the property address.
        due_date: Business due date of the whole workflow.
        assigned_operator: Operator notified about this workflow.
        metadata: Free-form metadata stored with the workflow.
        actor: Who creates the workflow.
    """

    workflow_type: str
    title: str = ""
    due_date: datetime | None = None
    assigned_operator: str | None = None
    metadata: dict[str, Any] | None = None
    actor: ActorDTO | None = None

    def get_actor(self) -> Actor:
        return _actor(self.actor)


@dataclass
class ActivateWorkflowDTO:
    """DTO for activating a workflow.

    Attributes:
        template_version: Template version to expand. Defaults to the latest.
        actor: Who activates the workflow.
    """

    template_version: str | None = None
    actor: ActorDTO | None = None

    def get_actor(self) -> Actor:
        return _actor(self.actor)


@dataclass
class CancelWorkflowDTO:
    """DTO for cancelling a workflow."""

    reason: str = "workflow_cancelled"
    actor: ActorDTO | None = None

    def get_actor(self) -> Actor:
        return _actor(self.actor)


@dataclass
class TransitionTaskDTO:
    """DTO for a task status change requested by the orchestrator.

    Attributes:
        status: The requested status.
        output_data: Result reported by the executor.
        error_message: Failure reason, for FAILED.
        reason: Why the task needs a human, for INTERRUPT.
        confidence: Executor confidence in a completion.
        interrupt_type: Optional classification of an interrupt.
        expected_version: Task version the caller last saw.
        actor: Who requests the change.
    """

    status: TaskStatus
    output_data: dict[str, Any] | None = None
    error_message: str | None = None
    reason: str | None = None
    confidence: float | None = None
    interrupt_type: InterruptType | None = None
    expected_version: int | None = None
    actor: ActorDTO | None = None

    def __post_init__(self) -> None:
        if self.confidence is not None and not 0 <= self.confidence <= 1:
            msg = "confidence must be between 0 and 1"
            raise ValueError(msg)

    def get_actor(self) -> Actor:
        return _actor(self.actor)


@dataclass
class RetryTaskDTO:
    """DTO for retrying a failed task."""

    expected_version: int | None = None
    actor: ActorDTO | None = None

    def get_actor(self) -> Actor:
        return _actor(self.actor)


@dataclass
class ResolveInterruptDTO:
    """DTO for an operator's interrupt resolution.

    Attributes:
        outcome: RESUME, COMPLETE, RETRY or DISMISS.
        actor: The resolving operator.
        notes: Operator notes.
        output_data: Result of a manual completion.
    """

    outcome: InterruptOutcome
    actor: ActorDTO
    notes: str | None = None
    output_data: dict[str, Any] | None = None


@dataclass
class MarkReadDTO:
    """DTO identifying the user marking notifications read."""

    user_id: str


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@dataclass
class PageDTO:
    """A page of results.

    Attributes:
        items: The results on this page.
        total: Number of results across all pages.
        limit: Page size.
        offset: Results skipped.
    """

    items: list[Any]
    total: int
    limit: int
    offset: int


@dataclass
class TaskDTO:
    """DTO for a task execution record."""

    id: UUID
    workflow_id: UUID
    task_type: str
    title: str
    executor_kind: str
    sequence_order: int
    status: str
    depends_on: list[str]
    sla_hours: float
    sla_due_at: datetime | None
    sla_status: str
    retry_count: int
    max_retries: int
    retryable: bool
    started_at: datetime | None
    completed_at: datetime | None
    error_message: str | None
    output_data: dict[str, Any] | None
    version: int

    @classmethod
    def from_model(cls, task: TaskExecutionModel) -> TaskDTO:
        return cls(
            id=task.id,
            workflow_id=task.workflow_id,
            task_type=task.task_type,
            title=task.title,
            executor_kind=task.executor_kind.value,
            sequence_order=task.sequence_order,
            status=task.status.value,
            depends_on=list(task.depends_on or []),
            sla_hours=task.sla_hours,
            sla_due_at=task.sla_due_at,
            sla_status=task.sla_status.value,
            retry_count=task.retry_count,
            max_retries=task.max_retries,
            retryable=task.retryable,
            started_at=task.started_at,
            completed_at=task.completed_at,
            error_message=task.error_message,
            output_data=task.output_data,
            version=task.version,
        )


@dataclass
class WorkflowDTO:
    """DTO for a workflow with its derived status.

    Attributes:
        id: Workflow ID.
        workflow_type: Workflow type.
        title: Display title.
        status: Aggregate status derived from the tasks.
        due_date: Business due date.
        assigned_operator: Operator notified about the workflow.
        template_version: Template version the tasks were created from.
        activated_at: When the tasks were created.
        created_at: When the workflow was created.
        task_counts: Number of tasks per status.
        metadata: Caller supplied metadata.
    """

    id: UUID
    workflow_type: str
    title: str
    status: str
    due_date: datetime | None
    assigned_operator: str | None
    template_version: str | None
    activated_at: datetime | None
    created_at: datetime
    task_counts: dict[str, int] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_view(cls, view: WorkflowView) -> WorkflowDTO:
        workflow = view.workflow
        return cls(
            id=workflow.id,
            workflow_type=workflow.workflow_type,
            title=workflow.title,
            status=view.status.value,
            due_date=workflow.due_date,
            assigned_operator=workflow.assigned_operator,
            template_version=workflow.template_version,
            activated_at=workflow.activated_at,
            created_at=workflow.created_at,
            task_counts=view.task_counts,
            metadata=dict(workflow.metadata_ or {}),
        )


@dataclass
class InterruptDTO:
    """DTO for an interrupt."""

    id: UUID
    task_id: UUID
    workflow_id: UUID
    reason: str
    interrupt_type: str | None
    priority: str
    status: str
    created_at: datetime
    resolved_at: datetime | None
    resolved_by: str | None
    resolution_outcome: str | None
    resolution_notes: str | None

    @classmethod
    def from_model(cls, interrupt: InterruptModel) -> InterruptDTO:
        return cls(
            id=interrupt.id,
            task_id=interrupt.task_id,
            workflow_id=interrupt.workflow_id,
            reason=interrupt.reason,
            interrupt_type=interrupt.interrupt_type.value if interrupt.interrupt_type else None,
            priority=interrupt.priority.value,
            status=interrupt.status.value,
            created_at=interrupt.created_at,
            resolved_at=interrupt.resolved_at,
            resolved_by=interrupt.resolved_by,
            resolution_outcome=interrupt.resolution_outcome.value if interrupt.resolution_outcome else None,
            resolution_notes=interrupt.resolution_notes,
        )


@dataclass
class NotificationDTO:
    """DTO for an operator notification."""

    id: UUID
    user_id: str
    type: str
    priority: str
    title: str
    message: str
    action_ref: str | None
    metadata: dict[str, Any]
    read: bool
    read_at: datetime | None
    created_at: datetime

    @classmethod
    def from_model(cls, notification: NotificationModel) -> NotificationDTO:
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type.value,
            priority=notification.priority.value,
            title=notification.title,
            message=notification.message,
            action_ref=notification.action_ref,
            metadata=dict(notification.metadata_ or {}),
            read=notification.read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


@dataclass
class UnreadCountDTO:
    user_id: str
    count: int


@dataclass
class ReadAllResultDTO:
    user_id: str
    updated: int


@dataclass
class AuditEventDTO:
    """DTO for an audit event."""

    id: UUID
    actor_type: str
    actor_id: str | None
    actor_name: str | None
    event_type: str
    action: str
    resource_type: str
    resource_id: UUID
    workflow_id: UUID | None
    event_data: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_model(cls, event: AuditEventModel) -> AuditEventDTO:
        return cls(
            id=event.id,
            actor_type=event.actor_type.value,
            actor_id=event.actor_id,
            actor_name=event.actor_name,
            event_type=event.event_type,
            action=event.action.value,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            workflow_id=event.workflow_id,
            event_data=dict(event.event_data or {}),
            created_at=event.created_at,
        )


@dataclass
class BlueprintDTO:
    """DTO for one task blueprint of a template."""

    task_type: str
    title: str
    executor_kind: str
    sequence_order: int
    default_sla_hours: float
    dependencies: list[str]
    max_retries: int | None
    alert_offsets_hours: list[float] | None

    @classmethod
    def from_blueprint(cls, blueprint: TaskBlueprint) -> BlueprintDTO:
        return cls(
            task_type=blueprint.task_type,
            title=blueprint.display_title,
            executor_kind=blueprint.executor_kind.value,
            sequence_order=blueprint.sequence_order,
            default_sla_hours=blueprint.default_sla_hours,
            dependencies=sorted(blueprint.dependencies),
            max_retries=blueprint.max_retries,
            alert_offsets_hours=list(blueprint.alert_offsets_hours) if blueprint.alert_offsets_hours else None,
        )


@dataclass
class TemplateDTO:
    """DTO for a workflow template."""

    workflow_type: str
    version: str
    description: str
    is_business_hours_only: bool
    alert_offsets_hours: list[float]
    tasks: list[BlueprintDTO]

    @classmethod
    def from_template(cls, template: WorkflowTemplate) -> TemplateDTO:
        return cls(
            workflow_type=str(template.workflow_type),
            version=template.version,
            description=template.description,
            is_business_hours_only=template.is_business_hours_only,
            alert_offsets_hours=list(template.alert_offsets_hours),
            tasks=[BlueprintDTO.from_blueprint(blueprint) for blueprint in template.tasks],
        )
