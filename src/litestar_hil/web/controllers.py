"""REST API controllers for the HIL engine.

This module provides the controllers behind the plugin's router:
- WorkflowController: Create, activate, inspect and cancel workflows
- TaskController: Status changes and retries requested by the orchestrator
- InterruptController: The operator's interrupt queue
- NotificationController: Operator notifications and their live stream
- AuditEventController: Read access to the audit log
- SLAController: Deadline report and on-demand sweeps
- TemplateController: Registered workflow templates
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - needed for signature parsing
from typing import TYPE_CHECKING, ClassVar
from uuid import UUID

from litestar import Controller, get, post
from litestar.params import Parameter
from litestar.response import ServerSentEvent, ServerSentEventMessage
from litestar.serialization import encode_json
from litestar.status_codes import HTTP_200_OK

from litestar_hil.core.transitions import TransitionRequest
from litestar_hil.core.types import InterruptOutcome, NotificationType, Priority
from litestar_hil.engine.registry import TemplateRegistry  # noqa: TC001 - needed for DI
from litestar_hil.engine.sla import SLAReportRow, SweepResult  # noqa: TC001 - needed for return types
from litestar_hil.engine.state_machine import TaskStateEngine  # noqa: TC001 - needed for DI
from litestar_hil.web.dto import (
    ActivateWorkflowDTO,
    AuditEventDTO,
    CancelWorkflowDTO,
    CreateWorkflowDTO,
    InterruptDTO,
    MarkReadDTO,
    NotificationDTO,
    PageDTO,
    ReadAllResultDTO,
    ResolveInterruptDTO,
    RetryTaskDTO,
    TaskDTO,
    TemplateDTO,
    TransitionTaskDTO,
    UnreadCountDTO,
    WorkflowDTO,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

__all__ = [
    "AuditEventController",
    "InterruptController",
    "NotificationController",
    "SLAController",
    "TaskController",
    "TemplateController",
    "WorkflowController",
]


class WorkflowController(Controller):
    """API controller for workflow instances.

    Tags: Workflows
    """

    path = "/workflows"
    tags: ClassVar[list[str]] = ["Workflows"]

    @post("/")
    async def create_workflow(self, data: CreateWorkflowDTO, hil_engine: TaskStateEngine) -> WorkflowDTO:
        """Create a workflow instance, ready for activation.

        Args:
            data: Workflow parameters.
            hil_engine: Injected task state engine.

        Returns:
            The new workflow.
        """
        workflow = await hil_engine.create_workflow(
            data.workflow_type,
            title=data.title,
            due_date=data.due_date,
            assigned_operator=data.assigned_operator,
            metadata=data.metadata,
            actor=data.get_actor(),
        )
        return WorkflowDTO.from_view(await hil_engine.get_workflow(workflow.id))

    @post("/{workflow_id:uuid}/activate")
    async def activate_workflow(
        self,
        workflow_id: UUID,
        hil_engine: TaskStateEngine,
        data: ActivateWorkflowDTO | None = None,
    ) -> list[TaskDTO]:
        """Expand the workflow's template into tasks and start the ready ones.

        Args:
            workflow_id: The workflow ID.
            hil_engine: Injected task state engine.
            data: Optional template version and actor.

        Returns:
            The created tasks.
        """
        data = data or ActivateWorkflowDTO()
        tasks = await hil_engine.activate_workflow(
            workflow_id,
            actor=data.get_actor(),
            template_version=data.template_version,
        )
        return [TaskDTO.from_model(task) for task in tasks]

    @get("/{workflow_id:uuid}")
    async def get_workflow(self, workflow_id: UUID, hil_engine: TaskStateEngine) -> WorkflowDTO:
        """Get a workflow with its derived status and task counts."""
        return WorkflowDTO.from_view(await hil_engine.get_workflow(workflow_id))

    @get("/{workflow_id:uuid}/tasks")
    async def list_workflow_tasks(self, workflow_id: UUID, hil_engine: TaskStateEngine) -> list[TaskDTO]:
        """List a workflow's tasks in sequence order."""
        return [TaskDTO.from_model(task) for task in await hil_engine.list_tasks(workflow_id)]

    @post("/{workflow_id:uuid}/cancel", status_code=HTTP_200_OK)
    async def cancel_workflow(
        self,
        workflow_id: UUID,
        hil_engine: TaskStateEngine,
        data: CancelWorkflowDTO | None = None,
    ) -> list[TaskDTO]:
        """Fail every open task of a workflow.

        Returns:
            The cancelled tasks.
        """
        data = data or CancelWorkflowDTO()
        tasks = await hil_engine.cancel_workflow(workflow_id, actor=data.get_actor(), reason=data.reason)
        return [TaskDTO.from_model(task) for task in tasks]


class TaskController(Controller):
    """API controller for task executions.

    Tags: Tasks
    """

    path = "/tasks"
    tags: ClassVar[list[str]] = ["Tasks"]

    @get("/{task_id:uuid}")
    async def get_task(self, task_id: UUID, hil_engine: TaskStateEngine) -> TaskDTO:
        """Get a task, including its SLA status and version."""
        return TaskDTO.from_model(await hil_engine.get_task(task_id))

    @post("/{task_id:uuid}/status", status_code=HTTP_200_OK)
    async def transition_task(
        self,
        task_id: UUID,
        data: TransitionTaskDTO,
        hil_engine: TaskStateEngine,
    ) -> TaskDTO:
        """Move a task to a new status.

        A completion reported below the confidence threshold is redirected to
        an interrupt; the returned task shows the status actually applied.

        Args:
            task_id: The task ID.
            data: The requested status and its details.
            hil_engine: Injected task state engine.

        Returns:
            The updated task.
        """
        task = await hil_engine.transition(
            task_id,
            data.status,
            TransitionRequest(
                actor=data.get_actor(),
                output_data=data.output_data,
                error_message=data.error_message,
                reason=data.reason,
                confidence=data.confidence,
                interrupt_type=data.interrupt_type,
                expected_version=data.expected_version,
            ),
        )
        return TaskDTO.from_model(task)

    @post("/{task_id:uuid}/retry", status_code=HTTP_200_OK)
    async def retry_task(
        self,
        task_id: UUID,
        hil_engine: TaskStateEngine,
        data: RetryTaskDTO | None = None,
    ) -> TaskDTO:
        """Return a failed task to NOT_STARTED."""
        data = data or RetryTaskDTO()
        task = await hil_engine.retry(task_id, actor=data.get_actor(), expected_version=data.expected_version)
        return TaskDTO.from_model(task)


class InterruptController(Controller):
    """API controller for the operator's interrupt queue.

    Tags: Interrupts
    """

    path = "/interrupts"
    tags: ClassVar[list[str]] = ["Interrupts"]

    @get("/")
    async def list_interrupts(
        self,
        hil_engine: TaskStateEngine,
        workflow_id: UUID | None = Parameter(default=None, description="Filter by workflow"),
        priority: Priority | None = Parameter(default=None, description="Filter by priority"),
        limit: int = Parameter(default=50, ge=1, le=500, description="Maximum number of results"),
        offset: int = Parameter(default=0, ge=0, description="Number of results to skip"),
    ) -> PageDTO:
        """List open interrupts, oldest first."""
        interrupts, total = await hil_engine.interrupts.list_open(
            workflow_id=workflow_id,
            priority=priority,
            limit=limit,
            offset=offset,
        )
        return PageDTO(
            items=[InterruptDTO.from_model(interrupt) for interrupt in interrupts],
            total=total,
            limit=limit,
            offset=offset,
        )

    @get("/{interrupt_id:uuid}")
    async def get_interrupt(self, interrupt_id: UUID, hil_engine: TaskStateEngine) -> InterruptDTO:
        return InterruptDTO.from_model(await hil_engine.interrupts.get(interrupt_id))

    @post("/{interrupt_id:uuid}/resolve", status_code=HTTP_200_OK)
    async def resolve_interrupt(
        self,
        interrupt_id: UUID,
        data: ResolveInterruptDTO,
        hil_engine: TaskStateEngine,
    ) -> InterruptDTO:
        """Resolve an interrupt and move its task on.

        Args:
            interrupt_id: The interrupt ID.
            data: The operator's decision.
            hil_engine: Injected task state engine.

        Returns:
            The resolved interrupt.
        """
        interrupt = await hil_engine.interrupts.resolve(
            interrupt_id,
            InterruptOutcome(data.outcome),
            actor=data.actor.to_actor(),
            notes=data.notes,
            output_data=data.output_data,
        )
        return InterruptDTO.from_model(interrupt)


class NotificationController(Controller):
    """API controller for operator notifications.

    Tags: Notifications
    """

    path = "/notifications"
    tags: ClassVar[list[str]] = ["Notifications"]

    @get("/")
    async def list_notifications(
        self,
        hil_engine: TaskStateEngine,
        user_id: str = Parameter(description="Recipient"),
        unread_only: bool = Parameter(default=False, description="Only unread notifications"),
        notification_type: NotificationType | None = Parameter(
            query="type",
            default=None,
            description="Filter by notification type",
        ),
        priority: Priority | None = Parameter(default=None, description="Filter by priority"),
        limit: int = Parameter(default=50, ge=1, le=500, description="Maximum number of results"),
        offset: int = Parameter(default=0, ge=0, description="Number of results to skip"),
    ) -> PageDTO:
        """List a user's notifications, newest first."""
        notifications, total = await hil_engine.notifications.list_for_user(
            user_id,
            unread_only=unread_only,
            notification_type=notification_type,
            priority=priority,
            limit=limit,
            offset=offset,
        )
        return PageDTO(
            items=[NotificationDTO.from_model(notification) for notification in notifications],
            total=total,
            limit=limit,
            offset=offset,
        )

    @get("/unread-count")
    async def unread_count(
        self,
        hil_engine: TaskStateEngine,
        user_id: str = Parameter(description="Recipient"),
    ) -> UnreadCountDTO:
        return UnreadCountDTO(user_id=user_id, count=await hil_engine.notifications.unread_count(user_id))

    @post("/{notification_id:uuid}/read", status_code=HTTP_200_OK)
    async def mark_read(
        self,
        notification_id: UUID,
        data: MarkReadDTO,
        hil_engine: TaskStateEngine,
    ) -> NotificationDTO:
        """Mark one of the user's notifications read."""
        notification = await hil_engine.notifications.mark_read(notification_id, data.user_id)
        return NotificationDTO.from_model(notification)

    @post("/read-all", status_code=HTTP_200_OK)
    async def mark_all_read(self, data: MarkReadDTO, hil_engine: TaskStateEngine) -> ReadAllResultDTO:
        """Mark all of the user's notifications read."""
        updated = await hil_engine.notifications.mark_all_read(data.user_id)
        return ReadAllResultDTO(user_id=data.user_id, updated=updated)

    @get("/stream")
    async def stream_notifications(
        self,
        hil_engine: TaskStateEngine,
        user_id: str = Parameter(description="Recipient"),
    ) -> ServerSentEvent:
        """Stream the user's live notification events as server-sent events.

        Each event's name is the live event type (``notification`` or
        ``read``); its data is the event payload as JSON.
        """
        hub = hil_engine.hub

        async def events() -> AsyncGenerator[ServerSentEventMessage, None]:
            async with hub.listen(user_id) as queue:
                while True:
                    event = await queue.get()
                    yield ServerSentEventMessage(
                        data=encode_json(event.to_payload()).decode(),
                        event=event.event_name,
                    )

        return ServerSentEvent(events())


class AuditEventController(Controller):
    """API controller for the audit log.

    Tags: Audit
    """

    path = "/audit-events"
    tags: ClassVar[list[str]] = ["Audit"]

    @get("/")
    async def list_audit_events(
        self,
        hil_engine: TaskStateEngine,
        resource_type: str | None = Parameter(default=None, description="Filter by resource type"),
        resource_id: UUID | None = Parameter(default=None, description="Filter by resource ID"),
        workflow_id: UUID | None = Parameter(default=None, description="Filter by workflow"),
        event_type: str | None = Parameter(default=None, description="Filter by event type"),
        limit: int = Parameter(default=100, ge=1, le=1000, description="Maximum number of results"),
        offset: int = Parameter(default=0, ge=0, description="Number of results to skip"),
    ) -> PageDTO:
        """List audit events, oldest first."""
        events, total = await hil_engine.audit.list_events(
            resource_type=resource_type,
            resource_id=resource_id,
            workflow_id=workflow_id,
            event_type=event_type,
            limit=limit,
            offset=offset,
        )
        return PageDTO(
            items=[AuditEventDTO.from_model(event) for event in events],
            total=total,
            limit=limit,
            offset=offset,
        )


class SLAController(Controller):
    """API controller for SLA monitoring.

    Tags: SLA
    """

    path = "/sla"
    tags: ClassVar[list[str]] = ["SLA"]

    @get("/report")
    async def sla_report(
        self,
        hil_engine: TaskStateEngine,
        only_at_risk: bool = Parameter(default=False, description="Only AT_RISK and BREACHED tasks"),
        at: datetime | None = Parameter(default=None, description="Report time. Defaults to now."),
    ) -> list[SLAReportRow]:
        """Deadline view of every open task, ordered by due date."""
        return await hil_engine.sla.sla_report(at, only_at_risk=only_at_risk)

    @post("/sweep", status_code=HTTP_200_OK)
    async def run_sweep(self, hil_engine: TaskStateEngine) -> SweepResult:
        """Run one SLA sweep now."""
        return await hil_engine.sla.sweep()


class TemplateController(Controller):
    """API controller for registered workflow templates.

    Tags: Templates
    """

    path = "/templates"
    tags: ClassVar[list[str]] = ["Templates"]

    @get("/")
    async def list_templates(
        self,
        hil_registry: TemplateRegistry,
        latest_only: bool = Parameter(default=True, description="Only the latest version of each type"),
    ) -> list[TemplateDTO]:
        return [TemplateDTO.from_template(template) for template in hil_registry.list_templates(latest_only=latest_only)]

    @get("/{workflow_type:str}")
    async def get_template(
        self,
        workflow_type: str,
        hil_registry: TemplateRegistry,
        version: str | None = Parameter(default=None, description="Specific version. Defaults to the latest."),
    ) -> TemplateDTO:
        """Get a template by workflow type."""
        return TemplateDTO.from_template(hil_registry.get_template(workflow_type, version))
