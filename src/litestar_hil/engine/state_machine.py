"""Task state engine.

This module drives task executions through the transition graph. Every
operation runs in one unit of work: the status change, SLA bookkeeping,
interrupts, notifications and the audit entry commit together or not at all.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from litestar_hil.config import EngineConfig
from litestar_hil.core.transitions import (
    HIL_REQUESTED,
    LOW_CONFIDENCE,
    OPEN_STATUSES,
    RETRIES_EXHAUSTED,
    WORKFLOW_CANCELLED,
    TransitionRequest,
    derive_workflow_status,
    is_legal,
    is_terminally_failed,
)
from litestar_hil.core.types import (
    Actor,
    AuditAction,
    InterruptOutcome,
    NotificationType,
    Priority,
    SLAStatus,
    TaskStatus,
    WorkflowStatus,
)
from litestar_hil.db.models import TaskExecutionModel, WorkflowInstanceModel
from litestar_hil.db.repositories import TaskExecutionRepository
from litestar_hil.db.uow import UnitOfWork
from litestar_hil.engine.audit import AuditRecorder
from litestar_hil.engine.graph import DependencyGraph
from litestar_hil.engine.interrupts import InterruptManager
from litestar_hil.engine.notifications import ListenerHub, NotificationDispatcher
from litestar_hil.engine.sla import SLATracker
from litestar_hil.exceptions import (
    ConflictError,
    DependencyUnsatisfiedError,
    InvalidTransitionError,
    RetryExhaustedError,
    TaskNotFoundError,
    WorkflowAlreadyActivatedError,
    WorkflowNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from litestar_hil.engine.registry import TemplateRegistry

__all__ = ["TaskStateEngine", "WorkflowView"]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkflowView:
    """A workflow together with its tasks and derived status.

    Attributes:
        workflow: The workflow instance.
        status: Aggregate status derived from the tasks.
        tasks: All tasks, in sequence order.
    """

    workflow: WorkflowInstanceModel
    status: WorkflowStatus
    tasks: list[TaskExecutionModel]

    @property
    def task_counts(self) -> dict[str, int]:
        """Number of tasks per status."""
        counts = Counter(task.status.value for task in self.tasks)
        return {status.value: counts.get(status.value, 0) for status in TaskStatus}


class TaskStateEngine:
    """Execution engine for task executions.

    The engine owns the collaborators that participate in a transition: the
    SLA tracker, the interrupt manager, the notification dispatcher and the
    audit recorder.

    Attributes:
        registry: Templates workflows are activated from.
        config: Engine settings.
        clock: Source of the current time.
        hub: Live listener hub.
        audit: Audit recorder.
        notifications: Notification dispatcher.
        sla: SLA tracker.
        interrupts: Interrupt manager.
        on_signal_enqueued: Called after a commit that enqueued a resume signal.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        registry: TemplateRegistry,
        *,
        config: EngineConfig | None = None,
        hub: ListenerHub | None = None,
        clock: Callable[[], datetime] | None = None,
        sweep_batch_size: int = 500,
    ) -> None:
        """Initialize the engine.

        Args:
            session_maker: Factory for database sessions.
            registry: Templates workflows are activated from.
            config: Engine settings.
            hub: Live listener hub. A new one is created when omitted.
            clock: Source of the current time. Defaults to UTC wall-clock time.
            sweep_batch_size: Open tasks read per SLA sweep batch.
        """
        self.session_maker = session_maker
        self.registry = registry
        self.config = config or EngineConfig()
        self.clock = clock or _utcnow
        self.hub = hub or ListenerHub()
        self.audit = AuditRecorder(session_maker, self.clock)
        self.notifications = NotificationDispatcher(session_maker, self.hub, self.config, self.clock)
        self.sla = SLATracker(
            session_maker,
            self.notifications,
            self.audit,
            self.config,
            self.clock,
            batch_size=sweep_batch_size,
        )
        self.interrupts = InterruptManager(self)
        self.on_signal_enqueued: Callable[[], Any] | None = None

    def unit_of_work(self, resource: str = "record", resource_id: UUID | None = None) -> UnitOfWork:
        return UnitOfWork(self.session_maker, resource=resource, resource_id=resource_id)

    # ------------------------------------------------------------------
    # Workflow lifecycle
    # ------------------------------------------------------------------

    async def create_workflow(
        self,
        workflow_type: str,
        *,
        title: str = "",
        due_date: datetime | None = None,
        assigned_operator: str | None = None,
        metadata: dict[str, Any] | None = None,
        actor: Actor | None = None,
    ) -> WorkflowInstanceModel:
        """Create a workflow instance, ready for activation.

        Raises:
            TemplateNotFoundError: If no template exists for ``workflow_type``.
        """
        self.registry.get_template(workflow_type)
        async with self.unit_of_work("workflow") as uow:
            workflow = WorkflowInstanceModel(
                workflow_type=str(workflow_type),
                title=title,
                due_date=due_date,
                assigned_operator=assigned_operator,
                metadata_=metadata or {},
                created_at=self.clock(),
            )
            uow.session.add(workflow)
            await uow.flush()
            self.audit.record(
                uow,
                actor=actor or Actor.system(),
                action=AuditAction.CREATE,
                event_type="workflow.created",
                resource_type="workflow",
                resource_id=workflow.id,
                workflow_id=workflow.id,
                event_data={"workflow_type": workflow.workflow_type, "title": title or None},
            )
        logger.info("Created workflow %s (%s)", workflow.id, workflow.workflow_type)
        return workflow

    async def activate_workflow(
        self,
        workflow_id: UUID,
        *,
        actor: Actor | None = None,
        template_version: str | None = None,
    ) -> list[TaskExecutionModel]:
        """Expand the workflow's template into task executions.

        Creates one task per blueprint and starts every task without
        dependencies. One audit entry lists all created tasks.

        Args:
            workflow_id: The workflow to activate.
            actor: Who requested the activation.
            template_version: Template version to use. Defaults to the latest.

        Returns:
            The created tasks, in sequence order.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
            WorkflowAlreadyActivatedError: If its tasks were already created.
            TemplateNotFoundError: If the template or version does not exist.
        """
        actor = actor or Actor.system()
        async with self.unit_of_work("workflow", workflow_id) as uow:
            workflow = await self._load_workflow(uow, workflow_id)
            if workflow.is_activated or await uow.tasks.count_by_workflow(workflow_id):
                raise WorkflowAlreadyActivatedError(workflow_id)

            template = self.registry.get_template(workflow.workflow_type, template_version)
            now = self.clock()
            tasks = [
                TaskExecutionModel(
                    workflow_id=workflow.id,
                    task_type=blueprint.task_type,
                    title=blueprint.display_title,
                    executor_kind=blueprint.executor_kind,
                    sequence_order=blueprint.sequence_order,
                    status=TaskStatus.NOT_STARTED,
                    depends_on=sorted(blueprint.dependencies),
                    sla_hours=blueprint.default_sla_hours,
                    business_hours_only=template.is_business_hours_only,
                    alert_window_hours=self.sla.alert_window_hours(template, blueprint),
                    sla_status=SLAStatus.ON_TIME,
                    retry_count=0,
                    max_retries=self.config.max_retries if blueprint.max_retries is None else blueprint.max_retries,
                    retryable=True,
                    created_at=now,
                )
                for blueprint in template.tasks
            ]
            started = [task for task in tasks if not task.depends_on]
            for task in started:
                self._start(task, now)

            uow.session.add_all(tasks)
            workflow.template_version = template.version
            workflow.activated_at = now
            self.touch_workflow(workflow)
            await uow.flush()

            self.audit.record_batch(
                uow,
                actor=actor,
                action=AuditAction.CREATE,
                event_type="workflow.activated",
                workflow_id=workflow.id,
                task_ids=[task.id for task in tasks],
                event_data={
                    "workflow_type": workflow.workflow_type,
                    "template_version": template.version,
                    "started_task_ids": [str(task.id) for task in started],
                },
            )

        logger.info(
            "Activated workflow %s from %s v%s: %d tasks, %d started",
            workflow_id,
            template.workflow_type,
            template.version,
            len(tasks),
            len(started),
        )
        return tasks

    async def cancel_workflow(
        self,
        workflow_id: UUID,
        *,
        actor: Actor | None = None,
        reason: str = WORKFLOW_CANCELLED,
    ) -> list[TaskExecutionModel]:
        """Fail every unfinished task of a workflow in one batch.

        Open tasks become FAILED with the cancellation reason. Every task that
        is not COMPLETED, including already failed ones, becomes non-retryable
        and its open interrupts are resolved, so nothing in a cancelled
        workflow can be revived. Completed tasks are left alone.

        Args:
            workflow_id: The workflow to cancel.
            actor: Who requested the cancellation.
            reason: Stored as the error message of every cancelled open task.

        Returns:
            The tasks that were cancelled.
        """
        actor = actor or Actor.system()
        async with self.unit_of_work("workflow", workflow_id) as uow:
            workflow = await self._load_workflow(uow, workflow_id)
            tasks = await uow.tasks.find_by_workflow(workflow_id)
            cancelled = [task for task in tasks if task.status != TaskStatus.COMPLETED]
            now = self.clock()

            interrupts = await uow.interrupts.find_open_for_tasks([task.id for task in cancelled])
            for interrupt in interrupts:
                self.interrupts.close(interrupt, InterruptOutcome.DISMISS, actor=actor, notes=reason, now=now)

            for task in cancelled:
                if task.status in OPEN_STATUSES:
                    task.status = TaskStatus.FAILED
                    task.error_message = reason
                    task.completed_at = now
                task.retryable = False

            self.touch_workflow(workflow)
            self.audit.record_batch(
                uow,
                actor=actor,
                action=AuditAction.UPDATE,
                event_type="workflow.cancelled",
                workflow_id=workflow.id,
                task_ids=[task.id for task in cancelled],
                event_data={"reason": reason},
            )

        logger.info("Cancelled workflow %s: %d tasks failed", workflow_id, len(cancelled))
        return cancelled

    # ------------------------------------------------------------------
    # Task transitions
    # ------------------------------------------------------------------

    async def transition(
        self,
        task_id: UUID,
        target_status: TaskStatus | str,
        request: TransitionRequest | None = None,
    ) -> TaskExecutionModel:
        """Move a task along the transition graph.

        ``FAILED -> NOT_STARTED`` is handled by :meth:`retry`.

        Args:
            task_id: The task to move.
            target_status: The requested status.
            request: Details of the change.

        Returns:
            The updated task. Its status may differ from the requested one when
            a low-confidence completion was redirected to INTERRUPT.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidTransitionError: If the edge is not in the graph.
            DependencyUnsatisfiedError: If starting a task whose dependencies are incomplete.
            ConflictError: If the task changed concurrently.
        """
        request = request or TransitionRequest()
        target = TaskStatus(target_status)
        if target == TaskStatus.NOT_STARTED:
            return await self.retry(task_id, actor=request.actor, expected_version=request.expected_version)

        async with self.unit_of_work("task", task_id) as uow:
            task = await self._load_task(uow, task_id)
            self._check_version(task, request.expected_version)
            if not is_legal(task.status, target):
                raise InvalidTransitionError(task.id, task.status, target)
            workflow = await self._load_workflow(uow, task.workflow_id)
            await self.apply_transition(uow, workflow, task, target, request)
        return task

    async def retry(
        self,
        task_id: UUID,
        *,
        actor: Actor | None = None,
        expected_version: int | None = None,
    ) -> TaskExecutionModel:
        """Return a failed task to NOT_STARTED for another attempt.

        When the task has no retries left the request is rejected and the task
        is escalated to an interrupt; the interrupt is committed before the
        error is raised.

        Returns:
            The task, NOT_STARTED with its retry count incremented.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidTransitionError: If the task is not FAILED or was cancelled.
            RetryExhaustedError: If the task has no retries left.
        """
        actor = actor or Actor.system()
        async with self.unit_of_work("task", task_id) as uow:
            task = await self._load_task(uow, task_id)
            self._check_version(task, expected_version)
            if task.status != TaskStatus.FAILED:
                raise InvalidTransitionError(task.id, task.status, TaskStatus.NOT_STARTED)
            if not task.retryable:
                raise InvalidTransitionError(
                    task.id, task.status, TaskStatus.NOT_STARTED, reason="task is not retryable"
                )
            workflow = await self._load_workflow(uow, task.workflow_id)

            if task.retry_count >= task.max_retries:
                interrupt = await self.interrupts.open_for_task(
                    uow,
                    workflow,
                    task,
                    reason=RETRIES_EXHAUSTED,
                    priority=Priority.URGENT,
                    actor=actor,
                    retries_exhausted=True,
                )
                self.audit.record(
                    uow,
                    actor=actor,
                    action=AuditAction.REJECT,
                    event_type="task.retry_rejected",
                    resource_type="task",
                    resource_id=task.id,
                    workflow_id=task.workflow_id,
                    event_data={
                        "retry_count": task.retry_count,
                        "max_retries": task.max_retries,
                        "interrupt_id": str(interrupt.id),
                    },
                )
                await uow.commit()
                logger.warning(
                    "Retry of task %s rejected (%d/%d), escalated to interrupt %s",
                    task.id,
                    task.retry_count,
                    task.max_retries,
                    interrupt.id,
                )
                raise RetryExhaustedError(task.id, task.retry_count, task.max_retries)

            self.reset_for_retry(task)
            self.touch_workflow(workflow)
            self.audit.record(
                uow,
                actor=actor,
                action=AuditAction.UPDATE,
                event_type="task.transitioned",
                resource_type="task",
                resource_id=task.id,
                workflow_id=task.workflow_id,
                event_data={
                    "from_status": TaskStatus.FAILED.value,
                    "to_status": TaskStatus.NOT_STARTED.value,
                    "retry_count": task.retry_count,
                },
            )
        logger.info("Task %s reset for retry %d/%d", task.id, task.retry_count, task.max_retries)
        return task

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_task(self, task_id: UUID) -> TaskExecutionModel:
        """Get a task, refreshing its SLA status first when configured to.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        if self.config.check_sla_on_read:
            await self.sla.refresh_task(task_id)
        async with self.session_maker() as session:
            task = await TaskExecutionRepository(session=session).get_one_or_none(id=task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def list_tasks(self, workflow_id: UUID) -> list[TaskExecutionModel]:
        """List a workflow's tasks in sequence order.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        return (await self.get_workflow(workflow_id)).tasks

    async def get_workflow(self, workflow_id: UUID) -> WorkflowView:
        """Get a workflow with its tasks and derived status.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        async with self.unit_of_work("workflow", workflow_id) as uow:
            workflow = await self._load_workflow(uow, workflow_id)
            tasks = list(await uow.tasks.find_by_workflow(workflow_id))
        return WorkflowView(workflow=workflow, status=derive_workflow_status(tasks), tasks=tasks)

    # ------------------------------------------------------------------
    # In-transaction building blocks, shared with interrupts and signals
    # ------------------------------------------------------------------

    async def apply_transition(
        self,
        uow: UnitOfWork,
        workflow: WorkflowInstanceModel,
        task: TaskExecutionModel,
        target: TaskStatus,
        request: TransitionRequest,
    ) -> TaskExecutionModel:
        """Apply a legal transition and all of its side effects."""
        current = task.status
        if not is_legal(current, target):
            raise InvalidTransitionError(task.id, current, target)

        reason = request.reason
        requested = target
        if (
            current == TaskStatus.IN_PROGRESS
            and target == TaskStatus.COMPLETED
            and request.confidence is not None
            and request.confidence < self.config.confidence_threshold
        ):
            target = TaskStatus.INTERRUPT
            reason = LOW_CONFIDENCE

        siblings = list(await uow.tasks.find_by_workflow(workflow.id))
        graph = DependencyGraph(siblings)
        if current == TaskStatus.NOT_STARTED:
            pending = graph.pending_dependencies(task.task_type)
            if pending:
                raise DependencyUnsatisfiedError(task.id, pending)

        previous_status = derive_workflow_status(siblings)
        now = self.clock()

        if current == TaskStatus.INTERRUPT:
            # the orchestrator moved the task on; the operator's item is moot
            open_interrupt = await uow.interrupts.find_open_for_task(task.id)
            if open_interrupt is not None:
                outcome = InterruptOutcome.COMPLETE if target == TaskStatus.COMPLETED else InterruptOutcome.RESUME
                self.interrupts.close(
                    open_interrupt, outcome, actor=request.actor, notes="closed by task transition", now=now
                )

        task.status = target
        if request.output_data is not None:
            task.output_data = request.output_data

        activated: list[TaskExecutionModel] = []
        if target == TaskStatus.IN_PROGRESS:
            self._start(task, now)
        elif target == TaskStatus.COMPLETED:
            task.completed_at = now
            task.error_message = None
            self.sla.freeze(task)
            activated = graph.eligible_dependents(task.task_type)
            for dependent in activated:
                self._start(dependent, now)
        elif target == TaskStatus.FAILED:
            task.completed_at = now
            task.error_message = request.error_message or reason or "failed"

        if target == TaskStatus.INTERRUPT:
            await self.interrupts.open_for_task(
                uow,
                workflow,
                task,
                reason=reason or HIL_REQUESTED,
                interrupt_type=request.interrupt_type,
                actor=request.actor,
            )
        elif target == TaskStatus.FAILED:
            await self._escalate_failure(uow, workflow, task, request.actor)

        self.touch_workflow(workflow)
        new_status = derive_workflow_status(siblings)
        self.audit.record(
            uow,
            actor=request.actor,
            action=AuditAction.UPDATE,
            event_type="task.transitioned",
            resource_type="task",
            resource_id=task.id,
            workflow_id=workflow.id,
            event_data={
                "from_status": current.value,
                "to_status": target.value,
                "requested_status": requested.value if requested != target else None,
                "reason": reason,
                "error_message": task.error_message if target == TaskStatus.FAILED else None,
                "confidence": request.confidence,
                "retry_count": task.retry_count,
                "sla_status": task.sla_status.value if target == TaskStatus.COMPLETED else None,
                "workflow_status": new_status.value,
                "activated_task_ids": [str(dependent.id) for dependent in activated] or None,
            },
        )

        if new_status != previous_status and new_status == WorkflowStatus.COMPLETED:
            await self.notifications.notify_operators(
                uow,
                workflow,
                type=NotificationType.WORKFLOW_UPDATE,
                priority=Priority.NORMAL,
                title=f"Workflow completed: {workflow.title or workflow.workflow_type}",
                message="All tasks of the workflow are completed.",
                action_ref=f"workflow:{workflow.id}",
                metadata={
                    "workflow_id": str(workflow.id),
                    "workflow_status": new_status.value,
                    "previous_status": previous_status.value,
                },
            )

        logger.info(
            "Task %s %s -> %s%s",
            task.id,
            current,
            target,
            f" (requested {requested}, {reason})" if requested != target else "",
        )
        return task

    async def _escalate_failure(
        self,
        uow: UnitOfWork,
        workflow: WorkflowInstanceModel,
        task: TaskExecutionModel,
        actor: Actor,
    ) -> None:
        if is_terminally_failed(task):
            await self.interrupts.open_for_task(
                uow,
                workflow,
                task,
                reason=RETRIES_EXHAUSTED,
                priority=Priority.URGENT,
                actor=actor,
                retries_exhausted=True,
            )
            return
        await self.notifications.notify_operators(
            uow,
            workflow,
            type=NotificationType.AGENT_FAILURE,
            priority=Priority.HIGH,
            title=f"Task failed: {task.title}",
            message=task.error_message or "The task failed.",
            action_ref=f"task:{task.id}",
            metadata={
                "task_id": str(task.id),
                "task_type": task.task_type,
                "workflow_id": str(workflow.id),
                "error_message": task.error_message,
                "retry_count": task.retry_count,
            },
        )

    def _start(self, task: TaskExecutionModel, now: datetime) -> None:
        task.status = TaskStatus.IN_PROGRESS
        if task.started_at is None:
            task.started_at = now
        if task.sla_due_at is None:
            task.sla_due_at = self.sla.compute_due_at(task, now)

    def reset_for_retry(self, task: TaskExecutionModel, *, extra_attempt: bool = False) -> None:
        """Return a failed task to NOT_STARTED, consuming one retry.

        Args:
            task: The failed task.
            extra_attempt: Raise ``max_retries`` so the retry is allowed even
                when the task had exhausted its retries.
        """
        if extra_attempt:
            task.max_retries = max(task.max_retries, task.retry_count + 1)
        task.status = TaskStatus.NOT_STARTED
        task.retry_count += 1
        task.completed_at = None
        task.error_message = None
        task.output_data = None

    @staticmethod
    def touch_workflow(workflow: WorkflowInstanceModel) -> None:
        """Bump the workflow's version so concurrent sibling transitions conflict."""
        workflow.version += 1

    @staticmethod
    def _check_version(task: TaskExecutionModel, expected_version: int | None) -> None:
        if expected_version is not None and task.version != expected_version:
            raise ConflictError("task", task.id)

    @staticmethod
    async def _load_task(uow: UnitOfWork, task_id: UUID) -> TaskExecutionModel:
        task = await uow.tasks.get_one_or_none(id=task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    @staticmethod
    async def _load_workflow(uow: UnitOfWork, workflow_id: UUID) -> WorkflowInstanceModel:
        workflow = await uow.workflows.get_one_or_none(id=workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def load_task_and_workflow(
        self, uow: UnitOfWork, task_id: UUID
    ) -> tuple[TaskExecutionModel, WorkflowInstanceModel]:
        task = await self._load_task(uow, task_id)
        return task, await self._load_workflow(uow, task.workflow_id)


