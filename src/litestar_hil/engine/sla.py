"""SLA due dates, risk classification and the periodic sweep.

A task's due date is fixed the first time it starts. While the task is open
its classification only ever escalates (ON_TIME -> AT_RISK -> BREACHED); when
it completes the classification is frozen to whether it finished in time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta  # noqa: TC003 - report rows are serialized by Litestar
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from litestar_hil.core.business_hours import add_sla_hours
from litestar_hil.core.types import Actor, AuditAction, NotificationType, Priority, SLAStatus, TaskStatus
from litestar_hil.db.repositories import TaskExecutionRepository
from litestar_hil.db.uow import UnitOfWork
from litestar_hil.exceptions import TaskNotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from litestar_hil.config import EngineConfig
    from litestar_hil.core.definition import TaskBlueprint, WorkflowTemplate
    from litestar_hil.db.models import TaskExecutionModel
    from litestar_hil.engine.audit import AuditRecorder
    from litestar_hil.engine.notifications import NotificationDispatcher

__all__ = ["SLAReportRow", "SLATracker", "SweepResult"]

logger = logging.getLogger(__name__)

_ALERT_PRIORITY = {SLAStatus.AT_RISK: Priority.HIGH, SLAStatus.BREACHED: Priority.URGENT}


@dataclass
class SweepResult:
    """Outcome of one SLA sweep.

    Attributes:
        checked: Open tasks classified.
        escalated: IDs of tasks whose SLA status this sweep escalated.
        failed: IDs of tasks whose escalation raised an error.
    """

    checked: int = 0
    escalated: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


@dataclass
class SLAReportRow:
    """Deadline view of one open task.

    Attributes:
        task_id: The task.
        workflow_id: Owning workflow.
        task_type: Task type.
        title: Task title.
        status: Task status.
        sla_status: Classification at report time.
        sla_due_at: Due date.
        hours_remaining: Hours until the due date, negative when overdue.
        percent_elapsed: Share of the SLA window already used, in percent.
    """

    task_id: UUID
    workflow_id: UUID
    task_type: str
    title: str
    status: TaskStatus
    sla_status: SLAStatus
    sla_due_at: datetime
    hours_remaining: float
    percent_elapsed: float


class SLATracker:
    """Computes and persists SLA state of tasks."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        notifications: NotificationDispatcher,
        audit: AuditRecorder,
        config: EngineConfig,
        clock: Callable[[], datetime],
        *,
        batch_size: int = 500,
    ) -> None:
        self._session_maker = session_maker
        self._notifications = notifications
        self._audit = audit
        self._config = config
        self._clock = clock
        self.batch_size = batch_size

    def alert_window_hours(self, template: WorkflowTemplate, blueprint: TaskBlueprint) -> float:
        """Length of the AT_RISK window before a task's due date.

        The largest configured alert offset wins. Without offsets the window
        starts once ``at_risk_fraction`` of the SLA has elapsed.
        """
        window = template.alert_window_hours(blueprint)
        if window is not None:
            return window
        return blueprint.default_sla_hours * (1 - self._config.at_risk_fraction)

    def compute_due_at(self, task: TaskExecutionModel, started_at: datetime) -> datetime:
        """Due date of a task starting at ``started_at``."""
        business_hours = self._config.business_hours if task.business_hours_only else None
        return add_sla_hours(started_at, task.sla_hours, business_hours=business_hours)

    def classify(self, task: TaskExecutionModel, now: datetime) -> SLAStatus:
        """Classify an open task against its due date.

        Args:
            task: The task.
            now: The current time.

        Returns:
            ON_TIME before the alert window, AT_RISK inside it, BREACHED at
            or after the due date.
        """
        if task.sla_due_at is None:
            return SLAStatus.ON_TIME
        if now >= task.sla_due_at:
            return SLAStatus.BREACHED
        if now >= task.sla_due_at - timedelta(hours=task.alert_window_hours):
            return SLAStatus.AT_RISK
        return SLAStatus.ON_TIME

    def freeze(self, task: TaskExecutionModel) -> SLAStatus:
        """Fix the SLA status of a completed task.

        Returns:
            ON_TIME if the task completed by its due date, else BREACHED.
        """
        if task.sla_due_at is None or task.completed_at is None or task.completed_at <= task.sla_due_at:
            task.sla_status = SLAStatus.ON_TIME
        else:
            task.sla_status = SLAStatus.BREACHED
        return task.sla_status

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Classify every open task and escalate the ones that crossed a threshold.

        Tasks are read in batches without locks. Each escalation commits in
        its own transaction; a failure is logged and the sweep moves on.

        Args:
            now: The time to classify against. Defaults to the clock.

        Returns:
            What the sweep did.
        """
        now = now or self._clock()
        result = SweepResult()
        after_id: UUID | None = None

        while True:
            async with self._session_maker() as session:
                batch = await TaskExecutionRepository(session=session).find_open_with_due_date(
                    after_id=after_id,
                    limit=self.batch_size,
                )
            if not batch:
                break
            after_id = batch[-1].id

            for task in batch:
                result.checked += 1
                target = self.classify(task, now)
                if target.severity <= task.sla_status.severity:
                    continue
                try:
                    async with UnitOfWork(self._session_maker, resource="task", resource_id=task.id) as uow:
                        escalated = await self._escalate(uow, task, target, now)
                except Exception:
                    logger.exception("SLA escalation of task %s failed", task.id)
                    result.failed.append(task.id)
                    continue
                if escalated:
                    result.escalated.append(task.id)

            if len(batch) < self.batch_size:
                break

        logger.info(
            "SLA sweep checked %d open tasks, escalated %d, failed %d",
            result.checked,
            len(result.escalated),
            len(result.failed),
        )
        return result

    async def refresh_task(self, task_id: UUID, now: datetime | None = None) -> SLAStatus:
        """Run the sweep logic for a single task.

        Args:
            task_id: The task to check.
            now: The time to classify against. Defaults to the clock.

        Returns:
            The task's persisted SLA status after the check.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        now = now or self._clock()
        async with UnitOfWork(self._session_maker, resource="task", resource_id=task_id) as uow:
            task = await uow.tasks.get_one_or_none(id=task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            if task.status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
                return task.sla_status
            target = self.classify(task, now)
            if target.severity > task.sla_status.severity and await self._escalate(uow, task, target, now):
                return target
            return task.sla_status

    async def _escalate(
        self,
        uow: UnitOfWork,
        task: TaskExecutionModel,
        target: SLAStatus,
        now: datetime,
    ) -> bool:
        """Compare-and-set the SLA status, then alert and audit if this call won."""
        observed = task.sla_status
        if not await uow.tasks.compare_and_set_sla_status(task.id, observed, target):
            logger.debug("Task %s SLA status already moved past %s", task.id, observed)
            return False

        workflow = await uow.workflows.get_one_or_none(id=task.workflow_id)
        due = task.sla_due_at
        hours_remaining = round((due - now).total_seconds() / 3600, 2) if due else 0.0
        if target == SLAStatus.BREACHED:
            title = f"SLA breached: {task.title}"
            message = f"Task '{task.title}' missed its {task.sla_hours:g}h SLA."
        else:
            title = f"SLA at risk: {task.title}"
            message = f"Task '{task.title}' is due in {hours_remaining:g}h."

        await self._notifications.notify_operators(
            uow,
            workflow,
            type=NotificationType.SLA_WARNING,
            priority=_ALERT_PRIORITY[target],
            title=title,
            message=message,
            action_ref=f"task:{task.id}",
            metadata={
                "task_id": str(task.id),
                "task_type": task.task_type,
                "workflow_id": str(task.workflow_id),
                "sla_status": target.value,
                "sla_hours": task.sla_hours,
                "sla_due_at": due.isoformat() if due else None,
                "hours_overdue": max(-hours_remaining, 0.0) if target == SLAStatus.BREACHED else None,
            },
        )
        self._audit.record(
            uow,
            actor=Actor.system(),
            action=AuditAction.UPDATE,
            event_type="sla.status_changed",
            resource_type="task",
            resource_id=task.id,
            workflow_id=task.workflow_id,
            event_data={
                "previous_status": observed.value,
                "sla_status": target.value,
                "sla_due_at": due.isoformat() if due else None,
                "hours_remaining": hours_remaining,
            },
        )
        logger.info("Task %s SLA status %s -> %s", task.id, observed, target)
        return True

    async def sla_report(self, now: datetime | None = None, *, only_at_risk: bool = False) -> list[SLAReportRow]:
        """Deadline view of every open task with a due date.

        Args:
            now: The time to report against. Defaults to the clock.
            only_at_risk: Only include AT_RISK and BREACHED tasks.

        Returns:
            Rows ordered by due date.
        """
        now = now or self._clock()
        rows: list[SLAReportRow] = []
        after_id: UUID | None = None
        while True:
            async with self._session_maker() as session:
                batch = await TaskExecutionRepository(session=session).find_open_with_due_date(
                    after_id=after_id,
                    limit=self.batch_size,
                )
            for task in batch:
                current = self.classify(task, now)
                if current.severity < task.sla_status.severity:
                    current = task.sla_status
                if only_at_risk and current == SLAStatus.ON_TIME:
                    continue
                rows.append(self._report_row(task, current, now))
            if len(batch) < self.batch_size:
                break
            after_id = batch[-1].id

        rows.sort(key=lambda row: row.sla_due_at)
        return rows

    @staticmethod
    def _report_row(task: TaskExecutionModel, current: SLAStatus, now: datetime) -> SLAReportRow:
        due = task.sla_due_at
        started = task.started_at or now
        window = (due - started).total_seconds()
        elapsed = (now - started).total_seconds()
        percent = round(elapsed / window * 100, 1) if window > 0 else 100.0
        return SLAReportRow(
            task_id=task.id,
            workflow_id=task.workflow_id,
            task_type=task.task_type,
            title=task.title,
            status=task.status,
            sla_status=current,
            sla_due_at=due,
            hours_remaining=round((due - now).total_seconds() / 3600, 2),
            percent_elapsed=percent,
        )
