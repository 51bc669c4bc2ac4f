"""Human-in-the-loop interrupts.

An interrupt is the operator's work item for a task that cannot proceed on its
own. At most one interrupt per task is open at a time. Resolving it moves the
task on and queues a resume signal for the orchestrator in the same
transaction.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from litestar_hil.core.transitions import TransitionRequest
from litestar_hil.core.types import (
    Actor,
    AuditAction,
    InterruptOutcome,
    InterruptStatus,
    NotificationType,
    Priority,
    TaskStatus,
)
from litestar_hil.db.models import InterruptModel
from litestar_hil.db.repositories import InterruptRepository
from litestar_hil.engine.signals import enqueue_resume_signal
from litestar_hil.exceptions import (
    InterruptAlreadyResolvedError,
    InterruptNotFoundError,
    InvalidTransitionError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from litestar_hil.core.types import InterruptType
    from litestar_hil.db.models import TaskExecutionModel, WorkflowInstanceModel
    from litestar_hil.db.uow import UnitOfWork
    from litestar_hil.engine.state_machine import TaskStateEngine

__all__ = ["InterruptManager"]

logger = logging.getLogger(__name__)

# outcomes an operator may choose, keyed by the task status they apply to
_ALLOWED_OUTCOMES: dict[TaskStatus, frozenset[InterruptOutcome]] = {
    TaskStatus.INTERRUPT: frozenset({InterruptOutcome.RESUME, InterruptOutcome.COMPLETE}),
    TaskStatus.FAILED: frozenset({InterruptOutcome.RETRY, InterruptOutcome.DISMISS}),
}


class InterruptManager:
    """Opens, resolves and lists interrupts.

    Interrupts are opened from inside the engine's transitions and always
    share the unit of work of the change that caused them.
    """

    def __init__(self, engine: TaskStateEngine) -> None:
        self._engine = engine

    async def open_for_task(
        self,
        uow: UnitOfWork,
        workflow: WorkflowInstanceModel,
        task: TaskExecutionModel,
        *,
        reason: str,
        priority: Priority = Priority.HIGH,
        interrupt_type: InterruptType | None = None,
        actor: Actor | None = None,
        retries_exhausted: bool = False,
    ) -> InterruptModel:
        """Open an interrupt for a task unless one is already open.

        Notifies the workflow's operators and records the opening.

        Args:
            uow: The unit of work of the change causing the interrupt.
            workflow: The task's workflow.
            task: The task that needs a human.
            reason: Why human help is needed.
            priority: Queue priority.
            interrupt_type: Optional classification.
            actor: Who caused the interrupt.
            retries_exhausted: Whether the task failed with no retries left.

        Returns:
            The open interrupt, new or existing.
        """
        existing = await uow.interrupts.find_open_for_task(task.id)
        if existing is not None:
            logger.debug("Task %s already has open interrupt %s", task.id, existing.id)
            return existing

        interrupt = InterruptModel(
            task_id=task.id,
            workflow_id=workflow.id,
            reason=reason,
            interrupt_type=interrupt_type,
            priority=priority,
            status=InterruptStatus.OPEN,
            created_at=self._engine.clock(),
        )
        uow.session.add(interrupt)
        await uow.flush()

        await self._engine.notifications.notify_operators(
            uow,
            workflow,
            type=NotificationType.TASK_INTERRUPT,
            priority=Priority.URGENT if retries_exhausted else priority,
            title=f"Needs attention: {task.title}",
            message=_describe(task, reason),
            action_ref=f"interrupt:{interrupt.id}",
            metadata={
                "task_id": str(task.id),
                "task_type": task.task_type,
                "workflow_id": str(workflow.id),
                "interrupt_id": str(interrupt.id),
                "reason": reason,
                "interrupt_type": interrupt_type.value if interrupt_type else None,
                "retries_exhausted": retries_exhausted or None,
            },
        )
        self._engine.audit.record(
            uow,
            actor=actor or Actor.system(),
            action=AuditAction.CREATE,
            event_type="interrupt.opened",
            resource_type="interrupt",
            resource_id=interrupt.id,
            workflow_id=workflow.id,
            event_data={
                "task_id": str(task.id),
                "task_type": task.task_type,
                "reason": reason,
                "priority": interrupt.priority.value,
                "interrupt_type": interrupt_type.value if interrupt_type else None,
            },
        )
        logger.info("Opened interrupt %s for task %s (%s)", interrupt.id, task.id, reason)
        return interrupt

    def close(
        self,
        interrupt: InterruptModel,
        outcome: InterruptOutcome,
        *,
        actor: Actor,
        notes: str | None = None,
        now: datetime,
    ) -> None:
        """Mark an interrupt resolved without touching its task."""
        interrupt.status = InterruptStatus.RESOLVED
        interrupt.resolved_at = now
        interrupt.resolved_by = actor.id or actor.type.value
        interrupt.resolution_outcome = outcome
        interrupt.resolution_notes = notes

    async def resolve(
        self,
        interrupt_id: UUID,
        outcome: InterruptOutcome | str,
        *,
        actor: Actor,
        notes: str | None = None,
        output_data: dict[str, Any] | None = None,
    ) -> InterruptModel:
        """Resolve an open interrupt and move its task on.

        ``RESUME`` hands an interrupted task back to its executor and
        ``COMPLETE`` completes it. For a task that failed with no retries left,
        ``RETRY`` grants one more attempt and ``DISMISS`` leaves it failed.
        Every outcome queues a resume signal so the orchestrator learns the
        decision.

        Args:
            interrupt_id: The interrupt to resolve.
            outcome: The operator's decision.
            actor: The resolving operator.
            notes: Operator notes.
            output_data: Result of a manual completion.

        Returns:
            The resolved interrupt.

        Raises:
            InterruptNotFoundError: If the interrupt does not exist.
            InterruptAlreadyResolvedError: If it is already resolved.
            InvalidTransitionError: If the outcome does not fit the task's status.
            ConflictError: If the task changed concurrently.
        """
        outcome = InterruptOutcome(outcome)
        engine = self._engine
        async with engine.unit_of_work("interrupt", interrupt_id) as uow:
            interrupt = await uow.interrupts.get_one_or_none(id=interrupt_id)
            if interrupt is None:
                raise InterruptNotFoundError(interrupt_id)
            if interrupt.status != InterruptStatus.OPEN:
                raise InterruptAlreadyResolvedError(interrupt_id)

            task, workflow = await engine.load_task_and_workflow(uow, interrupt.task_id)
            if outcome not in _ALLOWED_OUTCOMES.get(task.status, frozenset()):
                raise InvalidTransitionError(
                    task.id,
                    task.status,
                    _target_for(outcome),
                    reason=f"outcome {outcome} does not apply to a {task.status} task",
                )
            if outcome == InterruptOutcome.RETRY and not task.retryable:
                raise InvalidTransitionError(
                    task.id, task.status, TaskStatus.NOT_STARTED, reason="task is not retryable"
                )

            now = engine.clock()
            self.close(interrupt, outcome, actor=actor, notes=notes, now=now)

            if outcome == InterruptOutcome.RETRY:
                engine.reset_for_retry(task, extra_attempt=True)
                engine.touch_workflow(workflow)
            elif outcome != InterruptOutcome.DISMISS:
                await engine.apply_transition(
                    uow,
                    workflow,
                    task,
                    _target_for(outcome),
                    TransitionRequest(actor=actor, output_data=output_data),
                )

            enqueue_resume_signal(uow, task, interrupt, outcome, now=now)
            if engine.on_signal_enqueued is not None:
                uow.after_commit(engine.on_signal_enqueued)

            engine.audit.record(
                uow,
                actor=actor,
                action=AuditAction.REJECT if outcome == InterruptOutcome.DISMISS else AuditAction.APPROVE,
                event_type="interrupt.resolved",
                resource_type="interrupt",
                resource_id=interrupt.id,
                workflow_id=workflow.id,
                event_data={
                    "task_id": str(task.id),
                    "task_type": task.task_type,
                    "outcome": outcome.value,
                    "notes": notes,
                    "task_status": task.status.value,
                },
            )

        logger.info("Interrupt %s resolved with %s by %s", interrupt_id, outcome, interrupt.resolved_by)
        return interrupt

    async def get(self, interrupt_id: UUID) -> InterruptModel:
        """Get an interrupt.

        Raises:
            InterruptNotFoundError: If the interrupt does not exist.
        """
        async with self._engine.session_maker() as session:
            interrupt = await InterruptRepository(session=session).get_one_or_none(id=interrupt_id)
        if interrupt is None:
            raise InterruptNotFoundError(interrupt_id)
        return interrupt

    async def list_open(
        self,
        *,
        workflow_id: UUID | None = None,
        priority: Priority | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[Sequence[InterruptModel], int]:
        """List open interrupts, oldest first."""
        async with self._engine.session_maker() as session:
            return await InterruptRepository(session=session).find_open(
                workflow_id=workflow_id,
                priority=priority,
                limit=limit,
                offset=offset,
            )


def _target_for(outcome: InterruptOutcome) -> TaskStatus:
    return {
        InterruptOutcome.RESUME: TaskStatus.IN_PROGRESS,
        InterruptOutcome.COMPLETE: TaskStatus.COMPLETED,
        InterruptOutcome.RETRY: TaskStatus.NOT_STARTED,
        InterruptOutcome.DISMISS: TaskStatus.FAILED,
    }[outcome]


def _describe(task: TaskExecutionModel, reason: str) -> str:
    if task.status == TaskStatus.FAILED:
        detail = f": {task.error_message}" if task.error_message else ""
        return f"Task '{task.title}' failed after {task.retry_count} retries{detail}"
    return f"Task '{task.title}' is waiting for an operator ({reason})."
