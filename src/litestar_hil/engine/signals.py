"""Outbox of resume signals for the orchestration engine.

Resolving an interrupt writes a resume signal in the same transaction. The
dispatcher posts due signals to the orchestrator afterwards, retrying with
exponential backoff; the orchestrator deduplicates by the signal's
``Idempotency-Key`` header, so delivery is at least once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx

from litestar_hil.core.transitions import RESUME_SIGNAL_FAILED, TransitionRequest
from litestar_hil.core.types import (
    Actor,
    AuditAction,
    NotificationType,
    Priority,
    SignalStatus,
    TaskStatus,
)
from litestar_hil.db.models import ResumeSignalModel
from litestar_hil.db.repositories import ResumeSignalRepository

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from litestar_hil.config import ResumeSignalConfig
    from litestar_hil.core.types import InterruptOutcome
    from litestar_hil.db.models import InterruptModel, TaskExecutionModel
    from litestar_hil.db.uow import UnitOfWork
    from litestar_hil.engine.state_machine import TaskStateEngine

__all__ = ["DeliveryResult", "ResumeSignalDispatcher", "enqueue_resume_signal"]

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


def enqueue_resume_signal(
    uow: UnitOfWork,
    task: TaskExecutionModel,
    interrupt: InterruptModel,
    outcome: InterruptOutcome,
    *,
    now: datetime,
) -> ResumeSignalModel:
    """Add a resume signal for an interrupt resolution to the unit of work.

    Args:
        uow: The unit of work resolving the interrupt.
        task: The task, already in its post-resolution status.
        interrupt: The resolved interrupt.
        outcome: The resolution outcome.
        now: Resolution time; the signal is due immediately.

    Returns:
        The pending signal.
    """
    signal = ResumeSignalModel(
        task_id=task.id,
        interrupt_id=interrupt.id,
        workflow_id=task.workflow_id,
        outcome=outcome,
        payload={
            "task_id": str(task.id),
            "workflow_id": str(task.workflow_id),
            "task_type": task.task_type,
            "interrupt_id": str(interrupt.id),
            "outcome": outcome.value,
            "task_status": task.status.value,
            "resolved_by": interrupt.resolved_by,
            "resolution_notes": interrupt.resolution_notes,
        },
        status=SignalStatus.PENDING,
        attempts=0,
        next_attempt_at=now,
        created_at=now,
    )
    uow.session.add(signal)
    return signal


@dataclass
class DeliveryResult:
    """Outcome of one delivery round.

    Attributes:
        delivered: Signals the orchestrator acknowledged.
        retrying: Signals that failed and were rescheduled.
        failed: Signals that ran out of attempts and were escalated.
    """

    delivered: list[UUID] = field(default_factory=list)
    retrying: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


class ResumeSignalDispatcher:
    """Posts pending resume signals to the orchestrator."""

    def __init__(
        self,
        engine: TaskStateEngine,
        config: ResumeSignalConfig,
        *,
        client: httpx.AsyncClient | None = None,
        batch_size: int = 100,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            engine: The engine escalations are applied through.
            config: Webhook settings.
            client: HTTP client to post with. A client is created per round when omitted.
            batch_size: Signals read per round.
        """
        self._engine = engine
        self.config = config
        self._client = client
        self.batch_size = batch_size

    async def deliver_pending(self, now: datetime | None = None) -> DeliveryResult:
        """Attempt every signal whose next attempt is due.

        Each signal's outcome is committed in its own transaction, so one
        failing signal never holds back the others.

        Args:
            now: The time to compare due dates against. Defaults to the engine clock.

        Returns:
            What the round did.
        """
        result = DeliveryResult()
        if not self.config.url:
            logger.debug("No resume signal URL configured, leaving signals pending")
            return result

        now = now or self._engine.clock()
        async with self._engine.session_maker() as session:
            due = list(await ResumeSignalRepository(session=session).find_due(now, limit=self.batch_size))
        if not due:
            return result

        if self._client is not None:
            await self._deliver_all(self._client, due, now, result)
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                await self._deliver_all(client, due, now, result)

        logger.info(
            "Resume signals: %d delivered, %d rescheduled, %d failed",
            len(result.delivered),
            len(result.retrying),
            len(result.failed),
        )
        return result

    async def _deliver_all(
        self,
        client: httpx.AsyncClient,
        signals: list[ResumeSignalModel],
        now: datetime,
        result: DeliveryResult,
    ) -> None:
        for signal in signals:
            error = await self._post(client, signal)
            try:
                await self._record_attempt(signal.id, error, now, result)
            except Exception:
                logger.exception("Recording delivery of resume signal %s failed", signal.id)

    async def _post(self, client: httpx.AsyncClient, signal: ResumeSignalModel) -> str | None:
        """Post one signal.

        Returns:
            None on success, else a description of the error.
        """
        headers = {**self.config.headers, IDEMPOTENCY_HEADER: signal.idempotency_key}
        try:
            response = await client.post(
                self.config.url,
                json=signal.payload,
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            return f"HTTP {exc.response.status_code}"
        except httpx.HTTPError as exc:
            return f"{type(exc).__name__}: {exc}"
        return None

    async def _record_attempt(
        self,
        signal_id: UUID,
        error: str | None,
        now: datetime,
        result: DeliveryResult,
    ) -> None:
        async with self._engine.unit_of_work("resume_signal", signal_id) as uow:
            signal = await uow.signals.get_one_or_none(id=signal_id)
            if signal is None or signal.status != SignalStatus.PENDING:
                return
            signal.attempts += 1

            if error is None:
                signal.status = SignalStatus.DELIVERED
                signal.delivered_at = now
                signal.last_error = None
                result.delivered.append(signal.id)
                logger.debug("Delivered resume signal %s", signal.idempotency_key)
                return

            signal.last_error = error
            delay = self.config.delay_for_attempt(signal.attempts)
            if delay is not None:
                signal.next_attempt_at = now + timedelta(seconds=delay)
                result.retrying.append(signal.id)
                logger.warning(
                    "Resume signal %s attempt %d failed (%s), retrying in %.1fs",
                    signal.idempotency_key,
                    signal.attempts,
                    error,
                    delay,
                )
                return

            signal.status = SignalStatus.FAILED
            result.failed.append(signal.id)
            await self._escalate(uow, signal)

    async def _escalate(self, uow: UnitOfWork, signal: ResumeSignalModel) -> None:
        """Surface an undeliverable signal to the operators."""
        engine = self._engine
        task, workflow = await engine.load_task_and_workflow(uow, signal.task_id)
        logger.warning(
            "Resume signal %s failed after %d attempts (%s), escalating task %s",
            signal.idempotency_key,
            signal.attempts,
            signal.last_error,
            task.id,
        )

        if task.status == TaskStatus.IN_PROGRESS:
            await engine.apply_transition(
                uow,
                workflow,
                task,
                TaskStatus.INTERRUPT,
                TransitionRequest(actor=Actor.system(), reason=RESUME_SIGNAL_FAILED),
            )
        elif task.status == TaskStatus.FAILED:
            # a dismissed task: the operator queue is the only place left to see it
            await engine.interrupts.open_for_task(
                uow,
                workflow,
                task,
                reason=RESUME_SIGNAL_FAILED,
                priority=Priority.URGENT,
                actor=Actor.system(),
            )
        else:
            await engine.notifications.notify_operators(
                uow,
                workflow,
                type=NotificationType.AGENT_FAILURE,
                priority=Priority.URGENT,
                title=f"Orchestrator unreachable: {task.title}",
                message=f"The resume signal for task '{task.title}' could not be delivered: {signal.last_error}",
                action_ref=f"task:{task.id}",
                metadata={
                    "task_id": str(task.id),
                    "task_type": task.task_type,
                    "workflow_id": str(workflow.id),
                    "error_message": signal.last_error,
                    "retry_count": task.retry_count,
                    "signal_id": str(signal.id),
                },
            )

        engine.audit.record(
            uow,
            actor=Actor.system(),
            action=AuditAction.EXECUTE,
            event_type="signal.failed",
            resource_type="resume_signal",
            resource_id=signal.id,
            workflow_id=workflow.id,
            event_data={
                "task_id": str(task.id),
                "task_type": task.task_type,
                "interrupt_id": str(signal.interrupt_id),
                "attempts": signal.attempts,
                "last_error": signal.last_error,
            },
        )
