"""Task transition graph and workflow status derivation.

The transition graph is the only source of truth for which status changes a
task may make, and :func:`derive_workflow_status` is the only place the
aggregate status of a workflow is computed. Both are pure.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from litestar_hil.core.types import Actor, InterruptType, TaskStatus, WorkflowStatus

__all__ = [
    "HIL_REQUESTED",
    "LEGAL_TRANSITIONS",
    "LOW_CONFIDENCE",
    "OPEN_STATUSES",
    "RETRIES_EXHAUSTED",
    "RESUME_SIGNAL_FAILED",
    "WORKFLOW_CANCELLED",
    "TaskState",
    "TransitionRequest",
    "derive_workflow_status",
    "is_legal",
    "is_terminally_failed",
]


LEGAL_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.NOT_STARTED: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.INTERRUPT, TaskStatus.FAILED}),
    TaskStatus.INTERRUPT: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED}),
    TaskStatus.FAILED: frozenset({TaskStatus.NOT_STARTED}),
    TaskStatus.COMPLETED: frozenset(),
}
"""Outgoing edges per status. ``FAILED -> NOT_STARTED`` is the retry edge."""

OPEN_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS, TaskStatus.INTERRUPT}
)
"""Statuses a workflow cancellation moves to FAILED."""

# reasons recorded on interrupts and failed tasks
LOW_CONFIDENCE = "low_confidence"
RETRIES_EXHAUSTED = "retries_exhausted"
HIL_REQUESTED = "hil_requested"
WORKFLOW_CANCELLED = "workflow_cancelled"
RESUME_SIGNAL_FAILED = "resume_signal_failed"


class TaskState(Protocol):
    """The task fields status derivation depends on."""

    status: TaskStatus
    retry_count: int
    max_retries: int
    retryable: bool


def is_legal(current: TaskStatus, target: TaskStatus) -> bool:
    """Check whether ``current -> target`` is an edge of the transition graph.

    Args:
        current: The task's status.
        target: The requested status.

    Returns:
        True if the edge exists.
    """
    return target in LEGAL_TRANSITIONS[current]


def is_terminally_failed(task: TaskState) -> bool:
    """Check whether a task failed with no way back without HIL escalation.

    Args:
        task: The task to inspect.

    Returns:
        True if the task is FAILED and either out of retries or not retryable.
    """
    return task.status == TaskStatus.FAILED and (not task.retryable or task.retry_count >= task.max_retries)


def derive_workflow_status(tasks: Iterable[TaskState]) -> WorkflowStatus:
    """Compute the aggregate status of a workflow from its tasks.

    COMPLETED if every task is completed, BLOCKED if any task is interrupted
    or terminally failed, IN_PROGRESS otherwise.

    Args:
        tasks: All task executions of the workflow.

    Returns:
        The derived workflow status.

    Example:
        >>> derive_workflow_status([done, interrupted])
        <WorkflowStatus.BLOCKED: 'BLOCKED'>
    """
    all_completed = True
    for task in tasks:
        if task.status == TaskStatus.INTERRUPT or is_terminally_failed(task):
            return WorkflowStatus.BLOCKED
        if task.status != TaskStatus.COMPLETED:
            all_completed = False
    return WorkflowStatus.COMPLETED if all_completed else WorkflowStatus.IN_PROGRESS


@dataclass
class TransitionRequest:
    """Details accompanying a status change.

    Attributes:
        actor: Who requested the change.
        output_data: Result reported by the executor.
        error_message: Failure reason for FAILED.
        reason: Why the task needs a human, for INTERRUPT.
        confidence: Executor confidence in a completion, between 0 and 1.
        interrupt_type: Optional classification of an interrupt.
        expected_version: Task version the caller last saw.
    """

    actor: Actor = field(default_factory=Actor.system)
    output_data: dict[str, Any] | None = None
    error_message: str | None = None
    reason: str | None = None
    confidence: float | None = None
    interrupt_type: InterruptType | None = None
    expected_version: int | None = None

    def __post_init__(self) -> None:
        if self.confidence is not None and not 0 <= self.confidence <= 1:
            msg = "confidence must be between 0 and 1"
            raise ValueError(msg)
