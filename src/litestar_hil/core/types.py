"""Core type definitions for litestar-hil.

This module defines the enums shared by the engine, the persistence layer and
the web API. Enum values are the wire and database representation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeAlias

__all__ = [
    "Actor",
    "ActorType",
    "AuditAction",
    "ExecutorKind",
    "InterruptOutcome",
    "InterruptStatus",
    "InterruptType",
    "Metadata",
    "NotificationType",
    "Priority",
    "SLAStatus",
    "SignalStatus",
    "TaskStatus",
    "WorkflowStatus",
    "WorkflowType",
]


class TaskStatus(StrEnum):
    """Execution status of a task.

    Attributes:
        NOT_STARTED: Task exists but its executor has not begun.
        IN_PROGRESS: Executor is working on the task.
        INTERRUPT: Task is waiting on a human operator.
        COMPLETED: Task finished successfully.
        FAILED: Task hit an unrecoverable error.
    """

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    INTERRUPT = "INTERRUPT"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class WorkflowStatus(StrEnum):
    """Aggregate status of a workflow, derived from its tasks.

    Attributes:
        IN_PROGRESS: Work remains and nothing is blocked.
        BLOCKED: A task is interrupted or terminally failed.
        COMPLETED: Every task is completed.
    """

    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    COMPLETED = "COMPLETED"


class WorkflowType(StrEnum):
    """Business workflow types handled by the platform."""

    MUNI_LIEN_SEARCH = "MUNI_LIEN_SEARCH"
    HOA_ACQUISITION = "HOA_ACQUISITION"
    PAYOFF_REQUEST = "PAYOFF_REQUEST"


class ExecutorKind(StrEnum):
    """Who performs a task.

    Attributes:
        AI: An automated agent.
        HUMAN: A human operator.
    """

    AI = "AI"
    HUMAN = "HUMAN"


class SLAStatus(StrEnum):
    """Deadline risk classification of a task.

    Members are declared in order of severity.
    """

    ON_TIME = "ON_TIME"
    AT_RISK = "AT_RISK"
    BREACHED = "BREACHED"

    @property
    def severity(self) -> int:
        """Rank used to keep open-task SLA status monotonic."""
        return _SLA_SEVERITY[self]


_SLA_SEVERITY = {SLAStatus.ON_TIME: 0, SLAStatus.AT_RISK: 1, SLAStatus.BREACHED: 2}


class InterruptStatus(StrEnum):
    """Lifecycle of an interrupt."""

    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class InterruptType(StrEnum):
    """Optional classification of why human help is needed."""

    MISSING_DOCUMENT = "MISSING_DOCUMENT"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    CLIENT_CLARIFICATION = "CLIENT_CLARIFICATION"
    MANUAL_VERIFICATION = "MANUAL_VERIFICATION"


class InterruptOutcome(StrEnum):
    """How an operator resolved an interrupt.

    Attributes:
        RESUME: Hand the task back to automated execution.
        COMPLETE: The operator finished the task manually.
        RETRY: Grant a failed task one more attempt.
        DISMISS: Acknowledge a failed task and leave it failed.
    """

    RESUME = "RESUME"
    COMPLETE = "COMPLETE"
    RETRY = "RETRY"
    DISMISS = "DISMISS"


class Priority(StrEnum):
    """Priority of notifications and interrupts."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class NotificationType(StrEnum):
    """Kinds of operator notifications."""

    WORKFLOW_UPDATE = "WORKFLOW_UPDATE"
    TASK_INTERRUPT = "TASK_INTERRUPT"
    HIL_MENTION = "HIL_MENTION"
    CLIENT_MESSAGE_RECEIVED = "CLIENT_MESSAGE_RECEIVED"
    COUNTERPARTY_MESSAGE_RECEIVED = "COUNTERPARTY_MESSAGE_RECEIVED"
    SLA_WARNING = "SLA_WARNING"
    AGENT_FAILURE = "AGENT_FAILURE"


class ActorType(StrEnum):
    """Who caused an audited change."""

    HUMAN = "human"
    AGENT = "agent"
    SYSTEM = "system"


class AuditAction(StrEnum):
    """Verb recorded on an audit event."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXECUTE = "execute"
    APPROVE = "approve"
    REJECT = "reject"


class SignalStatus(StrEnum):
    """Delivery state of an outbound resume signal."""

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


Metadata: TypeAlias = dict[str, Any]
"""Type alias for validated event metadata."""


@dataclass(frozen=True)
class Actor:
    """Who requested a change, as recorded on audit events.

    Attributes:
        type: Whether a human, an agent or the system acted.
        id: Identifier of the actor, e.g. a user or agent ID.
        name: Display name of the actor.
    """

    type: ActorType = ActorType.SYSTEM
    id: str | None = None
    name: str | None = None

    @classmethod
    def system(cls) -> Actor:
        return cls(type=ActorType.SYSTEM, id="system", name="system")

    @classmethod
    def agent(cls, agent_id: str, name: str | None = None) -> Actor:
        return cls(type=ActorType.AGENT, id=agent_id, name=name)

    @classmethod
    def human(cls, user_id: str, name: str | None = None) -> Actor:
        return cls(type=ActorType.HUMAN, id=user_id, name=name)
