"""Litestar HIL - Task execution state and SLA engine for Litestar.

This package tracks the tasks of human-in-the-loop business workflows for an
external orchestration engine: which tasks exist, what state each is in,
whether each is on time, and which ones need a human operator.

Key Features:
    - Versioned workflow templates expanded into task execution records
    - Task status state machine with retries and dependency activation
    - SLA due dates with business hours and a periodic escalation sweep
    - Interrupts for human review, with resume webhooks to the orchestrator
    - Operator notifications with a live server-sent-events stream
    - Append-only audit log of every change

Example:
    >>> from litestar import Litestar
    >>> from litestar_hil import HilPlugin, HilPluginConfig
    >>> from litestar_hil.templates import BUILTIN_TEMPLATES
    >>>
    >>> app = Litestar(
    ...     plugins=[HilPlugin(HilPluginConfig(session_maker=session_maker, templates=BUILTIN_TEMPLATES))]
    ... )
"""

from __future__ import annotations

from litestar_hil.__metadata__ import __project__, __version__
from litestar_hil.config import EngineConfig, ResumeSignalConfig, SweepConfig
from litestar_hil.core.business_hours import BusinessHours
from litestar_hil.core.definition import TaskBlueprint, WorkflowTemplate
from litestar_hil.core.transitions import TransitionRequest
from litestar_hil.core.types import Actor, InterruptOutcome, TaskStatus, WorkflowStatus
from litestar_hil.engine.registry import TemplateRegistry
from litestar_hil.engine.state_machine import TaskStateEngine
from litestar_hil.exceptions import (
    ConflictError,
    DeliveryFailure,
    DependencyUnsatisfiedError,
    HilError,
    InterruptAlreadyResolvedError,
    InterruptNotFoundError,
    InvalidTransitionError,
    MetadataValidationError,
    NotificationNotFoundError,
    RetryExhaustedError,
    TaskNotFoundError,
    TemplateNotFoundError,
    TemplateValidationError,
    WorkflowAlreadyActivatedError,
    WorkflowNotFoundError,
)
from litestar_hil.plugin import HilPlugin, HilPluginConfig

__all__ = (
    "Actor",
    "BusinessHours",
    "ConflictError",
    "DeliveryFailure",
    "DependencyUnsatisfiedError",
    "EngineConfig",
    "HilError",
    "HilPlugin",
    "HilPluginConfig",
    "InterruptAlreadyResolvedError",
    "InterruptNotFoundError",
    "InterruptOutcome",
    "InvalidTransitionError",
    "MetadataValidationError",
    "NotificationNotFoundError",
    "ResumeSignalConfig",
    "RetryExhaustedError",
    "SweepConfig",
    "TaskBlueprint",
    "TaskNotFoundError",
    "TaskStateEngine",
    "TaskStatus",
    "TemplateNotFoundError",
    "TemplateRegistry",
    "TemplateValidationError",
    "TransitionRequest",
    "WorkflowAlreadyActivatedError",
    "WorkflowNotFoundError",
    "WorkflowStatus",
    "WorkflowTemplate",
    "__project__",
    "__version__",
)
