"""Core domain module for litestar-hil.

This module exports the pure building blocks of the engine: enums, templates,
the transition graph, business-hours arithmetic, metadata whitelists and live
events. Nothing here touches the database.
"""

from __future__ import annotations

from litestar_hil.core.business_hours import BusinessHours, add_sla_hours
from litestar_hil.core.definition import TaskBlueprint, WorkflowTemplate
from litestar_hil.core.events import LiveEvent, NotificationCreated, NotificationsRead
from litestar_hil.core.metadata import METADATA_SCHEMAS, validate_metadata
from litestar_hil.core.transitions import (
    LEGAL_TRANSITIONS,
    OPEN_STATUSES,
    TransitionRequest,
    derive_workflow_status,
    is_legal,
    is_terminally_failed,
)
from litestar_hil.core.types import (
    Actor,
    ActorType,
    AuditAction,
    ExecutorKind,
    InterruptOutcome,
    InterruptStatus,
    InterruptType,
    Metadata,
    NotificationType,
    Priority,
    SignalStatus,
    SLAStatus,
    TaskStatus,
    WorkflowStatus,
    WorkflowType,
)

__all__ = [
    "LEGAL_TRANSITIONS",
    "METADATA_SCHEMAS",
    "OPEN_STATUSES",
    "Actor",
    "ActorType",
    "AuditAction",
    "BusinessHours",
    "ExecutorKind",
    "InterruptOutcome",
    "InterruptStatus",
    "InterruptType",
    "LiveEvent",
    "Metadata",
    "NotificationCreated",
    "NotificationType",
    "NotificationsRead",
    "Priority",
    "SLAStatus",
    "SignalStatus",
    "TaskBlueprint",
    "TaskStatus",
    "TransitionRequest",
    "WorkflowStatus",
    "WorkflowTemplate",
    "WorkflowType",
    "add_sla_hours",
    "derive_workflow_status",
    "is_legal",
    "is_terminally_failed",
    "validate_metadata",
]
