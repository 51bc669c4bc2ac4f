"""Database persistence layer for litestar-hil.

This module provides the SQLAlchemy models, repositories and the unit of work
that make up the execution log store.
"""

from __future__ import annotations

from litestar_hil.db.models import (
    AuditEventModel,
    InterruptModel,
    NotificationModel,
    ResumeSignalModel,
    TaskExecutionModel,
    WorkflowInstanceModel,
)
from litestar_hil.db.repositories import (
    AuditEventRepository,
    InterruptRepository,
    NotificationRepository,
    ResumeSignalRepository,
    TaskExecutionRepository,
    WorkflowInstanceRepository,
)
from litestar_hil.db.uow import UnitOfWork

__all__ = [
    "AuditEventModel",
    "AuditEventRepository",
    "InterruptModel",
    "InterruptRepository",
    "NotificationModel",
    "NotificationRepository",
    "ResumeSignalModel",
    "ResumeSignalRepository",
    "TaskExecutionModel",
    "TaskExecutionRepository",
    "UnitOfWork",
    "WorkflowInstanceModel",
    "WorkflowInstanceRepository",
]
