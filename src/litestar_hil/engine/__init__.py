"""Task execution engine.

This module provides the state engine that drives task executions, together
with the SLA tracker, interrupt manager, notification dispatcher, audit
recorder and resume-signal outbox that participate in its transactions.
"""

from __future__ import annotations

from litestar_hil.engine.audit import AuditRecorder
from litestar_hil.engine.graph import DependencyGraph
from litestar_hil.engine.interrupts import InterruptManager
from litestar_hil.engine.notifications import ListenerHub, NotificationDispatcher
from litestar_hil.engine.registry import TemplateRegistry
from litestar_hil.engine.signals import DeliveryResult, ResumeSignalDispatcher, enqueue_resume_signal
from litestar_hil.engine.sla import SLAReportRow, SLATracker, SweepResult
from litestar_hil.engine.state_machine import TaskStateEngine, WorkflowView
from litestar_hil.engine.workers import PeriodicWorker, ResumeSignalWorker, SLASweeper

__all__ = [
    "AuditRecorder",
    "DeliveryResult",
    "DependencyGraph",
    "InterruptManager",
    "ListenerHub",
    "NotificationDispatcher",
    "PeriodicWorker",
    "ResumeSignalDispatcher",
    "ResumeSignalWorker",
    "SLAReportRow",
    "SLASweeper",
    "SLATracker",
    "SweepResult",
    "TaskStateEngine",
    "TemplateRegistry",
    "WorkflowView",
    "enqueue_resume_signal",
]
