"""Web layer for litestar-hil.

This module provides the REST API controllers, DTOs and exception handling
the :class:`~litestar_hil.plugin.HilPlugin` registers when ``enable_api`` is
set (the default).

Example:
    Mount the API under a custom prefix with an authentication guard::

        from litestar import Litestar
        from litestar_hil import HilPlugin, HilPluginConfig

        app = Litestar(
            plugins=[
                HilPlugin(
                    config=HilPluginConfig(
                        session_maker=session_maker,
                        api_path_prefix="/api/v1/hil",
                        api_guards=[require_auth_guard],
                    )
                ),
            ],
        )
"""

from __future__ import annotations

from litestar_hil.web.controllers import (
    AuditEventController,
    InterruptController,
    NotificationController,
    SLAController,
    TaskController,
    TemplateController,
    WorkflowController,
)
from litestar_hil.web.exceptions import exception_handlers, hil_error_handler

__all__ = [
    "CONTROLLERS",
    "AuditEventController",
    "InterruptController",
    "NotificationController",
    "SLAController",
    "TaskController",
    "TemplateController",
    "WorkflowController",
    "exception_handlers",
    "hil_error_handler",
]

CONTROLLERS = [
    WorkflowController,
    TaskController,
    InterruptController,
    NotificationController,
    AuditEventController,
    SLAController,
    TemplateController,
]
