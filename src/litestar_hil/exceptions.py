"""Exception hierarchy for litestar-hil.

Every error the engine raises carries a stable ``code`` and the HTTP status the
web layer reports it with, so callers always receive a structured error rather
than bare text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from uuid import UUID

__all__ = (
    "ConflictError",
    "DeliveryFailure",
    "DependencyUnsatisfiedError",
    "HilError",
    "InterruptAlreadyResolvedError",
    "InterruptNotFoundError",
    "InvalidTransitionError",
    "MetadataValidationError",
    "NotificationNotFoundError",
    "RetryExhaustedError",
    "TaskNotFoundError",
    "TemplateNotFoundError",
    "TemplateValidationError",
    "WorkflowAlreadyActivatedError",
    "WorkflowNotFoundError",
)


class HilError(Exception):
    """Base exception for all litestar-hil errors.

    All exceptions raised by litestar-hil inherit from this class. This allows
    users to catch all engine errors with a single except clause, and lets the
    web layer render any of them through one exception handler.

    Attributes:
        code: Stable, machine readable error code.
        status_code: HTTP status the error is reported with.
        details: Optional structured context for the error response.
    """

    code: ClassVar[str] = "HIL_ERROR"
    status_code: ClassVar[int] = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human readable error message.
            details: Optional structured context for the error response.
        """
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Render the error as the structured payload returned to callers.

        Returns:
            Dictionary with ``code``, ``message`` and ``details`` keys.
        """
        return {"code": self.code, "message": str(self), "details": self.details}


class InvalidTransitionError(HilError):
    """Raised when a task status change is not an edge of the transition graph.

    Never retried automatically; the task is left exactly as it was.

    Attributes:
        task_id: The task the transition was requested for.
        from_status: The task's current status.
        to_status: The requested status.
    """

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(
        self,
        task_id: str | UUID,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ) -> None:
        """Initialize the exception with transition details.

        Args:
            task_id: The task the transition was requested for.
            from_status: The task's current status.
            to_status: The requested status.
            reason: Additional context about why the transition is invalid.
        """
        self.task_id = task_id
        self.from_status = str(from_status)
        self.to_status = str(to_status)
        msg = f"Invalid transition for task '{task_id}' from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(
            msg,
            {"task_id": str(task_id), "from_status": self.from_status, "to_status": self.to_status},
        )


class ConflictError(HilError):
    """Raised when a concurrent modification was detected.

    The caller should reload and retry the whole operation.
    """

    code = "CONFLICT"
    status_code = 409

    def __init__(self, resource: str, resource_id: str | UUID | None = None) -> None:
        """Initialize the exception.

        Args:
            resource: The kind of resource that was modified concurrently.
            resource_id: The identifier of the resource, if known.
        """
        self.resource = resource
        self.resource_id = resource_id
        msg = f"Concurrent modification of {resource}"
        if resource_id is not None:
            msg += f" '{resource_id}'"
        super().__init__(msg, {"resource": resource, "resource_id": str(resource_id) if resource_id else None})


class DependencyUnsatisfiedError(HilError):
    """Raised when starting a task whose dependencies are not all completed.

    The request is rejected rather than queued.

    Attributes:
        task_id: The task that was asked to start.
        pending: Task types that are not yet completed.
    """

    code = "DEPENDENCY_UNSATISFIED"
    status_code = 409

    def __init__(self, task_id: str | UUID, pending: list[str]) -> None:
        """Initialize the exception.

        Args:
            task_id: The task that was asked to start.
            pending: Task types that are not yet completed.
        """
        self.task_id = task_id
        self.pending = sorted(pending)
        super().__init__(
            f"Task '{task_id}' cannot start, waiting on: {', '.join(self.pending)}",
            {"task_id": str(task_id), "pending": self.pending},
        )


class RetryExhaustedError(HilError):
    """Raised when a failed task has no retries left.

    The task is escalated to a permanent interrupt that requires HIL action.

    Attributes:
        task_id: The failed task.
        retry_count: Retries already consumed.
        max_retries: Retries allowed for the task.
    """

    code = "RETRY_EXHAUSTED"
    status_code = 409

    def __init__(self, task_id: str | UUID, retry_count: int, max_retries: int) -> None:
        """Initialize the exception.

        Args:
            task_id: The failed task.
            retry_count: Retries already consumed.
            max_retries: Retries allowed for the task.
        """
        self.task_id = task_id
        self.retry_count = retry_count
        self.max_retries = max_retries
        super().__init__(
            f"Task '{task_id}' has exhausted its retries ({retry_count}/{max_retries})",
            {"task_id": str(task_id), "retry_count": retry_count, "max_retries": max_retries},
        )


class DeliveryFailure(HilError):
    """Raised when a live notification push to a listener fails.

    Only ever logged; it must not fail the operation that produced the
    notification.
    """

    code = "DELIVERY_FAILURE"
    status_code = 502

    def __init__(self, user_id: str, reason: str) -> None:
        """Initialize the exception.

        Args:
            user_id: The user whose listener could not be reached.
            reason: Why delivery failed.
        """
        self.user_id = user_id
        super().__init__(f"Could not deliver notification to '{user_id}': {reason}", {"user_id": user_id})


class InterruptAlreadyResolvedError(HilError):
    """Raised when resolving an interrupt that is no longer open."""

    code = "INTERRUPT_ALREADY_RESOLVED"
    status_code = 409

    def __init__(self, interrupt_id: str | UUID) -> None:
        """Initialize the exception.

        Args:
            interrupt_id: The interrupt that was already resolved.
        """
        self.interrupt_id = interrupt_id
        super().__init__(f"Interrupt '{interrupt_id}' is already resolved", {"interrupt_id": str(interrupt_id)})


class WorkflowAlreadyActivatedError(HilError):
    """Raised when activating a workflow whose tasks were already created."""

    code = "WORKFLOW_ALREADY_ACTIVATED"
    status_code = 409

    def __init__(self, workflow_id: str | UUID) -> None:
        """Initialize the exception.

        Args:
            workflow_id: The workflow that was already activated.
        """
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' is already activated", {"workflow_id": str(workflow_id)})


class _NotFoundError(HilError):
    status_code = 404
    resource = "Resource"

    def __init__(self, resource_id: str | UUID) -> None:
        self.resource_id = resource_id
        super().__init__(f"{self.resource} '{resource_id}' not found", {"id": str(resource_id)})


class TaskNotFoundError(_NotFoundError):
    """Raised when a task execution does not exist."""

    code = "TASK_NOT_FOUND"
    resource = "Task"


class WorkflowNotFoundError(_NotFoundError):
    """Raised when a workflow instance does not exist."""

    code = "WORKFLOW_NOT_FOUND"
    resource = "Workflow"


class InterruptNotFoundError(_NotFoundError):
    """Raised when an interrupt does not exist."""

    code = "INTERRUPT_NOT_FOUND"
    resource = "Interrupt"


class NotificationNotFoundError(_NotFoundError):
    """Raised when a notification does not exist or belongs to another user."""

    code = "NOTIFICATION_NOT_FOUND"
    resource = "Notification"


class TemplateNotFoundError(HilError):
    """Raised when no template is registered for a workflow type.

    Attributes:
        workflow_type: The workflow type that was not found.
        version: The specific version requested, if any.
    """

    code = "TEMPLATE_NOT_FOUND"
    status_code = 404

    def __init__(self, workflow_type: str, version: str | None = None) -> None:
        """Initialize the exception with template details.

        Args:
            workflow_type: The workflow type that was not found.
            version: The specific version requested, if any.
        """
        self.workflow_type = workflow_type
        self.version = version
        msg = f"Template '{workflow_type}'"
        if version:
            msg += f" version '{version}'"
        msg += " not found"
        super().__init__(msg, {"workflow_type": workflow_type, "version": version})


class TemplateValidationError(HilError):
    """Raised when a workflow template fails validation.

    Attributes:
        errors: List of validation error messages.
    """

    code = "TEMPLATE_INVALID"
    status_code = 400

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"Template validation failed: {'; '.join(errors)}", {"errors": errors})


class MetadataValidationError(HilError):
    """Raised when event metadata contains keys or values outside its whitelist."""

    code = "METADATA_INVALID"
    status_code = 400

    def __init__(self, event_type: str, errors: list[str]) -> None:
        """Initialize the exception.

        Args:
            event_type: The event type whose metadata was rejected.
            errors: List of validation error messages.
        """
        self.event_type = event_type
        self.errors = errors
        super().__init__(
            f"Invalid metadata for '{event_type}': {'; '.join(errors)}",
            {"event_type": event_type, "errors": errors},
        )
