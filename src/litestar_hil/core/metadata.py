"""Typed metadata whitelists for audit events and notifications.

Metadata attached to audit events and notifications is a flat map of string
keys to scalar values. Each event type declares which keys it may carry and
their types; anything else is rejected before it reaches the database.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from litestar_hil.core.types import Metadata, NotificationType
from litestar_hil.exceptions import MetadataValidationError

__all__ = ["METADATA_SCHEMAS", "validate_metadata"]

_STR = (str,)
_INT = (int,)
_NUM = (int, float)
_BOOL = (bool,)
_STR_LIST = (list,)

_TASK_KEYS: dict[str, tuple[type, ...]] = {"task_id": _STR, "task_type": _STR}

METADATA_SCHEMAS: dict[str, dict[str, tuple[type, ...]]] = {
    # audit event types
    "workflow.created": {"workflow_type": _STR, "title": _STR},
    "workflow.activated": {
        "workflow_type": _STR,
        "template_version": _STR,
        "task_ids": _STR_LIST,
        "started_task_ids": _STR_LIST,
        "task_count": _INT,
    },
    "workflow.cancelled": {"reason": _STR, "task_ids": _STR_LIST, "task_count": _INT},
    "task.transitioned": {
        "from_status": _STR,
        "to_status": _STR,
        "requested_status": _STR,
        "reason": _STR,
        "error_message": _STR,
        "confidence": _NUM,
        "retry_count": _INT,
        "sla_status": _STR,
        "workflow_status": _STR,
        "activated_task_ids": _STR_LIST,
    },
    "task.retry_rejected": {"retry_count": _INT, "max_retries": _INT, "interrupt_id": _STR},
    "interrupt.opened": {**_TASK_KEYS, "reason": _STR, "priority": _STR, "interrupt_type": _STR},
    "interrupt.resolved": {**_TASK_KEYS, "outcome": _STR, "notes": _STR, "task_status": _STR},
    "sla.status_changed": {
        "previous_status": _STR,
        "sla_status": _STR,
        "sla_due_at": _STR,
        "hours_remaining": _NUM,
    },
    "signal.failed": {**_TASK_KEYS, "interrupt_id": _STR, "attempts": _INT, "last_error": _STR},
    # notification types
    NotificationType.SLA_WARNING.value: {
        **_TASK_KEYS,
        "workflow_id": _STR,
        "sla_status": _STR,
        "sla_hours": _NUM,
        "sla_due_at": _STR,
        "hours_overdue": _NUM,
    },
    NotificationType.TASK_INTERRUPT.value: {
        **_TASK_KEYS,
        "workflow_id": _STR,
        "interrupt_id": _STR,
        "reason": _STR,
        "interrupt_type": _STR,
        "retries_exhausted": _BOOL,
    },
    NotificationType.AGENT_FAILURE.value: {
        **_TASK_KEYS,
        "workflow_id": _STR,
        "error_message": _STR,
        "retry_count": _INT,
        "signal_id": _STR,
    },
    NotificationType.WORKFLOW_UPDATE.value: {
        "workflow_id": _STR,
        "workflow_status": _STR,
        "previous_status": _STR,
    },
    NotificationType.HIL_MENTION.value: {"workflow_id": _STR, "mentioned_by": _STR, "note_id": _STR},
    NotificationType.CLIENT_MESSAGE_RECEIVED.value: {"workflow_id": _STR, "message_id": _STR},
    NotificationType.COUNTERPARTY_MESSAGE_RECEIVED.value: {
        "workflow_id": _STR,
        "message_id": _STR,
        "counterparty_id": _STR,
    },
}
"""Allowed keys and value types per audit event type or notification type."""


def validate_metadata(kind: str, data: Mapping[str, Any] | None) -> Metadata:
    """Validate metadata against the whitelist for ``kind``.

    ``None`` values are dropped. Lists are only accepted for list-typed keys and
    must contain strings only.

    Args:
        kind: Audit event type or notification type.
        data: The metadata to validate.

    Returns:
        A validated copy of the metadata.

    Raises:
        MetadataValidationError: If a key is not whitelisted or a value has the wrong type.
    """
    if not data:
        return {}
    schema = METADATA_SCHEMAS.get(str(kind))
    if schema is None:
        raise MetadataValidationError(str(kind), [f"no metadata schema for '{kind}'"])

    errors: list[str] = []
    validated: Metadata = {}
    for key, value in data.items():
        if value is None:
            continue
        allowed = schema.get(key)
        if allowed is None:
            errors.append(f"key '{key}' is not allowed")
            continue
        if allowed is _STR_LIST:
            if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
                errors.append(f"key '{key}' must be a list of strings")
                continue
            validated[key] = list(value)
            continue
        # bool is an int subclass; only accept it where declared
        if isinstance(value, bool) and allowed is not _BOOL:
            errors.append(f"key '{key}' must be {allowed[0].__name__}")
            continue
        if not isinstance(value, allowed):
            errors.append(f"key '{key}' must be {allowed[0].__name__}")
            continue
        validated[key] = value

    if errors:
        raise MetadataValidationError(str(kind), errors)
    return validated
