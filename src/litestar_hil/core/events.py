"""Live events pushed to operator listeners.

These events are what the notification dispatcher publishes on the listener hub
after the transaction that produced them has committed. They are plain data,
serializable with ``dataclasses.asdict`` for the server-sent-events stream.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

from litestar_hil.core.types import NotificationType, Priority

__all__ = [
    "LiveEvent",
    "NotificationCreated",
    "NotificationsRead",
]


@dataclass
class LiveEvent:
    """Base class for all live events.

    Attributes:
        user_id: The operator the event is addressed to.
        timestamp: When the event occurred.
    """

    event_name: ClassVar[str] = "event"

    user_id: str
    timestamp: datetime

    def to_payload(self) -> dict[str, Any]:
        """Render the event as a JSON friendly dictionary."""
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()
            elif isinstance(value, UUID):
                payload[key] = str(value)
            elif isinstance(value, list):
                payload[key] = [str(item) if isinstance(item, UUID) else item for item in value]
        return payload


@dataclass
class NotificationCreated(LiveEvent):
    """Event emitted when a notification has been stored for an operator.

    Attributes:
        user_id: Recipient of the notification.
        timestamp: When the notification was created.
        notification_id: Identifier of the stored notification.
        type: Notification type.
        priority: Notification priority.
        title: Short title.
        message: Notification body.
        action_ref: ``"<resource_type>:<uuid>"`` reference to act on.

    Example:
        >>> event = NotificationCreated(
        ...     user_id="operator-1",
        ...     timestamp=datetime.now(timezone.utc),
        ...     notification_id=uuid4(),
        ...     type=NotificationType.SLA_WARNING,
        ...     priority=Priority.URGENT,
        ...     title="SLA breached",
        ...     message="Request payoff is overdue",
        ... )
    """

    event_name: ClassVar[str] = "notification"

    notification_id: UUID
    type: NotificationType
    priority: Priority
    title: str
    message: str
    action_ref: str | None = None


@dataclass
class NotificationsRead(LiveEvent):
    """Event emitted when notifications were marked read.

    Attributes:
        user_id: Owner of the notifications.
        timestamp: When they were marked read.
        notification_ids: The notifications that changed.
        unread_count: Unread notifications left for the user.
    """

    event_name: ClassVar[str] = "read"

    notification_ids: list[UUID] = field(default_factory=list)
    unread_count: int = 0
