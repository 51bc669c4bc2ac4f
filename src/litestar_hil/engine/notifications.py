"""Operator notifications and live listener fan-out.

Notifications are stored inside the unit of work of the change that caused
them. Pushing them to connected listeners happens after that change has
committed, and a listener that cannot keep up never fails the change.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from litestar_hil.core.events import NotificationCreated, NotificationsRead
from litestar_hil.core.metadata import validate_metadata
from litestar_hil.core.types import NotificationType, Priority
from litestar_hil.db.models import NotificationModel
from litestar_hil.db.repositories import NotificationRepository
from litestar_hil.db.uow import UnitOfWork
from litestar_hil.exceptions import DeliveryFailure, NotificationNotFoundError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping, Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from litestar_hil.config import EngineConfig
    from litestar_hil.core.events import LiveEvent
    from litestar_hil.db.models import WorkflowInstanceModel

__all__ = ["ListenerHub", "NotificationDispatcher"]

logger = logging.getLogger(__name__)


class ListenerHub:
    """In-process publish/subscribe of live events keyed by user ID.

    Every subscriber owns a bounded queue. Publishing never blocks: when a
    queue is full the event is dropped for that subscriber and a
    :class:`~litestar_hil.exceptions.DeliveryFailure` is logged.

    Example:
        >>> async with hub.listen("operator-1") as queue:
        ...     event = await queue.get()
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._queues: dict[str, set[asyncio.Queue[LiveEvent]]] = defaultdict(set)

    def subscribe(self, user_id: str) -> asyncio.Queue[LiveEvent]:
        """Register a new listener queue for a user."""
        queue: asyncio.Queue[LiveEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        self._queues[user_id].add(queue)
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue[LiveEvent]) -> None:
        """Remove a listener queue."""
        queues = self._queues.get(user_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._queues[user_id]

    @asynccontextmanager
    async def listen(self, user_id: str) -> AsyncIterator[asyncio.Queue[LiveEvent]]:
        """Subscribe for the duration of a block."""
        queue = self.subscribe(user_id)
        try:
            yield queue
        finally:
            self.unsubscribe(user_id, queue)

    def listener_count(self, user_id: str) -> int:
        return len(self._queues.get(user_id, ()))

    def publish(self, event: LiveEvent) -> int:
        """Push an event to every listener of its user.

        Args:
            event: The event to deliver.

        Returns:
            Number of listeners the event was delivered to.
        """
        delivered = 0
        for queue in list(self._queues.get(event.user_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                failure = DeliveryFailure(event.user_id, "listener queue is full")
                logger.warning("%s (%s)", failure, failure.code)
            else:
                delivered += 1
        return delivered


class NotificationDispatcher:
    """Stores notifications and fans them out to live listeners.

    Attributes:
        hub: The listener hub events are published on.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        hub: ListenerHub,
        config: EngineConfig,
        clock: Callable[[], datetime],
    ) -> None:
        self._session_maker = session_maker
        self.hub = hub
        self._config = config
        self._clock = clock

    def recipients_for(self, workflow: WorkflowInstanceModel | None) -> list[str]:
        """Resolve who is notified about a workflow.

        Args:
            workflow: The workflow, if known.

        Returns:
            The assigned operator, or the configured fallback operators.
        """
        if workflow is not None and workflow.assigned_operator:
            return [workflow.assigned_operator]
        return list(self._config.fallback_operators)

    async def notify(
        self,
        *,
        user_id: str,
        type: NotificationType,  # noqa: A002
        priority: Priority = Priority.NORMAL,
        title: str,
        message: str,
        action_ref: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        uow: UnitOfWork | None = None,
    ) -> NotificationModel:
        """Store a notification and push it to the user's listeners after commit.

        Args:
            user_id: Recipient.
            type: Notification type.
            priority: Notification priority.
            title: Short title.
            message: Body text.
            action_ref: ``"<resource_type>:<uuid>"`` reference to act on.
            metadata: Metadata, validated against the type's whitelist.
            uow: Unit of work to join. A new one is used when omitted.

        Returns:
            The stored notification.

        Raises:
            MetadataValidationError: If ``metadata`` violates the whitelist.
        """
        if uow is None:
            async with UnitOfWork(self._session_maker, resource="notification") as own_uow:
                return await self.notify(
                    user_id=user_id,
                    type=type,
                    priority=priority,
                    title=title,
                    message=message,
                    action_ref=action_ref,
                    metadata=metadata,
                    uow=own_uow,
                )

        notification_type = NotificationType(type)
        notification = NotificationModel(
            user_id=user_id,
            type=notification_type,
            priority=Priority(priority),
            title=title,
            message=message,
            action_ref=action_ref,
            metadata_=validate_metadata(notification_type, metadata),
            read=False,
            created_at=self._clock(),
        )
        uow.session.add(notification)
        await uow.flush()

        event = NotificationCreated(
            user_id=user_id,
            timestamp=notification.created_at,
            notification_id=notification.id,
            type=notification.type,
            priority=notification.priority,
            title=title,
            message=message,
            action_ref=action_ref,
        )
        uow.after_commit(lambda: self.hub.publish(event))
        return notification

    async def notify_operators(
        self,
        uow: UnitOfWork,
        workflow: WorkflowInstanceModel | None,
        *,
        type: NotificationType,  # noqa: A002
        priority: Priority,
        title: str,
        message: str,
        action_ref: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[NotificationModel]:
        """Notify every recipient of a workflow, one notification each."""
        recipients = self.recipients_for(workflow)
        if not recipients:
            logger.warning("No recipients for %s notification '%s'", type, title)
        return [
            await self.notify(
                user_id=user_id,
                type=type,
                priority=priority,
                title=title,
                message=message,
                action_ref=action_ref,
                metadata=metadata,
                uow=uow,
            )
            for user_id in recipients
        ]

    async def mark_read(self, notification_id: UUID, user_id: str) -> NotificationModel:
        """Mark one of a user's notifications read.

        Raises:
            NotificationNotFoundError: If the notification does not exist or
                belongs to another user.
        """
        async with UnitOfWork(self._session_maker, resource="notification", resource_id=notification_id) as uow:
            notification = await uow.notifications.get_one_or_none(id=notification_id)
            if notification is None or notification.user_id != user_id:
                raise NotificationNotFoundError(notification_id)
            if not notification.read:
                notification.read = True
                notification.read_at = self._clock()
                await uow.flush()
                unread = await uow.notifications.count_unread(user_id)
                event = NotificationsRead(
                    user_id=user_id,
                    timestamp=notification.read_at,
                    notification_ids=[notification.id],
                    unread_count=unread,
                )
                uow.after_commit(lambda: self.hub.publish(event))
            return notification

    async def mark_all_read(self, user_id: str) -> int:
        """Mark all of a user's notifications read.

        Returns:
            Number of notifications that changed.
        """
        async with UnitOfWork(self._session_maker, resource="notification") as uow:
            ids = await uow.notifications.find_unread_ids(user_id)
            if ids:
                now = self._clock()
                await uow.notifications.mark_read_bulk(ids, now)
                event = NotificationsRead(user_id=user_id, timestamp=now, notification_ids=ids, unread_count=0)
                uow.after_commit(lambda: self.hub.publish(event))
            return len(ids)

    async def list_for_user(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        notification_type: NotificationType | None = None,
        priority: Priority | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[NotificationModel], int]:
        """List a user's notifications, newest first."""
        async with self._session_maker() as session:
            return await NotificationRepository(session=session).find_for_user(
                user_id,
                unread_only=unread_only,
                notification_type=notification_type,
                priority=priority,
                limit=limit,
                offset=offset,
            )

    async def unread_count(self, user_id: str) -> int:
        async with self._session_maker() as session:
            return await NotificationRepository(session=session).count_unread(user_id)
