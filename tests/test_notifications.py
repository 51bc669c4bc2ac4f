"""Tests for notifications and the listener hub."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from litestar_hil.core.events import NotificationCreated, NotificationsRead
from litestar_hil.core.types import NotificationType, Priority, TaskStatus
from litestar_hil.engine.notifications import ListenerHub
from litestar_hil.exceptions import MetadataValidationError, NotificationNotFoundError
from tests.conftest import OPERATOR, START

if TYPE_CHECKING:
    from litestar_hil.db.models import TaskExecutionModel
    from litestar_hil.engine.state_machine import TaskStateEngine


def _event(user_id: str = OPERATOR) -> NotificationCreated:
    return NotificationCreated(
        user_id=user_id,
        timestamp=START,
        notification_id=uuid4(),
        type=NotificationType.WORKFLOW_UPDATE,
        priority=Priority.NORMAL,
        title="Workflow completed",
        message="12 Main St",
    )


@pytest.mark.unit
class TestListenerHub:
    """Tests for the in-process listener hub."""

    async def test_publish_to_user_listeners(self) -> None:
        hub = ListenerHub()
        first = hub.subscribe(OPERATOR)
        second = hub.subscribe(OPERATOR)
        other = hub.subscribe("operator-2")

        delivered = hub.publish(_event())

        assert delivered == 2
        assert first.qsize() == second.qsize() == 1
        assert other.empty()

    async def test_publish_without_listeners(self) -> None:
        assert ListenerHub().publish(_event()) == 0

    async def test_full_queue_drops_and_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        hub = ListenerHub(max_queue_size=1)
        slow = hub.subscribe(OPERATOR)

        with caplog.at_level(logging.WARNING, logger="litestar_hil.engine.notifications"):
            assert hub.publish(_event()) == 1
            assert hub.publish(_event()) == 0

        assert slow.qsize() == 1
        assert "listener queue is full" in caplog.text
        assert "DELIVERY_FAILURE" in caplog.text

    async def test_slow_listener_does_not_starve_others(self) -> None:
        hub = ListenerHub(max_queue_size=1)
        hub.subscribe(OPERATOR)
        fast = hub.subscribe(OPERATOR)

        hub.publish(_event())
        fast.get_nowait()

        assert hub.publish(_event()) == 1

    async def test_listen_unsubscribes_on_exit(self) -> None:
        hub = ListenerHub()

        async with hub.listen(OPERATOR) as queue:
            assert hub.listener_count(OPERATOR) == 1
            hub.publish(_event())
            event = await asyncio.wait_for(queue.get(), timeout=1)

        assert event.user_id == OPERATOR
        assert hub.listener_count(OPERATOR) == 0

    async def test_unsubscribe_unknown_queue(self) -> None:
        hub = ListenerHub()

        hub.unsubscribe(OPERATOR, asyncio.Queue())

        assert hub.listener_count(OPERATOR) == 0


@pytest.mark.integration
class TestNotificationDispatcher:
    """Tests for storing, reading and pushing notifications."""

    async def test_notify_stores_and_publishes(self, engine: TaskStateEngine) -> None:
        async with engine.hub.listen(OPERATOR) as queue:
            notification = await engine.notifications.notify(
                user_id=OPERATOR,
                type=NotificationType.HIL_MENTION,
                priority=Priority.HIGH,
                title="You were mentioned",
                message="Please look at the payoff letter",
                metadata={"mentioned_by": "operator-2"},
            )
            event = queue.get_nowait()

        assert notification.read is False
        assert notification.created_at == START
        assert isinstance(event, NotificationCreated)
        assert event.notification_id == notification.id
        assert event.priority == Priority.HIGH

    async def test_invalid_metadata_rejected(self, engine: TaskStateEngine) -> None:
        with pytest.raises(MetadataValidationError):
            await engine.notifications.notify(
                user_id=OPERATOR,
                type=NotificationType.HIL_MENTION,
                title="Mention",
                message="...",
                metadata={"password": "hunter2"},
            )

        assert await engine.notifications.unread_count(OPERATOR) == 0

    async def test_rolled_back_change_publishes_nothing(self, engine: TaskStateEngine) -> None:
        async with engine.hub.listen(OPERATOR) as queue:
            with pytest.raises(RuntimeError):
                async with engine.unit_of_work() as uow:
                    await engine.notifications.notify(
                        user_id=OPERATOR,
                        type=NotificationType.WORKFLOW_UPDATE,
                        title="Will not survive",
                        message="...",
                        uow=uow,
                    )
                    raise RuntimeError("boom")

            assert queue.empty()
        assert await engine.notifications.unread_count(OPERATOR) == 0

    async def test_interrupt_notifies_operator(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        async with engine.hub.listen(OPERATOR) as queue:
            await engine.transition(abc_tasks["a"].id, TaskStatus.INTERRUPT)
            event = queue.get_nowait()

        assert event.type == NotificationType.TASK_INTERRUPT
        items, total = await engine.notifications.list_for_user(
            OPERATOR, notification_type=NotificationType.TASK_INTERRUPT
        )
        assert total == 1
        assert items[0].action_ref.startswith("interrupt:")
        assert items[0].metadata_["task_id"] == str(abc_tasks["a"].id)

    async def test_mark_read(self, engine: TaskStateEngine) -> None:
        notification = await engine.notifications.notify(
            user_id=OPERATOR, type=NotificationType.WORKFLOW_UPDATE, title="Update", message="..."
        )

        async with engine.hub.listen(OPERATOR) as queue:
            read = await engine.notifications.mark_read(notification.id, OPERATOR)
            event = queue.get_nowait()

        assert read.read is True
        assert read.read_at == START
        assert isinstance(event, NotificationsRead)
        assert event.unread_count == 0
        assert await engine.notifications.unread_count(OPERATOR) == 0

    async def test_mark_read_twice_publishes_once(self, engine: TaskStateEngine) -> None:
        notification = await engine.notifications.notify(
            user_id=OPERATOR, type=NotificationType.WORKFLOW_UPDATE, title="Update", message="..."
        )
        await engine.notifications.mark_read(notification.id, OPERATOR)

        async with engine.hub.listen(OPERATOR) as queue:
            await engine.notifications.mark_read(notification.id, OPERATOR)
            assert queue.empty()

    async def test_mark_read_of_other_user(self, engine: TaskStateEngine) -> None:
        notification = await engine.notifications.notify(
            user_id=OPERATOR, type=NotificationType.WORKFLOW_UPDATE, title="Update", message="..."
        )

        with pytest.raises(NotificationNotFoundError):
            await engine.notifications.mark_read(notification.id, "operator-2")
        with pytest.raises(NotificationNotFoundError):
            await engine.notifications.mark_read(uuid4(), OPERATOR)

        assert await engine.notifications.unread_count(OPERATOR) == 1

    async def test_mark_all_read(self, engine: TaskStateEngine) -> None:
        for index in range(3):
            await engine.notifications.notify(
                user_id=OPERATOR, type=NotificationType.WORKFLOW_UPDATE, title=f"Update {index}", message="..."
            )
        await engine.notifications.notify(
            user_id="operator-2", type=NotificationType.WORKFLOW_UPDATE, title="Other", message="..."
        )

        assert await engine.notifications.mark_all_read(OPERATOR) == 3
        assert await engine.notifications.mark_all_read(OPERATOR) == 0
        assert await engine.notifications.unread_count(OPERATOR) == 0
        assert await engine.notifications.unread_count("operator-2") == 1

    async def test_list_filters(self, engine: TaskStateEngine) -> None:
        await engine.notifications.notify(
            user_id=OPERATOR, type=NotificationType.WORKFLOW_UPDATE, title="Low", message="...", priority=Priority.LOW
        )
        urgent = await engine.notifications.notify(
            user_id=OPERATOR, type=NotificationType.AGENT_FAILURE, title="Down", message="...", priority=Priority.URGENT
        )
        await engine.notifications.mark_read(urgent.id, OPERATOR)

        _, total = await engine.notifications.list_for_user(OPERATOR)
        unread, unread_total = await engine.notifications.list_for_user(OPERATOR, unread_only=True)
        _, urgent_total = await engine.notifications.list_for_user(OPERATOR, priority=Priority.URGENT)
        page, _ = await engine.notifications.list_for_user(OPERATOR, limit=1)

        assert total == 2
        assert unread_total == 1
        assert unread[0].title == "Low"
        assert urgent_total == 1
        assert len(page) == 1

    async def test_recipients_fall_back_to_operators(self, engine: TaskStateEngine) -> None:
        workflow = await engine.create_workflow("ABC")
        assigned = await engine.create_workflow("ABC", assigned_operator=OPERATOR)

        assert engine.notifications.recipients_for(workflow) == ["ops-lead"]
        assert engine.notifications.recipients_for(assigned) == [OPERATOR]
        assert engine.notifications.recipients_for(None) == ["ops-lead"]
