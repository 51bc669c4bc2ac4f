"""Tests for the audit trail."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select

from litestar_hil.core.types import Actor, ActorType, AuditAction, TaskStatus
from litestar_hil.db.models import AuditEventModel
from litestar_hil.exceptions import MetadataValidationError
from tests.conftest import OPERATOR, START

if TYPE_CHECKING:
    from uuid import UUID

    from litestar_hil.db.models import TaskExecutionModel
    from litestar_hil.engine.state_machine import TaskStateEngine

pytestmark = pytest.mark.integration


class TestAuditRecorder:
    """Tests for recording and listing audit events."""

    async def test_transition_is_recorded_with_actor(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        from litestar_hil.core.transitions import TransitionRequest

        task_id = abc_tasks["a"].id
        await engine.transition(
            task_id, TaskStatus.COMPLETED, TransitionRequest(actor=Actor.agent("payoff-bot", "Payoff Bot"))
        )

        events, total = await engine.audit.list_events(resource_type="task", resource_id=task_id)

        assert total == 1
        event = events[0]
        assert event.actor_type == ActorType.AGENT
        assert event.actor_id == "payoff-bot"
        assert event.action == AuditAction.UPDATE
        assert event.event_data["from_status"] == "IN_PROGRESS"
        assert event.event_data["to_status"] == "COMPLETED"
        assert event.created_at == START

    async def test_list_by_workflow_oldest_first(
        self, engine: TaskStateEngine, abc_workflow: UUID, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        await engine.transition(abc_tasks["a"].id, TaskStatus.COMPLETED)

        events, total = await engine.audit.list_events(workflow_id=abc_workflow)
        page, _ = await engine.audit.list_events(workflow_id=abc_workflow, limit=1, offset=1)

        assert [event.event_type for event in events] == [
            "workflow.created",
            "workflow.activated",
            "task.transitioned",
        ]
        assert total == 3
        assert page[0].event_type == "workflow.activated"

    async def test_invalid_event_data_rolls_back(
        self, engine: TaskStateEngine, abc_workflow: UUID, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        task_id = abc_tasks["a"].id

        with pytest.raises(MetadataValidationError):
            async with engine.unit_of_work() as uow:
                task = await uow.tasks.get(task_id)
                task.status = TaskStatus.COMPLETED
                engine.audit.record(
                    uow,
                    actor=Actor.human(OPERATOR),
                    action=AuditAction.UPDATE,
                    event_type="task.transitioned",
                    resource_type="task",
                    resource_id=task_id,
                    workflow_id=abc_workflow,
                    event_data={"ssn": "123-45-6789"},
                )

        assert (await engine.get_task(task_id)).status == TaskStatus.IN_PROGRESS
        _, total = await engine.audit.list_events(resource_id=task_id)
        assert total == 0


class TestAppendOnly:
    """Audit events cannot be changed once written."""

    async def _first_event(self, engine: TaskStateEngine, workflow_id: UUID) -> UUID:
        events, _ = await engine.audit.list_events(workflow_id=workflow_id)
        return events[0].id

    async def test_update_rejected(self, engine: TaskStateEngine, abc_workflow: UUID) -> None:
        event_id = await self._first_event(engine, abc_workflow)

        with pytest.raises(RuntimeError, match="immutable"):
            async with engine.unit_of_work() as uow:
                event = await uow.session.scalar(select(AuditEventModel).where(AuditEventModel.id == event_id))
                event.event_type = "workflow.tampered"

        events, _ = await engine.audit.list_events(workflow_id=abc_workflow)
        assert events[0].event_type == "workflow.created"

    async def test_delete_rejected(self, engine: TaskStateEngine, abc_workflow: UUID) -> None:
        event_id = await self._first_event(engine, abc_workflow)

        with pytest.raises(RuntimeError, match="cannot be deleted"):
            async with engine.unit_of_work() as uow:
                event = await uow.session.scalar(select(AuditEventModel).where(AuditEventModel.id == event_id))
                await uow.session.delete(event)

        _, total = await engine.audit.list_events(workflow_id=abc_workflow)
        assert total == 1
