"""Tests for resume signal delivery."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import pytest

from litestar_hil.config import ResumeSignalConfig
from litestar_hil.core.types import (
    Actor,
    InterruptOutcome,
    NotificationType,
    Priority,
    SignalStatus,
    TaskStatus,
)
from litestar_hil.db.repositories import ResumeSignalRepository
from litestar_hil.engine.signals import ResumeSignalDispatcher
from tests.conftest import OPERATOR, START

if TYPE_CHECKING:
    from litestar_hil.db.models import InterruptModel, ResumeSignalModel, TaskExecutionModel
    from litestar_hil.engine.state_machine import TaskStateEngine

pytestmark = pytest.mark.integration

URL = "http://orchestrator.test/signals"


class Orchestrator:
    """Fake orchestrator endpoint recording every request."""

    def __init__(self, *status_codes: int) -> None:
        self.status_codes = list(status_codes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code = self.status_codes.pop(0) if self.status_codes else 200
        return httpx.Response(status_code, json={"ok": status_code < 400})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


async def _resolve(
    engine: TaskStateEngine,
    task: TaskExecutionModel,
    outcome: InterruptOutcome = InterruptOutcome.RESUME,
) -> InterruptModel:
    await engine.transition(task.id, TaskStatus.INTERRUPT)
    interrupts, _ = await engine.interrupts.list_open(workflow_id=task.workflow_id)
    return await engine.interrupts.resolve(interrupts[0].id, outcome, actor=Actor.human(OPERATOR))


async def _signal(engine: TaskStateEngine) -> ResumeSignalModel:
    async with engine.session_maker() as session:
        return (await ResumeSignalRepository(session=session).list())[0]


def _dispatcher(engine: TaskStateEngine, orchestrator: Orchestrator, **config) -> ResumeSignalDispatcher:
    return ResumeSignalDispatcher(
        engine,
        ResumeSignalConfig(url=URL, **config),
        client=orchestrator.client(),
    )


class TestDelivery:
    """Tests for successful delivery."""

    async def test_posts_signal_with_idempotency_key(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        interrupt = await _resolve(engine, abc_tasks["a"])
        orchestrator = Orchestrator(200)
        dispatcher = _dispatcher(engine, orchestrator, headers={"Authorization": "Bearer token"})

        result = await dispatcher.deliver_pending()

        assert len(result.delivered) == 1
        request = orchestrator.requests[0]
        assert str(request.url) == URL
        assert request.headers["Idempotency-Key"] == f"{abc_tasks['a'].id}:{interrupt.id}"
        assert request.headers["Authorization"] == "Bearer token"
        body = json.loads(request.content)
        assert body["outcome"] == "RESUME"
        assert body["task_status"] == "IN_PROGRESS"
        signal = await _signal(engine)
        assert signal.status == SignalStatus.DELIVERED
        assert signal.attempts == 1
        assert signal.delivered_at == START

    async def test_delivered_signal_is_not_sent_again(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        await _resolve(engine, abc_tasks["a"])
        orchestrator = Orchestrator()
        dispatcher = _dispatcher(engine, orchestrator)

        await dispatcher.deliver_pending()
        second = await dispatcher.deliver_pending()

        assert second.delivered == []
        assert len(orchestrator.requests) == 1

    async def test_without_url_signals_stay_pending(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        await _resolve(engine, abc_tasks["a"])
        dispatcher = ResumeSignalDispatcher(engine, ResumeSignalConfig(url=None))

        result = await dispatcher.deliver_pending()

        assert result.delivered == result.retrying == result.failed == []
        assert (await _signal(engine)).status == SignalStatus.PENDING

    async def test_nothing_due(self, engine: TaskStateEngine) -> None:
        orchestrator = Orchestrator()

        result = await _dispatcher(engine, orchestrator).deliver_pending()

        assert result.delivered == []
        assert orchestrator.requests == []


class TestRetries:
    """Tests for backoff and exhaustion."""

    async def test_server_error_reschedules_with_backoff(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        await _resolve(engine, abc_tasks["a"])
        orchestrator = Orchestrator(500, 503, 200)
        dispatcher = _dispatcher(engine, orchestrator)

        first = await dispatcher.deliver_pending()
        signal = await _signal(engine)

        assert len(first.retrying) == 1
        assert signal.status == SignalStatus.PENDING
        assert signal.attempts == 1
        assert signal.last_error == "HTTP 500"
        assert signal.next_attempt_at == START + timedelta(seconds=1)

        not_due = await dispatcher.deliver_pending(START + timedelta(milliseconds=500))
        assert not_due.retrying == []
        assert len(orchestrator.requests) == 1

        await dispatcher.deliver_pending(START + timedelta(seconds=1))
        assert (await _signal(engine)).next_attempt_at == START + timedelta(seconds=3)

        final = await dispatcher.deliver_pending(START + timedelta(seconds=3))
        assert len(final.delivered) == 1
        assert (await _signal(engine)).last_error is None

    async def test_transport_error_is_retried(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        await _resolve(engine, abc_tasks["a"])

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = ResumeSignalDispatcher(
            engine,
            ResumeSignalConfig(url=URL),
            client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
        )

        result = await dispatcher.deliver_pending()

        assert len(result.retrying) == 1
        assert (await _signal(engine)).last_error.startswith("ConnectError")

    async def test_exhausted_signal_interrupts_running_task(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        task = abc_tasks["a"]
        await _resolve(engine, task, InterruptOutcome.RESUME)
        dispatcher = _dispatcher(engine, Orchestrator(500), max_attempts=1)

        result = await dispatcher.deliver_pending()

        assert len(result.failed) == 1
        signal = await _signal(engine)
        assert signal.status == SignalStatus.FAILED
        assert (await engine.get_task(task.id)).status == TaskStatus.INTERRUPT
        interrupts, _ = await engine.interrupts.list_open(workflow_id=task.workflow_id)
        assert interrupts[0].reason == "resume_signal_failed"
        events, _ = await engine.audit.list_events(resource_id=signal.id, event_type="signal.failed")
        assert events[0].event_data["attempts"] == 1
        assert events[0].event_data["last_error"] == "HTTP 500"

    async def test_exhausted_signal_alerts_when_task_is_done(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        task = abc_tasks["a"]
        await _resolve(engine, task, InterruptOutcome.COMPLETE)
        dispatcher = _dispatcher(engine, Orchestrator(500, 500), max_attempts=2)

        await dispatcher.deliver_pending()
        result = await dispatcher.deliver_pending(START + timedelta(seconds=1))

        assert len(result.failed) == 1
        assert (await engine.get_task(task.id)).status == TaskStatus.COMPLETED
        alerts, total = await engine.notifications.list_for_user(
            OPERATOR, notification_type=NotificationType.AGENT_FAILURE
        )
        assert total == 1
        assert alerts[0].priority == Priority.URGENT
        assert alerts[0].metadata_["signal_id"] == str(result.failed[0])

    async def test_exhausted_signal_reopens_dismissed_task(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        b_id = abc_tasks["b"].id
        await engine.transition(abc_tasks["a"].id, TaskStatus.COMPLETED)
        await engine.transition(b_id, TaskStatus.FAILED)
        await engine.retry(b_id)
        await engine.transition(b_id, TaskStatus.IN_PROGRESS)
        await engine.transition(b_id, TaskStatus.FAILED)
        interrupts, _ = await engine.interrupts.list_open(workflow_id=abc_tasks["b"].workflow_id)
        await engine.interrupts.resolve(interrupts[0].id, InterruptOutcome.DISMISS, actor=Actor.human(OPERATOR))
        dispatcher = _dispatcher(engine, Orchestrator(500), max_attempts=1)

        result = await dispatcher.deliver_pending()

        assert len(result.failed) == 1
        assert (await engine.get_task(b_id)).status == TaskStatus.FAILED
        reopened, total = await engine.interrupts.list_open(workflow_id=abc_tasks["b"].workflow_id)
        assert total == 1
        assert reopened[0].reason == "resume_signal_failed"
        assert reopened[0].priority == Priority.URGENT
        _, alerts = await engine.notifications.list_for_user(
            OPERATOR, notification_type=NotificationType.AGENT_FAILURE
        )
        assert alerts == 0

    async def test_failed_signal_is_not_retried(
        self, engine: TaskStateEngine, abc_tasks: dict[str, TaskExecutionModel]
    ) -> None:
        await _resolve(engine, abc_tasks["a"], InterruptOutcome.COMPLETE)
        orchestrator = Orchestrator(500)
        dispatcher = _dispatcher(engine, orchestrator, max_attempts=1)

        await dispatcher.deliver_pending()
        await dispatcher.deliver_pending(START + timedelta(days=1))

        assert len(orchestrator.requests) == 1


@pytest.mark.unit
class TestBackoff:
    """Tests for the retry delay schedule."""

    def test_delays(self) -> None:
        config = ResumeSignalConfig(max_attempts=5, initial_delay_seconds=1, backoff_multiplier=2)

        assert [config.delay_for_attempt(attempt) for attempt in range(1, 6)] == [1, 2, 4, 8, None]

    def test_delay_is_capped(self) -> None:
        config = ResumeSignalConfig(max_attempts=20, max_delay_seconds=30)

        assert config.delay_for_attempt(10) == 30
