"""REST API tests against a full Litestar app with the plugin installed."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest
from litestar import Litestar
from litestar.status_codes import (
    HTTP_200_OK,
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)
from litestar.testing import AsyncTestClient

from litestar_hil import HilPlugin, HilPluginConfig
from litestar_hil.config import ResumeSignalConfig, SweepConfig
from litestar_hil.templates import BUILTIN_TEMPLATES
from tests.conftest import OPERATOR, abc_template

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tests.conftest import FrozenClock

pytestmark = pytest.mark.integration

HUMAN = {"type": "human", "id": OPERATOR, "name": "Olive Operator"}


@pytest.fixture
def app(session_maker: async_sessionmaker[AsyncSession], clock: FrozenClock) -> Litestar:
    plugin = HilPlugin(
        config=HilPluginConfig(
            session_maker=session_maker,
            templates=[abc_template(b_max_retries=1), *BUILTIN_TEMPLATES],
            sweep=SweepConfig(enabled=False),
            signals=ResumeSignalConfig(enabled=False),
            clock=clock,
        )
    )
    return Litestar(plugins=[plugin])


@pytest.fixture
async def client(app: Litestar) -> AsyncIterator[AsyncTestClient]:
    async with AsyncTestClient(app=app) as client:
        yield client


async def _start_workflow(client: AsyncTestClient) -> tuple[str, dict[str, dict[str, Any]]]:
    response = await client.post(
        "/hil/workflows",
        json={"workflow_type": "ABC", "title": "12 Main St", "assigned_operator": OPERATOR},
    )
    assert response.status_code == HTTP_201_CREATED
    workflow_id = response.json()["id"]
    response = await client.post(f"/hil/workflows/{workflow_id}/activate")
    assert response.status_code == HTTP_201_CREATED
    return workflow_id, {task["task_type"]: task for task in response.json()}


def _assert_error(response: Any, status_code: int, code: str) -> dict[str, Any]:
    assert response.status_code == status_code
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    return body["error"]


class TestWorkflowEndpoints:
    """Tests for /hil/workflows."""

    async def test_create_and_get(self, client: AsyncTestClient) -> None:
        response = await client.post(
            "/hil/workflows",
            json={
                "workflow_type": "ABC",
                "title": "12 Main St",
                "due_date": "2026-02-01T00:00:00Z",
                "metadata": {"county": "Travis"},
            },
        )

        assert response.status_code == HTTP_201_CREATED
        created = response.json()
        assert created["workflow_type"] == "ABC"
        assert created["template_version"] is None
        assert created["metadata"] == {"county": "Travis"}

        response = await client.get(f"/hil/workflows/{created['id']}")
        assert response.status_code == HTTP_200_OK
        assert response.json()["title"] == "12 Main St"

    async def test_unknown_template(self, client: AsyncTestClient) -> None:
        response = await client.post("/hil/workflows", json={"workflow_type": "NOPE"})

        _assert_error(response, HTTP_404_NOT_FOUND, "TEMPLATE_NOT_FOUND")

    async def test_activate(self, client: AsyncTestClient) -> None:
        workflow_id, tasks = await _start_workflow(client)

        assert set(tasks) == {"a", "b", "c"}
        assert tasks["a"]["status"] == "IN_PROGRESS"
        assert tasks["a"]["sla_due_at"] is not None
        assert tasks["b"]["status"] == "NOT_STARTED"
        assert tasks["b"]["depends_on"] == ["a"]

        response = await client.get(f"/hil/workflows/{workflow_id}")
        body = response.json()
        assert body["status"] == "IN_PROGRESS"
        assert body["template_version"] == "1.0.0"
        assert body["task_counts"]["IN_PROGRESS"] == 1
        assert body["task_counts"]["NOT_STARTED"] == 2

    async def test_activate_twice(self, client: AsyncTestClient) -> None:
        workflow_id, _ = await _start_workflow(client)

        response = await client.post(f"/hil/workflows/{workflow_id}/activate")

        _assert_error(response, HTTP_409_CONFLICT, "WORKFLOW_ALREADY_ACTIVATED")

    async def test_list_tasks(self, client: AsyncTestClient) -> None:
        workflow_id, _ = await _start_workflow(client)

        response = await client.get(f"/hil/workflows/{workflow_id}/tasks")

        assert [task["task_type"] for task in response.json()] == ["a", "b", "c"]

    async def test_cancel(self, client: AsyncTestClient) -> None:
        workflow_id, _ = await _start_workflow(client)

        response = await client.post(
            f"/hil/workflows/{workflow_id}/cancel", json={"reason": "order withdrawn", "actor": HUMAN}
        )

        assert response.status_code == HTTP_200_OK
        tasks = (await client.get(f"/hil/workflows/{workflow_id}/tasks")).json()
        assert {task["status"] for task in tasks} == {"FAILED"}

    async def test_missing_workflow(self, client: AsyncTestClient) -> None:
        response = await client.get(f"/hil/workflows/{uuid4()}")

        _assert_error(response, HTTP_404_NOT_FOUND, "WORKFLOW_NOT_FOUND")


class TestTaskEndpoints:
    """Tests for /hil/tasks."""

    async def test_transition(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)
        task = tasks["a"]

        response = await client.post(
            f"/hil/tasks/{task['id']}/status",
            json={"status": "COMPLETED", "output_data": {"payoff": 1250.5}, "expected_version": task["version"]},
        )

        assert response.status_code == HTTP_200_OK
        body = response.json()
        assert body["status"] == "COMPLETED"
        assert body["output_data"] == {"payoff": 1250.5}
        assert body["version"] > task["version"]

    async def test_illegal_transition(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)

        response = await client.post(f"/hil/tasks/{tasks['a']['id']}/status", json={"status": "NOT_STARTED"})

        error = _assert_error(response, HTTP_409_CONFLICT, "INVALID_TRANSITION")
        assert error["details"]["from_status"] == "IN_PROGRESS"

    async def test_dependency_unsatisfied(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)

        response = await client.post(f"/hil/tasks/{tasks['b']['id']}/status", json={"status": "IN_PROGRESS"})

        _assert_error(response, HTTP_409_CONFLICT, "DEPENDENCY_UNSATISFIED")

    async def test_stale_version(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)

        response = await client.post(
            f"/hil/tasks/{tasks['a']['id']}/status",
            json={"status": "COMPLETED", "expected_version": tasks["a"]["version"] + 5},
        )

        _assert_error(response, HTTP_409_CONFLICT, "CONFLICT")

    async def test_status_is_required(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)

        response = await client.post(f"/hil/tasks/{tasks['a']['id']}/status", json={"reason": "no status"})

        assert response.status_code == HTTP_400_BAD_REQUEST

    async def test_confidence_out_of_range(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)
        task_id = tasks["a"]["id"]

        response = await client.post(f"/hil/tasks/{task_id}/status", json={"status": "COMPLETED", "confidence": 7.5})

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert (await client.get(f"/hil/tasks/{task_id}")).json()["status"] == tasks["a"]["status"]

    async def test_retry(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)
        task_id = tasks["a"]["id"]
        await client.post(f"/hil/tasks/{task_id}/status", json={"status": "FAILED", "error_message": "timeout"})

        response = await client.post(f"/hil/tasks/{task_id}/retry", json={"actor": HUMAN})

        assert response.status_code == HTTP_200_OK
        assert response.json()["status"] == "NOT_STARTED"
        assert response.json()["retry_count"] == 1

    async def test_get_missing_task(self, client: AsyncTestClient) -> None:
        response = await client.get(f"/hil/tasks/{uuid4()}")

        _assert_error(response, HTTP_404_NOT_FOUND, "TASK_NOT_FOUND")


class TestInterruptEndpoints:
    """Tests for /hil/interrupts."""

    async def test_interrupt_queue_and_resolution(self, client: AsyncTestClient) -> None:
        workflow_id, tasks = await _start_workflow(client)
        await client.post(
            f"/hil/tasks/{tasks['a']['id']}/status",
            json={"status": "INTERRUPT", "reason": "county portal needs login", "interrupt_type": "MANUAL_VERIFICATION"},
        )

        page = (await client.get("/hil/interrupts", params={"workflow_id": workflow_id})).json()
        assert page["total"] == 1
        interrupt = page["items"][0]
        assert interrupt["interrupt_type"] == "MANUAL_VERIFICATION"

        response = await client.get(f"/hil/interrupts/{interrupt['id']}")
        assert response.json()["status"] == "OPEN"

        response = await client.post(
            f"/hil/interrupts/{interrupt['id']}/resolve",
            json={"outcome": "RESUME", "actor": HUMAN, "notes": "logged in"},
        )
        assert response.status_code == HTTP_200_OK
        assert response.json()["status"] == "RESOLVED"
        assert response.json()["resolved_by"] == OPERATOR

        again = await client.post(
            f"/hil/interrupts/{interrupt['id']}/resolve", json={"outcome": "RESUME", "actor": HUMAN}
        )
        _assert_error(again, HTTP_409_CONFLICT, "INTERRUPT_ALREADY_RESOLVED")
        assert (await client.get("/hil/interrupts")).json()["total"] == 0

    async def test_actor_is_required(self, client: AsyncTestClient) -> None:
        response = await client.post(f"/hil/interrupts/{uuid4()}/resolve", json={"outcome": "RESUME"})

        assert response.status_code == HTTP_400_BAD_REQUEST

    async def test_missing_interrupt(self, client: AsyncTestClient) -> None:
        response = await client.get(f"/hil/interrupts/{uuid4()}")

        _assert_error(response, HTTP_404_NOT_FOUND, "INTERRUPT_NOT_FOUND")


class TestNotificationEndpoints:
    """Tests for /hil/notifications."""

    async def test_list_read_and_count(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)
        await client.post(f"/hil/tasks/{tasks['a']['id']}/status", json={"status": "INTERRUPT"})

        page = (
            await client.get("/hil/notifications", params={"user_id": OPERATOR, "type": "TASK_INTERRUPT"})
        ).json()
        assert page["total"] == 1
        notification = page["items"][0]
        assert notification["read"] is False
        assert notification["action_ref"].startswith("interrupt:")

        count = (await client.get("/hil/notifications/unread-count", params={"user_id": OPERATOR})).json()
        assert count == {"user_id": OPERATOR, "count": 1}

        response = await client.post(f"/hil/notifications/{notification['id']}/read", json={"user_id": OPERATOR})
        assert response.status_code == HTTP_200_OK
        assert response.json()["read"] is True

    async def test_read_other_users_notification(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)
        await client.post(f"/hil/tasks/{tasks['a']['id']}/status", json={"status": "INTERRUPT"})
        page = (await client.get("/hil/notifications", params={"user_id": OPERATOR})).json()

        response = await client.post(
            f"/hil/notifications/{page['items'][0]['id']}/read", json={"user_id": "operator-2"}
        )

        _assert_error(response, HTTP_404_NOT_FOUND, "NOTIFICATION_NOT_FOUND")

    async def test_read_all(self, client: AsyncTestClient) -> None:
        _, tasks = await _start_workflow(client)
        await client.post(f"/hil/tasks/{tasks['a']['id']}/status", json={"status": "INTERRUPT"})

        response = await client.post("/hil/notifications/read-all", json={"user_id": OPERATOR})

        assert response.status_code == HTTP_200_OK
        assert response.json() == {"user_id": OPERATOR, "updated": 1}
        count = (await client.get("/hil/notifications/unread-count", params={"user_id": OPERATOR})).json()
        assert count["count"] == 0


class TestAuditAndSLAEndpoints:
    """Tests for /hil/audit-events and /hil/sla."""

    async def test_audit_events(self, client: AsyncTestClient) -> None:
        workflow_id, _ = await _start_workflow(client)

        page = (await client.get("/hil/audit-events", params={"workflow_id": workflow_id})).json()

        assert page["total"] == 2
        assert [event["event_type"] for event in page["items"]] == ["workflow.created", "workflow.activated"]
        assert page["items"][1]["event_data"]["task_count"] == 3

    async def test_sla_report_and_sweep(self, client: AsyncTestClient, clock: FrozenClock) -> None:
        _, tasks = await _start_workflow(client)
        clock.advance(hours=9)

        swept = (await client.post("/hil/sla/sweep")).json()
        report = (await client.get("/hil/sla/report", params={"only_at_risk": True})).json()

        assert swept["escalated"] == [tasks["a"]["id"]]
        assert len(report) == 1
        assert report[0]["sla_status"] == "AT_RISK"
        assert report[0]["hours_remaining"] == pytest.approx(1.0)


class TestTemplateEndpoints:
    """Tests for /hil/templates."""

    async def test_list_templates(self, client: AsyncTestClient) -> None:
        response = await client.get("/hil/templates")

        assert response.status_code == HTTP_200_OK
        types = {template["workflow_type"] for template in response.json()}
        assert {"ABC", "PAYOFF_REQUEST", "MUNI_LIEN_SEARCH", "HOA_ACQUISITION"} <= types

    async def test_get_template(self, client: AsyncTestClient) -> None:
        response = await client.get("/hil/templates/ABC")

        body = response.json()
        assert body["version"] == "1.0.0"
        assert [task["task_type"] for task in body["tasks"]] == ["a", "b", "c"]
        assert body["tasks"][1]["dependencies"] == ["a"]

    async def test_missing_template(self, client: AsyncTestClient) -> None:
        response = await client.get("/hil/templates/NOPE")

        _assert_error(response, HTTP_404_NOT_FOUND, "TEMPLATE_NOT_FOUND")
