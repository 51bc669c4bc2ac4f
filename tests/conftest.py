"""Shared test fixtures for litestar-hil test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import pytest
from advanced_alchemy.base import UUIDAuditBase
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from litestar_hil.config import EngineConfig
from litestar_hil.core.definition import TaskBlueprint, WorkflowTemplate
from litestar_hil.core.types import ExecutorKind, TaskStatus
from litestar_hil.engine.registry import TemplateRegistry
from litestar_hil.engine.state_machine import TaskStateEngine
from litestar_hil.templates import BUILTIN_TEMPLATES

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncEngine

    from litestar_hil.db.models import TaskExecutionModel


# Monday, inside business hours
START = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)

OPERATOR = "operator-1"


class FrozenClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def abc_template(*, b_max_retries: int | None = None) -> WorkflowTemplate:
    """A has no dependencies; B and C both depend on A."""
    return WorkflowTemplate(
        workflow_type="ABC",
        version="1.0.0",
        description="Three task fan-out used throughout the tests",
        tasks=(
            TaskBlueprint(task_type="a", executor_kind=ExecutorKind.AI, sequence_order=1, default_sla_hours=10),
            TaskBlueprint(
                task_type="b",
                executor_kind=ExecutorKind.AI,
                sequence_order=2,
                default_sla_hours=10,
                dependencies=frozenset({"a"}),
                max_retries=b_max_retries,
            ),
            TaskBlueprint(
                task_type="c",
                executor_kind=ExecutorKind.HUMAN,
                sequence_order=3,
                default_sla_hours=10,
                dependencies=frozenset({"a"}),
            ),
        ),
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Create a file-backed async SQLite engine shared by all sessions of a test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'hil.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(UUIDAuditBase.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def registry() -> TemplateRegistry:
    return TemplateRegistry([abc_template(b_max_retries=1), *BUILTIN_TEMPLATES])


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(max_retries=2, fallback_operators=["ops-lead"])


@pytest.fixture
def engine(
    session_maker: async_sessionmaker[AsyncSession],
    registry: TemplateRegistry,
    engine_config: EngineConfig,
    clock: FrozenClock,
) -> TaskStateEngine:
    return TaskStateEngine(session_maker, registry, config=engine_config, clock=clock)


@pytest.fixture
async def abc_workflow(engine: TaskStateEngine) -> UUID:
    """An ABC workflow assigned to OPERATOR, not yet activated."""
    workflow = await engine.create_workflow("ABC", title="12 Main St", assigned_operator=OPERATOR)
    return workflow.id


@pytest.fixture
async def abc_tasks(engine: TaskStateEngine, abc_workflow: UUID) -> dict[str, TaskExecutionModel]:
    """The tasks of an activated ABC workflow keyed by task type."""
    tasks = await engine.activate_workflow(abc_workflow)
    return {task.task_type: task for task in tasks}


async def statuses(engine: TaskStateEngine, workflow_id: UUID) -> dict[str, TaskStatus]:
    """Current status of every task of a workflow keyed by task type."""
    return {task.task_type: task.status for task in await engine.list_tasks(workflow_id)}
