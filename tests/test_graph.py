"""Tests for DependencyGraph."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from litestar_hil.core.types import TaskStatus
from litestar_hil.engine.graph import DependencyGraph


@dataclass
class Node:
    task_type: str
    depends_on: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.NOT_STARTED


def _graph(**statuses: TaskStatus) -> DependencyGraph[Node]:
    """research -> (request, collect) -> process."""
    nodes = [
        Node("research"),
        Node("request", ["research"]),
        Node("collect", ["research"]),
        Node("process", ["collect", "request"]),
    ]
    for node in nodes:
        node.status = statuses.get(node.task_type, node.status)
    return DependencyGraph(nodes)


@pytest.mark.unit
class TestDependencyGraph:
    """Tests for dependency navigation."""

    def test_roots(self) -> None:
        assert [node.task_type for node in _graph().roots()] == ["research"]

    def test_dependents(self) -> None:
        graph = _graph()

        assert sorted(node.task_type for node in graph.dependents("research")) == ["collect", "request"]
        assert graph.dependents("process") == []

    def test_pending_dependencies(self) -> None:
        graph = _graph(research=TaskStatus.COMPLETED, request=TaskStatus.COMPLETED)

        assert graph.pending_dependencies("process") == ["collect"]
        assert graph.pending_dependencies("request") == []

    def test_eligible_dependents_after_completion(self) -> None:
        graph = _graph(research=TaskStatus.COMPLETED)

        eligible = graph.eligible_dependents("research")

        assert sorted(node.task_type for node in eligible) == ["collect", "request"]

    def test_join_waits_for_all_dependencies(self) -> None:
        graph = _graph(research=TaskStatus.COMPLETED, request=TaskStatus.COMPLETED, collect=TaskStatus.IN_PROGRESS)

        assert graph.eligible_dependents("request") == []

    def test_started_dependents_are_not_eligible_again(self) -> None:
        graph = _graph(research=TaskStatus.COMPLETED, request=TaskStatus.IN_PROGRESS)

        assert [node.task_type for node in graph.eligible_dependents("research")] == ["collect"]
