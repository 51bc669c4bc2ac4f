"""Dependency graph over the tasks of one workflow.

This module provides navigation of the task dependency graph: which tasks a
task waits for, which tasks wait for it, and which tasks may start now.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

from litestar_hil.core.types import TaskStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = ["DependencyGraph", "GraphNode"]


class GraphNode(Protocol):
    """The task fields dependency navigation depends on."""

    task_type: str
    depends_on: list[str]
    status: TaskStatus


NodeT = TypeVar("NodeT", bound=GraphNode)


class DependencyGraph(Generic[NodeT]):
    """Graph representation of a workflow's tasks.

    Attributes:
        _nodes: Tasks keyed by task type.
        _dependents: Reverse adjacency mapping a task type to the types waiting on it.
    """

    def __init__(self, tasks: Iterable[NodeT]) -> None:
        """Initialize the graph from the tasks of one workflow.

        Args:
            tasks: All tasks of the workflow.
        """
        self._nodes: dict[str, NodeT] = {task.task_type: task for task in tasks}
        self._dependents: dict[str, list[str]] = {task_type: [] for task_type in self._nodes}
        for task in self._nodes.values():
            for dependency in task.depends_on:
                self._dependents.setdefault(dependency, []).append(task.task_type)

    def get(self, task_type: str) -> NodeT:
        return self._nodes[task_type]

    def dependents(self, task_type: str) -> list[NodeT]:
        """Get the tasks that directly depend on a task.

        Args:
            task_type: The task type.

        Returns:
            Dependent tasks.

        Example:
            >>> [t.task_type for t in graph.dependents("lookup_lender")]
            ['request_payoff']
        """
        return [self._nodes[name] for name in self._dependents.get(task_type, []) if name in self._nodes]

    def roots(self) -> list[NodeT]:
        """Get the tasks without dependencies."""
        return [task for task in self._nodes.values() if not task.depends_on]

    def pending_dependencies(self, task_type: str) -> list[str]:
        """Get the dependencies of a task that are not completed yet.

        Args:
            task_type: The task type.

        Returns:
            Task types still blocking the task. Empty if it may start.
        """
        task = self._nodes[task_type]
        return [
            dependency
            for dependency in task.depends_on
            if dependency not in self._nodes or self._nodes[dependency].status != TaskStatus.COMPLETED
        ]

    def eligible_dependents(self, task_type: str) -> list[NodeT]:
        """Get the not-started dependents of a task whose dependencies are now all completed.

        Args:
            task_type: A task that just completed.

        Returns:
            Tasks that may start now.
        """
        return [
            dependent
            for dependent in self.dependents(task_type)
            if dependent.status == TaskStatus.NOT_STARTED and not self.pending_dependencies(dependent.task_type)
        ]
