"""Workflow template and task blueprint structures.

This module provides the static plan of a workflow type: the ordered task
blueprints, their dependencies and their SLA defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from litestar_hil.core.types import ExecutorKind

__all__ = ["TaskBlueprint", "WorkflowTemplate"]


@dataclass(frozen=True)
class TaskBlueprint:
    """Static definition of one task in a workflow template.

    Attributes:
        task_type: Stable identifier of the task within its template.
        executor_kind: Whether an agent or a human performs the task.
        sequence_order: Display and creation order within the workflow.
        default_sla_hours: Hours allotted to the task once it starts.
        dependencies: Task types that must be completed before this one starts.
        title: Human readable task title.
        max_retries: Retries allowed after a failure. None uses the engine default.
        alert_offsets_hours: Hours before the due date at which alerts fire.
            None uses the template's offsets.

    Example:
        >>> TaskBlueprint(
        ...     task_type="request_payoff",
        ...     executor_kind=ExecutorKind.AI,
        ...     sequence_order=2,
        ...     default_sla_hours=24,
        ...     dependencies=frozenset({"lookup_lender"}),
        ... )
    """

    task_type: str
    executor_kind: ExecutorKind
    sequence_order: int
    default_sla_hours: float
    dependencies: frozenset[str] = field(default_factory=frozenset)
    title: str = ""
    max_retries: int | None = None
    alert_offsets_hours: tuple[float, ...] | None = None

    @property
    def display_title(self) -> str:
        """Title, falling back to a prettified task type."""
        return self.title or self.task_type.replace("_", " ").title()


@dataclass(frozen=True)
class WorkflowTemplate:
    """Declarative, versioned plan of a workflow type.

    Attributes:
        workflow_type: The workflow type this template expands.
        version: Version string of the template.
        tasks: Task blueprints. Kept sorted by ``sequence_order``.
        description: Human-readable description of the workflow's purpose.
        is_business_hours_only: Whether SLA clocks only run in business hours.
        alert_offsets_hours: Hours before the due date at which alerts fire.
            The largest offset marks the start of the AT_RISK window.
    """

    workflow_type: str
    version: str
    tasks: tuple[TaskBlueprint, ...]
    description: str = ""
    is_business_hours_only: bool = False
    alert_offsets_hours: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tasks", tuple(sorted(self.tasks, key=lambda t: t.sequence_order)))

    def get_blueprint(self, task_type: str) -> TaskBlueprint:
        """Look up a blueprint by task type.

        Args:
            task_type: The task type to find.

        Returns:
            The matching blueprint.

        Raises:
            KeyError: If the template has no such task type.
        """
        for blueprint in self.tasks:
            if blueprint.task_type == task_type:
                return blueprint
        msg = f"Task type '{task_type}' not found in template '{self.workflow_type}'"
        raise KeyError(msg)

    def alert_window_hours(self, blueprint: TaskBlueprint) -> float | None:
        """Resolve the AT_RISK window for a blueprint.

        The first alert offset to be crossed (the largest) opens the window.

        Args:
            blueprint: The blueprint to resolve the window for.

        Returns:
            Window length in hours, or None if no offsets are configured.
        """
        offsets = blueprint.alert_offsets_hours or self.alert_offsets_hours
        return max(offsets) if offsets else None

    def validate(self) -> list[str]:
        """Validate the template for common issues.

        Returns:
            List of validation error messages. Empty list if valid.

        Example:
            >>> errors = template.validate()
            >>> if errors:
            ...     print("Validation errors:", errors)
        """
        errors: list[str] = []

        if not self.tasks:
            errors.append("Template has no tasks")

        task_types = [t.task_type for t in self.tasks]
        seen: set[str] = set()
        for task_type in task_types:
            if task_type in seen:
                errors.append(f"Duplicate task type '{task_type}'")
            seen.add(task_type)

        for blueprint in self.tasks:
            if blueprint.default_sla_hours <= 0:
                errors.append(f"Task '{blueprint.task_type}': SLA hours must be positive")
            if blueprint.max_retries is not None and blueprint.max_retries < 0:
                errors.append(f"Task '{blueprint.task_type}': max_retries must not be negative")
            if blueprint.task_type in blueprint.dependencies:
                errors.append(f"Task '{blueprint.task_type}' depends on itself")
            for dependency in blueprint.dependencies:
                if dependency not in seen:
                    errors.append(f"Task '{blueprint.task_type}': dependency '{dependency}' not found")
            offsets = blueprint.alert_offsets_hours or self.alert_offsets_hours
            if offsets and max(offsets) >= blueprint.default_sla_hours:
                errors.append(f"Task '{blueprint.task_type}': alert offsets must be shorter than the SLA")

        # Kahn's algorithm: whatever cannot be peeled off is on a cycle
        remaining = {t.task_type: set(t.dependencies) & seen for t in self.tasks}
        while True:
            ready = [task_type for task_type, deps in remaining.items() if not deps & remaining.keys()]
            if not ready:
                break
            for task_type in ready:
                del remaining[task_type]
        if remaining:
            errors.append(f"Dependency cycle between tasks: {', '.join(sorted(remaining))}")

        return errors
