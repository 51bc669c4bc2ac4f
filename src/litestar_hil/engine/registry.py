"""Template registry for managing workflow templates.

This module provides a registry for storing, validating and retrieving the
versioned workflow templates tasks are created from.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from litestar_hil.exceptions import TemplateNotFoundError, TemplateValidationError

if TYPE_CHECKING:
    from litestar_hil.core.definition import WorkflowTemplate

__all__ = ["TemplateRegistry"]

logger = logging.getLogger(__name__)


def _version_key(version: str) -> tuple[tuple[int, int | str], ...]:
    """Sort key comparing dotted versions part by part, numerically where possible."""
    return tuple((0, int(part)) if part.isdigit() else (1, part) for part in version.split("."))


class TemplateRegistry:
    """Registry for storing and retrieving workflow templates.

    The registry maps workflow types to versions and their templates. It is
    read-only once the application has started; templates are only consulted
    when a workflow is activated.

    Attributes:
        _templates: Nested dict mapping workflow type -> version -> WorkflowTemplate.
    """

    def __init__(self, templates: list[WorkflowTemplate] | None = None) -> None:
        """Initialize the registry.

        Args:
            templates: Templates to register right away.
        """
        self._templates: dict[str, dict[str, WorkflowTemplate]] = {}
        for template in templates or []:
            self.register(template)

    def register(self, template: WorkflowTemplate) -> None:
        """Validate and register a template.

        Args:
            template: The template to register.

        Raises:
            TemplateValidationError: If the template is invalid or the version
                is already registered.

        Example:
            >>> registry = TemplateRegistry()
            >>> registry.register(PAYOFF_REQUEST_TEMPLATE)
        """
        errors = template.validate()
        versions = self._templates.setdefault(template.workflow_type, {})
        if template.version in versions:
            errors.append(f"Version '{template.version}' of '{template.workflow_type}' is already registered")
        if errors:
            if not versions:
                del self._templates[template.workflow_type]
            raise TemplateValidationError(errors)

        versions[template.version] = template
        logger.info("Registered template %s v%s", template.workflow_type, template.version)

    def get_template(self, workflow_type: str, version: str | None = None) -> WorkflowTemplate:
        """Retrieve a template by workflow type and optional version.

        Args:
            workflow_type: The workflow type.
            version: The template version. If None, returns the latest version.

        Returns:
            The WorkflowTemplate for the requested workflow type.

        Raises:
            TemplateNotFoundError: If the workflow type or version is not registered.

        Example:
            >>> template = registry.get_template("PAYOFF_REQUEST")
            >>> template_v1 = registry.get_template("PAYOFF_REQUEST", "1.0.0")
        """
        versions = self._templates.get(str(workflow_type))
        if not versions:
            raise TemplateNotFoundError(str(workflow_type), version)

        if version is None:
            version = max(versions, key=_version_key)

        if version not in versions:
            raise TemplateNotFoundError(str(workflow_type), version)

        return versions[version]

    def list_templates(self, *, latest_only: bool = True) -> list[WorkflowTemplate]:
        """List registered templates.

        Args:
            latest_only: If True, only return the latest version of each workflow type.

        Returns:
            List of WorkflowTemplate objects ordered by workflow type.
        """
        templates: list[WorkflowTemplate] = []
        for workflow_type in sorted(self._templates):
            versions = self._templates[workflow_type]
            ordered = sorted(versions, key=_version_key)
            if latest_only:
                templates.append(versions[ordered[-1]])
            else:
                templates.extend(versions[version] for version in ordered)
        return templates

    def has_template(self, workflow_type: str, version: str | None = None) -> bool:
        """Check if a template exists in the registry."""
        versions = self._templates.get(str(workflow_type))
        if not versions:
            return False
        return version is None or version in versions

    def get_versions(self, workflow_type: str) -> list[str]:
        """Get all registered versions of a workflow type, oldest first.

        Raises:
            TemplateNotFoundError: If the workflow type is not registered.
        """
        versions = self._templates.get(str(workflow_type))
        if not versions:
            raise TemplateNotFoundError(str(workflow_type))
        return sorted(versions, key=_version_key)
