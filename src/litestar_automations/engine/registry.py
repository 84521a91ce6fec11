"""In-memory definition store.

This module provides a registry for storing, retrieving, and versioning workflow
definitions, validating them on save.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from litestar_automations.engine.graph import DEFAULT_MAX_NODES, validate
from litestar_automations.exceptions import WorkflowNotFoundError, WorkflowValidationError
from litestar_automations.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from litestar_automations.core.definition import WorkflowDefinition

__all__ = ["DefinitionRegistry"]

logger = get_logger(__name__)


class DefinitionRegistry:
    """Registry for storing and retrieving workflow definitions.

    Each save stores a new version. Executions keep referencing the version they
    started with, so saving never affects runs in flight.

    Attributes:
        max_nodes: Node-count ceiling enforced by validation.
        _definitions: Nested dict mapping workflow id -> version -> definition.
    """

    def __init__(self, max_nodes: int = DEFAULT_MAX_NODES, clock: Callable[[], datetime] | None = None) -> None:
        """Initialize an empty registry.

        Args:
            max_nodes: Node-count ceiling enforced by validation.
            clock: Source of the current time for version timestamps.
        """
        self.max_nodes = max_nodes
        self._clock = clock
        self._definitions: dict[str, dict[int, WorkflowDefinition]] = {}

    async def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Validate and store a definition as the next version of its workflow.

        Disabled definitions are stored even when invalid, as drafts; an invalid
        definition is never stored enabled.

        Args:
            definition: The definition to save. It is copied, not kept.

        Returns:
            The stored copy, with its assigned version.

        Raises:
            WorkflowValidationError: If the definition is enabled and invalid.

        Example:
            >>> registry = DefinitionRegistry()
            >>> saved = await registry.save_definition(definition)
            >>> saved.version
            1
        """
        errors = validate(definition, max_nodes=self.max_nodes)
        if errors and definition.enabled:
            logger.info("definition.rejected", workflow_id=definition.id, errors=[str(e) for e in errors])
            raise WorkflowValidationError(errors)

        stored = copy.deepcopy(definition)
        versions = self._definitions.setdefault(definition.id, {})
        stored.version = max(versions, default=0) + 1
        if versions:
            stored.created_at = versions[min(versions)].created_at
        if self._clock is not None:
            stored.updated_at = self._clock()
        versions[stored.version] = stored

        logger.info("definition.saved", workflow_id=stored.id, version=stored.version, enabled=stored.enabled)
        return copy.deepcopy(stored)

    async def get_definition(self, workflow_id: str, version: int | None = None) -> WorkflowDefinition:
        """Retrieve a definition by id and optional version.

        Args:
            workflow_id: The workflow id.
            version: The version. If None, returns the latest version.

        Returns:
            A copy of the stored definition.

        Raises:
            WorkflowNotFoundError: If the workflow or version is not found.
        """
        versions = self._definitions.get(workflow_id)
        if not versions:
            raise WorkflowNotFoundError(workflow_id, version)

        if version is None:
            version = max(versions)
        if version not in versions:
            raise WorkflowNotFoundError(workflow_id, version)

        return copy.deepcopy(versions[version])

    async def get_enabled_definitions(self, organization_id: str) -> list[WorkflowDefinition]:
        """Return the latest version of every enabled workflow of an organization."""
        definitions = []
        for versions in self._definitions.values():
            latest = versions[max(versions)]
            if latest.enabled and latest.organization_id == organization_id:
                definitions.append(copy.deepcopy(latest))
        return definitions

    def list_definitions(self, latest_only: bool = True) -> list[WorkflowDefinition]:
        """List stored definitions.

        Args:
            latest_only: If True, only return the latest version of each workflow.
        """
        definitions = []
        for versions in self._definitions.values():
            if latest_only:
                definitions.append(versions[max(versions)])
            else:
                definitions.extend(versions[v] for v in sorted(versions))
        return [copy.deepcopy(definition) for definition in definitions]

    def get_versions(self, workflow_id: str) -> list[int]:
        """Return the stored versions of a workflow, oldest first.

        Raises:
            WorkflowNotFoundError: If the workflow is not found.
        """
        if workflow_id not in self._definitions:
            raise WorkflowNotFoundError(workflow_id)
        return sorted(self._definitions[workflow_id])
