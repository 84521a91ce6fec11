"""Trigger matching.

Selects the workflow definitions whose trigger node matches an inbound event.
Matching performs no side effects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from litestar_automations.core.configs import TriggerConfig
from litestar_automations.engine.conditions import evaluate_rules
from litestar_automations.engine.graph import WorkflowGraph
from litestar_automations.exceptions import NodeConfigError
from litestar_automations.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from litestar_automations.core.definition import WorkflowDefinition
    from litestar_automations.core.models import TriggerEvent
    from litestar_automations.core.protocols import DefinitionStore

__all__ = ["TriggerMatcher", "trigger_matches"]

logger = get_logger(__name__)


def trigger_matches(definition: WorkflowDefinition, event: TriggerEvent) -> bool:
    """Check whether ``event`` starts a run of ``definition``.

    A definition matches when it is enabled, belongs to the event's organization,
    its trigger is configured for the event type, and its sub-conditions hold
    against the event payload.

    Args:
        definition: The candidate definition.
        event: The inbound event.

    Returns:
        True if the definition matches.
    """
    if not definition.enabled or definition.organization_id != event.organization_id:
        return False

    graph = WorkflowGraph(definition)
    trigger = graph.trigger
    if trigger is None:
        return False
    try:
        config = graph.config(trigger.id)
    except NodeConfigError:
        logger.warning("trigger.invalid_config", workflow_id=definition.id, node_id=trigger.id)
        return False
    if not isinstance(config, TriggerConfig) or config.event_type != event.type:
        return False
    if not config.conditions:
        return True
    return evaluate_rules(config.conditions, event.payload, config.match)


class TriggerMatcher:
    """Selects the definitions an event should start.

    Example:
        >>> matcher = TriggerMatcher(registry)
        >>> definitions = await matcher.match(event)
    """

    def __init__(self, definitions: DefinitionStore) -> None:
        """Initialize the matcher.

        Args:
            definitions: Store providing the enabled definitions of an organization.
        """
        self.definitions = definitions

    @staticmethod
    def select(event: TriggerEvent, definitions: Iterable[WorkflowDefinition]) -> list[WorkflowDefinition]:
        """Return the definitions among ``definitions`` that ``event`` matches."""
        return [definition for definition in definitions if trigger_matches(definition, event)]

    async def match(self, event: TriggerEvent) -> list[WorkflowDefinition]:
        """Return every enabled definition of the event's organization that it matches."""
        candidates = await self.definitions.get_enabled_definitions(event.organization_id)
        matched = self.select(event, candidates)
        logger.debug(
            "trigger.matched",
            event_type=str(event.type),
            organization_id=event.organization_id,
            candidates=len(candidates),
            matched=[definition.id for definition in matched],
        )
        return matched
