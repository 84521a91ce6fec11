"""Workflow graph operations and validation.

This module provides graph-based operations for workflow definitions: navigation
between nodes, parsed node configurations, and the structural validation that runs
before a definition may be enabled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from litestar_automations.core.configs import NodeConfig, parse_node_config
from litestar_automations.core.types import EdgeLabel, NodeKind
from litestar_automations.exceptions import (
    AutomationsError,
    CycleDetectedError,
    DefinitionError,
    NodeConfigError,
)

if TYPE_CHECKING:
    from litestar_automations.core.definition import Edge, Node, WorkflowDefinition

__all__ = ["DEFAULT_MAX_NODES", "WorkflowGraph", "validate"]

DEFAULT_MAX_NODES = 100

_SINGLE_EXIT_KINDS = frozenset({NodeKind.TRIGGER, NodeKind.ACTION, NodeKind.DELAY, NodeKind.AI_RESPONSE})


class WorkflowGraph:
    """Graph representation of a workflow definition for navigation and validation.

    Attributes:
        definition: The workflow definition this graph represents.
        _nodes: Mapping of node id to node.
        _adjacency: Adjacency list mapping node ids to outgoing edges.
        _configs: Cache of parsed node configurations.
    """

    def __init__(self, definition: WorkflowDefinition) -> None:
        """Initialize a workflow graph from a definition.

        Args:
            definition: The workflow definition to represent as a graph.
        """
        self.definition = definition
        self._nodes: dict[str, Node] = {}
        self._adjacency: dict[str, list[Edge]] = {}
        self._configs: dict[str, NodeConfig] = {}
        self._build_adjacency()

    def _build_adjacency(self) -> None:
        """Build adjacency lists from workflow edges."""
        for node in self.definition.nodes:
            self._nodes.setdefault(node.id, node)
            self._adjacency.setdefault(node.id, [])

        for edge in self.definition.edges:
            self._adjacency.setdefault(edge.source, []).append(edge)

    @classmethod
    def from_definition(cls, definition: WorkflowDefinition) -> WorkflowGraph:
        """Create a workflow graph from a definition."""
        return cls(definition)

    @property
    def node_count(self) -> int:
        return self.definition.node_count

    @property
    def trigger(self) -> Node | None:
        """The trigger node, when the definition has exactly one."""
        triggers = self.definition.trigger_nodes()
        return triggers[0] if len(triggers) == 1 else None

    def node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def outgoing(self, node_id: str) -> list[Edge]:
        """Return the outgoing edges of a node."""
        return self._adjacency.get(node_id, [])

    def config(self, node_id: str) -> NodeConfig:
        """Return the parsed configuration of a node.

        Args:
            node_id: The node.

        Returns:
            The typed configuration.

        Raises:
            NodeConfigError: If the node is unknown or its config is invalid.
        """
        if node_id not in self._configs:
            node = self._nodes.get(node_id)
            if node is None:
                msg = f"Node '{node_id}' not found"
                raise NodeConfigError(msg, node_id)
            self._configs[node_id] = parse_node_config(node.kind, node.config, node_id)
        return self._configs[node_id]

    def next_node(self, node_id: str, label: str | None = None) -> str | None:
        """Resolve the node that follows ``node_id``.

        Args:
            node_id: The current node.
            label: Branch label to follow; condition nodes pass ``"true"`` or
                ``"false"``.

        Returns:
            The target node id, or None when the node is terminal on that branch.
        """
        for edge in self._adjacency.get(node_id, []):
            if label is None or edge.label == label:
                return edge.target
        return None

    def is_terminal(self, node_id: str) -> bool:
        """Check whether a node has no outgoing edge."""
        return not self._adjacency.get(node_id)

    def validate(self, max_nodes: int = DEFAULT_MAX_NODES) -> list[AutomationsError]:
        """Validate the graph structure.

        Checks:
        - node count does not exceed ``max_nodes``
        - node ids are unique
        - every node config matches its kind-specific schema
        - exactly one trigger node
        - every edge references existing nodes
        - condition nodes have exactly one ``true`` and one ``false`` branch
        - other nodes have at most one outgoing edge
        - no cycle is reachable from the trigger

        Args:
            max_nodes: Maximum number of nodes allowed.

        Returns:
            The problems found, as exception instances. Empty if valid.

        Example:
            >>> errors = WorkflowGraph(definition).validate()
            >>> [type(error).__name__ for error in errors]
            ['CycleDetectedError']
        """
        errors: list[AutomationsError] = []
        definition = self.definition

        if definition.node_count > max_nodes:
            errors.append(DefinitionError(f"Workflow has {definition.node_count} nodes, the maximum is {max_nodes}"))

        seen: set[str] = set()
        for node in definition.nodes:
            if node.id in seen:
                errors.append(DefinitionError(f"Duplicate node id '{node.id}'", node.id))
                continue
            seen.add(node.id)
            try:
                self.config(node.id)
            except NodeConfigError as exc:
                errors.append(exc)

        triggers = definition.trigger_nodes()
        if not triggers:
            errors.append(DefinitionError("Workflow has no trigger node"))
        elif len(triggers) > 1:
            ids = ", ".join(node.id for node in triggers)
            errors.append(DefinitionError(f"Workflow has {len(triggers)} trigger nodes ({ids}), expected one"))

        for edge in definition.edges:
            if edge.source not in self._nodes:
                errors.append(DefinitionError(f"Edge source '{edge.source}' not found in nodes", edge.source))
            if edge.target not in self._nodes:
                errors.append(DefinitionError(f"Edge target '{edge.target}' not found in nodes", edge.target))

        for node in self._nodes.values():
            errors.extend(self._validate_exits(node))

        if len(triggers) == 1:
            cycle_node = self._find_cycle(triggers[0].id)
            if cycle_node is not None:
                errors.append(CycleDetectedError(cycle_node))

        return errors

    def _validate_exits(self, node: Node) -> list[AutomationsError]:
        edges = self._adjacency.get(node.id, [])
        if node.kind == NodeKind.CONDITION:
            labels = sorted(str(edge.label) for edge in edges)
            if labels != [EdgeLabel.FALSE, EdgeLabel.TRUE]:
                msg = f"Condition node '{node.id}' must have exactly one 'true' and one 'false' branch"
                return [DefinitionError(msg, node.id)]
        elif node.kind in _SINGLE_EXIT_KINDS and len(edges) > 1:
            return [DefinitionError(f"Node '{node.id}' has {len(edges)} outgoing edges, at most one allowed", node.id)]
        return []

    def _find_cycle(self, start: str) -> str | None:
        """Depth-first search with a recursion stack.

        Returns:
            The node closing the first cycle found, or None.
        """
        visited: set[str] = set()
        on_stack: set[str] = {start}
        stack = [(start, iter(self._adjacency.get(start, [])))]

        while stack:
            current, edges = stack[-1]
            edge = next(edges, None)
            if edge is None:
                stack.pop()
                on_stack.discard(current)
                visited.add(current)
                continue

            target = edge.target
            if target in on_stack:
                return target
            if target in visited or target not in self._nodes:
                continue
            on_stack.add(target)
            stack.append((target, iter(self._adjacency.get(target, []))))

        return None


def validate(definition: WorkflowDefinition, max_nodes: int = DEFAULT_MAX_NODES) -> list[AutomationsError]:
    """Validate a workflow definition.

    Args:
        definition: The definition to check.
        max_nodes: Maximum number of nodes allowed.

    Returns:
        The problems found. Empty if the definition is valid.
    """
    return WorkflowGraph(definition).validate(max_nodes=max_nodes)
