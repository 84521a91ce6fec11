"""Workflow definition structures.

This module provides the data structures for tenant-authored workflow graphs:
nodes, edges, per-workflow settings and the complete definition.
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from litestar_automations.core.types import NodeKind

__all__ = ["Edge", "Node", "WorkflowDefinition", "WorkflowSettings"]


@dataclass
class Node:
    """A typed step of a workflow graph.

    Attributes:
        id: Identifier, unique within the definition.
        kind: The node kind.
        config: Kind-specific options. Kept as authored; it is checked against
            the kind's schema by validation and parsed before execution.
        position: Display coordinates for the builder UI. Ignored by the engine.

    Example:
        >>> node = Node(id="wait", kind=NodeKind.DELAY, config={"amount": 10, "unit": "minutes"})
    """

    id: str
    kind: NodeKind
    config: dict[str, Any] = field(default_factory=dict)
    position: dict[str, float] | None = None

    def __post_init__(self) -> None:
        # unknown kinds are kept as authored and reported by validation
        with suppress(ValueError):
            self.kind = NodeKind(self.kind)
        if isinstance(self.config, BaseModel):
            self.config = self.config.model_dump(mode="json")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "kind": str(self.kind), "config": dict(self.config)}
        if self.position is not None:
            data["position"] = dict(self.position)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        return cls(
            id=data["id"],
            kind=data["kind"],
            config=dict(data.get("config") or {}),
            position=data.get("position"),
        )


@dataclass
class Edge:
    """A directed connection between two nodes.

    Attributes:
        source: Identifier of the source node.
        target: Identifier of the target node.
        label: ``"true"`` or ``"false"`` on condition branches, otherwise None.

    Example:
        >>> Edge(source="check", target="reply", label="true")
        Edge(source='check', target='reply', label='true')
    """

    source: str
    target: str
    label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "target": self.target, "label": self.label}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        return cls(source=data["source"], target=data["target"], label=data.get("label"))


@dataclass
class WorkflowSettings:
    """Per-workflow run admission settings.

    A contact with no prior run of the workflow is always admitted. A returning
    contact needs ``allow_reentry`` and no active run, and is refused once its
    finished runs reach ``max_executions_per_contact``.

    Attributes:
        allow_reentry: Whether a contact that already has a run of the workflow may
            start another one.
        max_executions_per_contact: Ceiling of finished runs per contact before
            re-entry is refused. None means unlimited.
    """

    allow_reentry: bool = False
    max_executions_per_contact: int | None = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "allow_reentry": self.allow_reentry,
            "max_executions_per_contact": self.max_executions_per_contact,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> WorkflowSettings:
        data = data or {}
        return cls(
            allow_reentry=data.get("allow_reentry", False),
            max_executions_per_contact=data.get("max_executions_per_contact", 1),
        )


@dataclass
class WorkflowDefinition:
    """Organization-scoped, versioned workflow graph.

    A definition is read-only while runs execute it. Saving it through a definition
    store validates it and bumps ``version``; executions keep a reference to the
    ``(id, version)`` pair they were created from.

    Attributes:
        id: Stable identifier of the workflow across versions.
        organization_id: Owning organization.
        name: Human-readable name.
        nodes: The nodes of the graph.
        edges: The edges of the graph.
        enabled: Whether the workflow reacts to events.
        version: Version number, assigned by the definition store.
        settings: Run admission settings.
        description: Optional description.
        created_at: Creation timestamp of the workflow.
        updated_at: Timestamp of this version.

    Example:
        >>> definition = WorkflowDefinition(
        ...     id="welcome",
        ...     organization_id="org_1",
        ...     name="Welcome",
        ...     nodes=[
        ...         Node("start", NodeKind.TRIGGER, {"event_type": "contact_created"}),
        ...         Node("greet", NodeKind.ACTION, {"action": "send_message", "text": "Hi!"}),
        ...     ],
        ...     edges=[Edge("start", "greet")],
        ...     enabled=True,
        ... )
    """

    id: str
    organization_id: str
    name: str
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    enabled: bool = False
    version: int = 1
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    description: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def node_count(self) -> int:
        """Number of nodes in the definition."""
        return len(self.nodes)

    def get_node(self, node_id: str) -> Node | None:
        """Return the node with the given id, or None."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def trigger_nodes(self) -> list[Node]:
        """Return every node of kind ``trigger``."""
        return [node for node in self.nodes if node.kind == NodeKind.TRIGGER]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the definition to a JSON-compatible mapping."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "version": self.version,
            "settings": self.settings.to_dict(),
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowDefinition:
        """Build a definition from the output of :meth:`to_dict`.

        Args:
            data: Serialized definition.

        Returns:
            The reconstructed definition.
        """
        now = datetime.now(timezone.utc)
        created_at = data.get("created_at")
        updated_at = data.get("updated_at")
        return cls(
            id=data["id"],
            organization_id=data["organization_id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            enabled=bool(data.get("enabled", False)),
            version=int(data.get("version", 1)),
            settings=WorkflowSettings.from_dict(data.get("settings")),
            nodes=[Node.from_dict(node) for node in data.get("nodes", [])],
            edges=[Edge.from_dict(edge) for edge in data.get("edges", [])],
            created_at=datetime.fromisoformat(created_at) if created_at else now,
            updated_at=datetime.fromisoformat(updated_at) if updated_at else now,
        )
