"""Execution context.

This module provides the :class:`ExecutionContext`, the variable store an execution
accumulates while it walks a workflow graph.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from numbers import Number
from typing import TYPE_CHECKING, Any

from litestar_automations.exceptions import ContextConflictError

if TYPE_CHECKING:
    from litestar_automations.core.models import TriggerEvent

__all__ = ["ExecutionContext"]

_MISSING = object()


def _compatible(existing: Any, new: Any) -> bool:
    if existing is None or new is None:
        return True
    if isinstance(existing, bool) or isinstance(new, bool):
        return isinstance(existing, bool) and isinstance(new, bool)
    if isinstance(existing, Number) and isinstance(new, Number):
        return True
    return isinstance(new, type(existing)) or isinstance(existing, type(new))


@dataclass
class ExecutionContext:
    """Variables and node outputs accumulated during one execution.

    The context is seeded with the triggering event's payload and only ever grows.
    Node outputs are stored under ``<node_id>.<key>`` so two nodes can never clobber
    each other, and a key that already holds a value refuses a value of an
    incompatible type.

    Attributes:
        data: The flat key/value store. Payload fields sit at the top level,
            node outputs under namespaced keys.

    Example:
        >>> ctx = ExecutionContext({"text": "hello", "contact": {"name": "Ada"}})
        >>> ctx.lookup("contact.name")
        ('Ada', True)
        >>> ctx.set("ai_1", "text", "Hi Ada!")
        >>> ctx.get("ai_1.text")
        'Hi Ada!'
    """

    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: TriggerEvent) -> ExecutionContext:
        """Seed a context from a triggering event.

        Payload fields are copied to the top level; event metadata is kept under
        ``event`` and ``organization_id``.

        Args:
            event: The event that started the run.

        Returns:
            A new context owning a copy of the payload.
        """
        data: dict[str, Any] = copy.deepcopy(dict(event.payload))
        data.setdefault("organization_id", event.organization_id)
        data["event"] = {
            "type": str(event.type),
            "organization_id": event.organization_id,
            "occurred_at": event.occurred_at.isoformat(),
        }
        return cls(data=data)

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> ExecutionContext:
        """Rebuild a context from a persisted snapshot."""
        return cls(data=copy.deepcopy(snapshot))

    def lookup(self, key: str) -> tuple[Any, bool]:
        """Resolve a key, following dotted paths through nested mappings.

        An exact key match wins, so namespaced node outputs such as
        ``condition_1.result`` resolve directly; otherwise ``contact.tags`` walks
        ``data["contact"]["tags"]``.

        Args:
            key: A plain or dotted key.

        Returns:
            A ``(value, found)`` pair. ``value`` is None when not found.
        """
        if key in self.data:
            return self.data[key], True

        parts = key.split(".")
        # longest namespaced prefix first, e.g. "ai_1.output" then ".field"
        for split in range(len(parts) - 1, 0, -1):
            head = ".".join(parts[:split])
            if head not in self.data:
                continue
            value: Any = self.data[head]
            for part in parts[split:]:
                value = _descend(value, part)
                if value is _MISSING:
                    break
            else:
                return value, True
        return None, False

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for ``key`` or ``default`` when it is not set."""
        value, found = self.lookup(key)
        return value if found else default

    def set(self, node_id: str, key: str, value: Any) -> None:
        """Store a node output under ``<node_id>.<key>``.

        Args:
            node_id: The node producing the value.
            key: The output name.
            value: The value to store.

        Raises:
            ContextConflictError: If the key already holds a value of an
                incompatible type.
        """
        namespaced = f"{node_id}.{key}"
        if namespaced in self.data and not _compatible(self.data[namespaced], value):
            raise ContextConflictError(namespaced, type(self.data[namespaced]), type(value))
        self.data[namespaced] = value

    def snapshot(self) -> dict[str, Any]:
        """Return a deep copy of the context suitable for persistence."""
        return copy.deepcopy(self.data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.lookup(key)[1]


def _descend(value: Any, part: str) -> Any:
    if isinstance(value, dict):
        return value.get(part, _MISSING)
    if isinstance(value, list) and part.isdigit():
        index = int(part)
        return value[index] if index < len(value) else _MISSING
    return _MISSING
