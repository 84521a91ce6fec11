"""Idempotency keys and the in-memory record store."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from uuid import UUID

__all__ = ["InMemoryIdempotencyStore", "idempotency_key"]


def idempotency_key(execution_id: UUID | str, node_id: str) -> str:
    """Return the deterministic key of the side effect of ``node_id`` in an execution.

    Retries and resumes of the same node reuse the same key.
    """
    return f"{execution_id}:{node_id}"


class InMemoryIdempotencyStore:
    """Process-local record of completed side effects.

    Suitable for tests and single-process deployments. Use
    :class:`~litestar_automations.db.stores.SQLAlchemyIdempotencyStore` to share
    records between workers.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    async def get(self, key: str) -> dict[str, Any] | None:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, key: str, output: dict[str, Any]) -> None:
        self._records.setdefault(key, copy.deepcopy(output))

    def __len__(self) -> int:
        return len(self._records)
