"""Per-execution leases."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

from litestar_automations.config import utcnow

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime, timedelta
    from uuid import UUID

__all__ = ["InMemoryLeaseManager", "Lease", "generate_worker_id"]


def generate_worker_id() -> str:
    """Return an owner id unique to this worker, e.g. ``host:1234:9f2c1a``."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:6]}"


@dataclass
class Lease:
    owner: str
    expires_at: datetime


class InMemoryLeaseManager:
    """Process-local lease table.

    Leases expire on their own, so a worker that dies while driving an execution
    does not block it forever.

    Example:
        >>> leases = InMemoryLeaseManager()
        >>> await leases.acquire(execution_id, "worker-a", timedelta(seconds=60))
        True
        >>> await leases.acquire(execution_id, "worker-b", timedelta(seconds=60))
        False
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._leases: dict[UUID, Lease] = {}

    async def acquire(self, execution_id: UUID, owner: str, ttl: timedelta) -> bool:
        now = self._clock()
        lease = self._leases.get(execution_id)
        if lease is not None and lease.owner != owner and lease.expires_at > now:
            return False
        self._leases[execution_id] = Lease(owner=owner, expires_at=now + ttl)
        return True

    async def release(self, execution_id: UUID, owner: str) -> None:
        lease = self._leases.get(execution_id)
        if lease is not None and lease.owner == owner:
            del self._leases[execution_id]

    async def holder(self, execution_id: UUID) -> str | None:
        lease = self._leases.get(execution_id)
        if lease is None or lease.expires_at <= self._clock():
            return None
        return lease.owner
