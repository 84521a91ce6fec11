"""Resume poller.

Periodically asks the scheduler to resume waiting executions whose ``resume_at``
has elapsed. This is the timer that brings delayed runs and retry backoffs back to
life; any number of pollers may run against the same stores, the execution lease
keeps them from double-driving a run.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from litestar_automations.logging import get_logger

if TYPE_CHECKING:
    from uuid import UUID

    from litestar_automations.engine.scheduler import Scheduler

__all__ = ["ResumePoller"]

logger = get_logger(__name__)


class ResumePoller:
    """Background task polling for due waiting executions.

    Example:
        >>> poller = ResumePoller(scheduler, interval=5.0)
        >>> await poller.start()
        >>> ...
        >>> await poller.stop()
    """

    def __init__(self, scheduler: Scheduler, interval: float | None = None, recover_on_start: bool = True) -> None:
        """Initialize the poller.

        Args:
            scheduler: The scheduler resuming executions.
            interval: Seconds between polls. Defaults to the engine's ``poll_interval``.
            recover_on_start: Re-drive orphaned running executions when started.
        """
        self.scheduler = scheduler
        self.interval = interval if interval is not None else scheduler.config.poll_interval
        self.recover_on_start = recover_on_start
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> list[UUID]:
        """Run a single poll and return the ids of the executions scheduled."""
        return await self.scheduler.resume_due()

    async def start(self) -> None:
        if self.running:
            return
        if self.recover_on_start:
            await self.scheduler.recover()
        self._task = asyncio.create_task(self._loop())
        logger.info("poller.started", interval=self.interval)

    async def stop(self) -> None:
        """Stop polling and wait for in-flight runs to return."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self.scheduler.drain()
        logger.info("poller.stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("poller.poll_failed")
            await asyncio.sleep(self.interval)
