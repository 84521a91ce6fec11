"""Engine configuration."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

__all__ = ["EngineConfig", "utcnow"]


def utcnow() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(timezone.utc)


def _default_plan_timeouts() -> dict[str, timedelta]:
    return {
        "free": timedelta(minutes=5),
        "pro": timedelta(minutes=30),
        "enterprise": timedelta(hours=2),
    }


@dataclass
class EngineConfig:
    """Limits and timings of the automation engine.

    The run deadline is fixed at run creation as ``started_at`` plus the plan tier
    timeout, and is checked before every step. It bounds the time a run spends
    being driven: a delay node pushes the deadline back by its own duration, so a
    run waiting on a delay of a day is not timed out on waking. Retry backoff
    waits do not move the deadline.

    Attributes:
        max_nodes: Maximum number of nodes a definition may have.
        default_run_timeout: Run deadline when the plan tier is unknown.
        plan_run_timeouts: Run deadline per organization plan tier.
        call_timeout: Default timeout of a single adapter call.
        default_max_attempts: Attempts allowed by ``retry_then_abort``.
        default_backoff: Wait before the second attempt.
        backoff_multiplier: Factor applied to the wait after each further attempt.
        lease_ttl: Lifetime of an execution lease; renewed on every step.
        poll_interval: Seconds between two polls of due waiting executions.
        poll_batch_size: Maximum executions resumed per poll.
        max_concurrent_runs: Maximum executions driven at once by one scheduler.
        clock: Source of the current UTC time.

    Example:
        >>> config = EngineConfig(max_nodes=50, call_timeout=timedelta(seconds=10))
        >>> config.run_timeout_for("pro")
        datetime.timedelta(seconds=1800)
    """

    max_nodes: int = 100
    default_run_timeout: timedelta = timedelta(minutes=5)
    plan_run_timeouts: dict[str, timedelta] = field(default_factory=_default_plan_timeouts)
    call_timeout: timedelta = timedelta(seconds=30)
    default_max_attempts: int = 3
    default_backoff: timedelta = timedelta(seconds=1)
    backoff_multiplier: float = 2.0
    lease_ttl: timedelta = timedelta(seconds=60)
    poll_interval: float = 5.0
    poll_batch_size: int = 100
    max_concurrent_runs: int = 50
    clock: Callable[[], datetime] = utcnow

    def run_timeout_for(self, plan_tier: str | None) -> timedelta:
        """Return the run deadline span for an organization plan tier."""
        if plan_tier is None:
            return self.default_run_timeout
        return self.plan_run_timeouts.get(plan_tier, self.default_run_timeout)

    def now(self) -> datetime:
        return self.clock()
