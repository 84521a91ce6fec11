"""Retry policy resolution for side-effecting nodes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from litestar_automations.core.types import FailurePolicy

if TYPE_CHECKING:
    from litestar_automations.config import EngineConfig
    from litestar_automations.core.configs import AIResponseConfig, ActionConfig

__all__ = ["RetryPolicy"]


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a failing side effect is retried.

    Attributes:
        failure_policy: What happens once attempts are exhausted.
        max_attempts: Total attempts, the first one included.
        backoff: Wait before the second attempt.
        multiplier: Growth factor of the wait between further attempts.
        call_timeout: Timeout of a single attempt.
    """

    failure_policy: FailurePolicy
    max_attempts: int
    backoff: timedelta
    multiplier: float
    call_timeout: timedelta

    @classmethod
    def for_node(cls, config: ActionConfig | AIResponseConfig, engine: EngineConfig) -> RetryPolicy:
        """Resolve the policy of a node from its config and the engine defaults.

        Only ``retry_then_abort`` retries; ``abort_run`` and ``skip_node`` make a
        single attempt.
        """
        if config.failure_policy == FailurePolicy.RETRY_THEN_ABORT:
            max_attempts = config.max_attempts or engine.default_max_attempts
        else:
            max_attempts = 1
        call_timeout = (
            timedelta(seconds=config.timeout_seconds) if config.timeout_seconds is not None else engine.call_timeout
        )
        return cls(
            failure_policy=config.failure_policy,
            max_attempts=max_attempts,
            backoff=engine.default_backoff,
            multiplier=engine.backoff_multiplier,
            call_timeout=call_timeout,
        )

    def can_retry(self, failed_attempts: int) -> bool:
        """Whether another attempt is allowed after ``failed_attempts`` failures."""
        return failed_attempts < self.max_attempts

    def backoff_for(self, failed_attempts: int) -> timedelta:
        """Wait before the attempt following the ``failed_attempts``-th failure.

        Example:
            >>> policy.backoff_for(1), policy.backoff_for(2)
            (datetime.timedelta(seconds=1), datetime.timedelta(seconds=2))
        """
        return self.backoff * (self.multiplier ** max(failed_attempts - 1, 0))
