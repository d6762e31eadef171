"""
Retry policy configuration for remote calls.

Design Pattern: Strategy Pattern
RetryPolicy encapsulates backoff behavior so the retry decorator and the
builder do not hard-code attempt counts or delays.

Named presets cover the common cases:
- NONE: a single attempt, no backoff
- STANDARD: three attempts with doubling delay, capped at one minute
- AGGRESSIVE: many short attempts, for flaky but fast services
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, cast


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for retrying a failed remote call.

    Examples:
        # Simple: just specify max attempts (uses standard delays)
        policy = RetryPolicy.with_max_attempts(5)

        # Named policy
        policy = RetryPolicy.STANDARD

        # Custom policy
        policy = RetryPolicy(
            max_attempts=4,
            initial_delay_ms=500,
            max_delay_ms=10000,
            backoff_multiplier=2.0,
        )
    """

    max_attempts: int
    """Maximum number of attempts, including the first one."""

    initial_delay_ms: int
    """Delay before the first retry in milliseconds."""

    max_delay_ms: int
    """Upper bound for any single delay in milliseconds."""

    backoff_multiplier: float
    """Growth factor applied to the delay after every attempt."""

    if TYPE_CHECKING:
        NONE: RetryPolicy
        STANDARD: RetryPolicy
        AGGRESSIVE: RetryPolicy
    else:
        NONE = cast("RetryPolicy", None)
        STANDARD = cast("RetryPolicy", None)
        AGGRESSIVE = cast("RetryPolicy", None)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def with_max_attempts(cls, max_attempts: int) -> RetryPolicy:
        """Create a policy with custom max_attempts and standard delays."""
        return cls(
            max_attempts=max_attempts,
            initial_delay_ms=1000,
            max_delay_ms=60000,
            backoff_multiplier=2.0,
        )

    def delay_for_attempt(self, attempt: int) -> int | None:
        """
        Calculate the delay before the attempt that follows ``attempt``.

        Uses exponential backoff: initial_delay * backoff_multiplier^(attempt-1)
        capped at max_delay.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in milliseconds, or None when no attempts remain.

        Example:
            policy = RetryPolicy.STANDARD
            policy.delay_for_attempt(1)  # 1000
            policy.delay_for_attempt(2)  # 2000
            policy.delay_for_attempt(3)  # None
        """
        if attempt >= self.max_attempts:
            return None

        delay_ms = self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)
        return int(min(delay_ms, self.max_delay_ms))

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"initial_delay_ms={self.initial_delay_ms}, "
            f"max_delay_ms={self.max_delay_ms}, "
            f"backoff_multiplier={self.backoff_multiplier})"
        )


RetryPolicy.NONE = RetryPolicy(
    max_attempts=1, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1.0
)

RetryPolicy.STANDARD = RetryPolicy(
    max_attempts=3,
    initial_delay_ms=1000,  # 1 second
    max_delay_ms=60000,  # 60 seconds
    backoff_multiplier=2.0,
)

RetryPolicy.AGGRESSIVE = RetryPolicy(
    max_attempts=10,
    initial_delay_ms=100,
    max_delay_ms=10000,
    backoff_multiplier=1.5,
)
