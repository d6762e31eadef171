"""Run configuration: workspace coordinates, throttling and replication flags."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, cast

from pytagsync.models.retry import RetryPolicy


@dataclass(frozen=True)
class WorkspaceContext:
    """Coordinates of one workspace on the platform."""

    account_id: str
    container_id: str
    workspace_id: str

    @property
    def path(self) -> str:
        return (
            f"accounts/{self.account_id}/containers/{self.container_id}"
            f"/workspaces/{self.workspace_id}"
        )

    def is_complete(self) -> bool:
        return bool(self.account_id and self.container_id and self.workspace_id)

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class RateLimitPolicy:
    """
    Throttling applied to remote creations.

    The platform allows roughly 15 writes per minute, so consecutive
    creations are spaced by ``entity_delay_ms`` and rate-limited failures are
    retried with ``retry``.

    Examples:
        policy = RateLimitPolicy.DEFAULT
        policy = RateLimitPolicy.UNTHROTTLED
        policy = RateLimitPolicy(entity_delay_ms=1000, retry=RetryPolicy.STANDARD)
    """

    entity_delay_ms: int = 4000
    retry: RetryPolicy = field(default_factory=lambda: RetryPolicy.STANDARD)

    if TYPE_CHECKING:
        DEFAULT: RateLimitPolicy
        UNTHROTTLED: RateLimitPolicy
    else:
        DEFAULT = cast("RateLimitPolicy", None)
        UNTHROTTLED = cast("RateLimitPolicy", None)

    @property
    def max_attempts(self) -> int:
        return self.retry.max_attempts

    def with_entity_delay(self, entity_delay_ms: int) -> RateLimitPolicy:
        return replace(self, entity_delay_ms=entity_delay_ms)

    def with_retry(self, retry: RetryPolicy) -> RateLimitPolicy:
        return replace(self, retry=retry)


RateLimitPolicy.DEFAULT = RateLimitPolicy(
    entity_delay_ms=4000,
    retry=RetryPolicy(
        max_attempts=3,
        initial_delay_ms=1000,
        max_delay_ms=60000,
        backoff_multiplier=2.0,
    ),
)

# Same attempt count, no waiting. For offline runs and tests.
RateLimitPolicy.UNTHROTTLED = RateLimitPolicy(
    entity_delay_ms=0,
    retry=RetryPolicy(
        max_attempts=3,
        initial_delay_ms=0,
        max_delay_ms=0,
        backoff_multiplier=1.0,
    ),
)


@dataclass(frozen=True)
class ReplicationConfig:
    """Caller flags for one replication run."""

    dry_run: bool = False
    skip_naming: bool = False
    skip_validation: bool = False
    name_prefix: str = ""
    name_suffix: str = ""
    reverse_discovery: bool = True
    """Include event producers and setup/teardown users of selected tags."""
    skip_existing: bool = True
    """Map entities whose target name already exists instead of creating them."""
    update_existing: bool = False
    """Overwrite existing non-template entities instead of skipping them."""
    preserve_notes: bool = False
