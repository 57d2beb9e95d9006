"""Rate limiter interfaces and value types.

Every backend answers a check with either a ``RateLimitDecision`` or an
``Unavailable`` marker. The limiter walks its backends in priority order and
stops at the first decision, so an outage is a value, not an exception.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class RateLimitKey:
    """Identifies one sliding-window counter.

    Attributes:
        identifier: Caller identity (device id, phone number, IP, ...).
        tenant_id: Owning institution; None means the global scope.
    """

    identifier: str
    tenant_id: str | None = None

    @property
    def scope(self) -> str:
        return self.tenant_id or GLOBAL_SCOPE

    def __str__(self) -> str:
        return f"{self.scope}:{self.identifier}"


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is admitted.
        remaining: Requests left in the current window (0 when denied).
        reset_at: UNIX epoch seconds when the window is considered reset.
        limit: Max requests per window used for this check.
    """

    allowed: bool
    remaining: int
    reset_at: float
    limit: int


@dataclass(frozen=True)
class Unavailable:
    """A backend could not serve this check; the next one should be tried."""

    backend: str
    reason: str


BackendResult = RateLimitDecision | Unavailable


def build_decision(
    *, allowed: bool, count: int, limit: int, now: float, window_seconds: int
) -> RateLimitDecision:
    """Build a decision from the post-check count of timestamps in the window."""

    return RateLimitDecision(
        allowed=allowed,
        remaining=max(0, limit - count),
        reset_at=now + window_seconds,
        limit=limit,
    )


class RateLimitBackend(ABC):
    """A place where sliding-window state for a key can live."""

    name: str = "backend"

    @abstractmethod
    async def check(
        self,
        key: RateLimitKey,
        *,
        limit: int,
        window_seconds: int,
        now: float,
    ) -> BackendResult:
        """Prune, count, conditionally record ``now`` and refresh expiry for ``key``.

        Args:
            key: Counter to check.
            limit: Max requests per window.
            window_seconds: Trailing window length.
            now: Current UNIX time in seconds.

        Returns:
            RateLimitDecision, or Unavailable when this backend cannot answer.
        """
        raise NotImplementedError
