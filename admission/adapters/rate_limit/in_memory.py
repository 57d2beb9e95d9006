"""In-memory sliding-window log (last-resort backend).

Notes:
- Per-process only: every instance enforces its own quota, so with N
  instances up to N * limit requests may be admitted per window.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from admission.adapters.rate_limit.base import (
    BackendResult,
    RateLimitBackend,
    RateLimitDecision,
    RateLimitKey,
    build_decision,
)

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    expires_at: float
    timestamps: deque[float] = field(default_factory=deque)


class InMemorySlidingWindowStore(RateLimitBackend):
    """Sliding-window log kept in a process-local dict.

    Created once per process and injected into the limiter. Expired keys are
    removed by an opportunistic sweep that runs on a small fraction of checks;
    the sweep may race benignly with live checks.
    """

    name = "local_memory"

    def __init__(
        self,
        *,
        sweep_probability: float = 0.01,
        clock: Callable[[], float] = time.time,
        rand: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the store.

        Args:
            sweep_probability: Chance per check of sweeping expired keys.
            clock: Time source returning UNIX time in seconds (used by sweep()).
            rand: Uniform [0, 1) source deciding when to sweep.

        Raises:
            ValueError: If sweep_probability is outside [0, 1].
        """
        if not 0.0 <= sweep_probability <= 1.0:
            raise ValueError("sweep_probability must be within [0, 1]")

        self._sweep_probability = sweep_probability
        self._clock = clock
        self._rand = rand
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    async def check(
        self,
        key: RateLimitKey,
        *,
        limit: int,
        window_seconds: int,
        now: float,
    ) -> BackendResult:
        return self.check_sync(key, limit=limit, window_seconds=window_seconds, now=now)

    def check_sync(
        self,
        key: RateLimitKey,
        *,
        limit: int,
        window_seconds: int,
        now: float,
    ) -> RateLimitDecision:
        """Run one sliding-window check; this backend never reports Unavailable."""
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        window_start = now - window_seconds
        storage_key = str(key)

        with self._lock:
            state = self._state_by_key.get(storage_key)
            if state is None:
                state = _WindowState(expires_at=now + window_seconds)
                self._state_by_key[storage_key] = state

            while state.timestamps and state.timestamps[0] <= window_start:
                state.timestamps.popleft()

            count = len(state.timestamps)
            allowed = count < limit
            if allowed:
                state.timestamps.append(now)
                count += 1
            state.expires_at = now + window_seconds

            if self._rand() < self._sweep_probability:
                self._sweep_locked(now)

        return build_decision(
            allowed=allowed,
            count=count,
            limit=limit,
            now=now,
            window_seconds=window_seconds,
        )

    def sweep(self) -> int:
        """Drop every key whose expiry has passed. Returns the number removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._state_by_key.clear()

    def _sweep_locked(self, now: float) -> int:
        expired = [k for k, state in self._state_by_key.items() if state.expires_at <= now]
        for storage_key in expired:
            del self._state_by_key[storage_key]
        if expired:
            logger.debug(
                "rate_limit.local_sweep",
                extra={"removed": len(expired), "remaining_keys": len(self._state_by_key)},
            )
        return len(expired)
