"""Sliding-window rate limiting over an ordered chain of backends.

Backends are tried in priority order (shared cache, data store procedure,
process-local map) and the first one that returns a decision wins. The local
map is always the last link, so a check always ends in a decision.

Only the shared cache and the data store give a correct global count when many
instances run at once. When both are down, each instance enforces its own
quota through the local map and the effective global limit is multiplied by
the number of instances. No cross-instance coordination is attempted in
that mode.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Sequence

from admission.adapters.rate_limit.base import (
    RateLimitBackend,
    RateLimitDecision,
    RateLimitKey,
    Unavailable,
)
from admission.adapters.rate_limit.in_memory import InMemorySlidingWindowStore
from admission.core.errors import ValidationAppError
from admission.core.logging import hash_identifier
from admission.services.institution_config import InstitutionConfigResolver

logger = logging.getLogger(__name__)


class RateLimiter:
    """Admit or deny a (tenant, identifier) pair against its sliding window."""

    def __init__(
        self,
        *,
        resolver: InstitutionConfigResolver,
        local_store: InMemorySlidingWindowStore,
        backends: Sequence[RateLimitBackend] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            resolver: Source of per-tenant limit/window overrides.
            local_store: Process-local last-resort store, created once per process.
            backends: Remote backends in priority order (unconfigured ones omitted).
            clock: Time source returning UNIX time in seconds.
        """
        self._resolver = resolver
        self._local_store = local_store
        self._backends: tuple[RateLimitBackend, ...] = (*backends, local_store)
        self._clock = clock

    @property
    def backend_names(self) -> list[str]:
        return [backend.name for backend in self._backends]

    async def check(
        self,
        identifier: str,
        *,
        tenant_id: str | None = None,
        limit: int | None = None,
        window_seconds: int | None = None,
    ) -> RateLimitDecision:
        """Record one request for ``identifier`` and decide whether to admit it.

        Args:
            identifier: Caller identity (device id, phone number, IP, ...).
            tenant_id: Institution scope; namespaces the counter and selects overrides.
            limit: Explicit requests-per-window, overriding tenant configuration.
            window_seconds: Explicit window length, overriding tenant configuration.

        Returns:
            RateLimitDecision from the first backend able to answer.

        Raises:
            ValidationAppError: If identifier is empty or an override is not
                positive (a ValueError subclass).
        """
        if not identifier:
            raise ValidationAppError(
                code="invalid_identifier", message="identifier must be a non-empty string"
            )
        if limit is not None and limit < 1:
            raise ValidationAppError(
                code="invalid_limit",
                message="limit must be >= 1",
                details={"hint": "omit limit to use the institution setting"},
            )
        if window_seconds is not None and window_seconds < 1:
            raise ValidationAppError(
                code="invalid_window",
                message="window_seconds must be >= 1",
                details={"hint": "omit window_seconds to use the institution setting"},
            )

        if limit is None or window_seconds is None:
            config = await self._resolver.resolve(tenant_id)
            limit = limit or config.limit
            window_seconds = window_seconds or config.window_seconds

        key = RateLimitKey(identifier=identifier, tenant_id=tenant_id)
        now = self._clock()

        for backend in self._backends:
            if backend is self._local_store:
                decision = self._local_store.check_sync(
                    key, limit=limit, window_seconds=window_seconds, now=now
                )
                if len(self._backends) > 1:
                    logger.warning(
                        "rate_limit.local_fallback",
                        extra={"tenant_id": key.scope, "per_instance_quota": True},
                    )
            else:
                result = await self._try_backend(
                    backend, key, limit=limit, window_seconds=window_seconds, now=now
                )
                if isinstance(result, Unavailable):
                    logger.warning(
                        "rate_limit.backend_unavailable",
                        extra={"backend": result.backend, "reason": result.reason},
                    )
                    continue
                decision = result

            self._log_decision(key, decision, backend.name, window_seconds)
            return decision

        raise AssertionError("local store must terminate the backend chain")

    async def _try_backend(
        self,
        backend: RateLimitBackend,
        key: RateLimitKey,
        *,
        limit: int,
        window_seconds: int,
        now: float,
    ) -> RateLimitDecision | Unavailable:
        try:
            return await backend.check(key, limit=limit, window_seconds=window_seconds, now=now)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "rate_limit.backend_error",
                extra={"backend": backend.name, "error_type": type(exc).__name__},
            )
            return Unavailable(backend=backend.name, reason="unexpected_error")

    def _log_decision(
        self,
        key: RateLimitKey,
        decision: RateLimitDecision,
        backend: str,
        window_seconds: int,
    ) -> None:
        fields = {
            "tenant_id": key.scope,
            "identifier_hash": hash_identifier(key.identifier),
            "backend": backend,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "window_s": window_seconds,
        }
        if decision.allowed:
            logger.info("rate_limit.allowed", extra=fields)
        else:
            logger.warning("rate_limit.denied", extra=fields)


def get_rate_limit_headers(
    decision: RateLimitDecision, *, now: float | None = None
) -> dict[str, str]:
    """Build the HTTP headers describing a rate limit decision.

    Args:
        decision: Decision returned by RateLimiter.check.
        now: Current UNIX time in seconds (defaults to time.time()).

    Returns:
        X-RateLimit-Limit, X-RateLimit-Remaining, X-RateLimit-Reset (epoch
        seconds) and Retry-After ("0" when allowed).
    """
    if decision.allowed:
        retry_after = 0
    else:
        current = time.time() if now is None else now
        retry_after = max(0, math.ceil(decision.reset_at - current))

    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(math.ceil(decision.reset_at)),
        "Retry-After": str(retry_after),
    }
