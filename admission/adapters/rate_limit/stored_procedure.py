"""Sliding-window check through the data store's atomic procedure.

Used when the shared cache is unreachable or unconfigured. The procedure
``check_rate_limit(p_key, p_limit, p_window_seconds, p_timestamp)`` performs
prune / count / conditional insert / expiry in one transaction and returns
``{allowed, remaining, reset_at}`` with ``reset_at`` in epoch milliseconds.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ValidationError

from admission.adapters.data_store.base import AbstractDataStore
from admission.adapters.rate_limit.base import (
    BackendResult,
    RateLimitBackend,
    RateLimitDecision,
    RateLimitKey,
    Unavailable,
)
from admission.core.errors import DataStoreAppError

logger = logging.getLogger(__name__)

PROCEDURE_NAME = "check_rate_limit"


class ProcedureResult(BaseModel):
    """Row returned by the rate limit procedure."""

    allowed: bool
    remaining: int
    reset_at: int | None = None


class StoredProcedureBackend(RateLimitBackend):
    """Rate limit backend backed by a transactional server-side procedure."""

    name = "data_store"

    def __init__(self, store: AbstractDataStore) -> None:
        self._store = store

    async def check(
        self,
        key: RateLimitKey,
        *,
        limit: int,
        window_seconds: int,
        now: float,
    ) -> BackendResult:
        try:
            payload = await self._store.rpc(
                PROCEDURE_NAME,
                {
                    "p_key": str(key),
                    "p_limit": limit,
                    "p_window_seconds": window_seconds,
                    "p_timestamp": int(now * 1000),
                },
            )
        except DataStoreAppError as exc:
            return Unavailable(backend=self.name, reason=exc.code)

        # Set-returning procedures come back as a one-row list
        if isinstance(payload, list) and len(payload) == 1:
            payload = payload[0]

        try:
            result = ProcedureResult.model_validate(payload)
        except ValidationError:
            logger.warning(
                "rate_limit.procedure_bad_result",
                extra={"result_type": type(payload).__name__},
            )
            return Unavailable(backend=self.name, reason="procedure_bad_result")

        reset_at = result.reset_at / 1000 if result.reset_at else now + window_seconds
        return RateLimitDecision(
            allowed=result.allowed,
            remaining=max(0, result.remaining),
            reset_at=reset_at,
            limit=limit,
        )
