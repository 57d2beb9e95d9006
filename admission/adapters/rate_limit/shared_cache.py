"""Sliding-window log on the shared cache service (preferred backend).

The whole check runs as one server-side script, so concurrent instances see
a consistent count for a key: remove entries older than the window, count,
add ``now`` only when under the limit, refresh the key's expiry.
"""

from __future__ import annotations

import logging
import uuid

from admission.adapters.cache.upstash import UpstashRestClient
from admission.adapters.rate_limit.base import (
    BackendResult,
    RateLimitBackend,
    RateLimitKey,
    Unavailable,
    build_decision,
)
from admission.core.errors import CacheServiceAppError

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate_limit"

# KEYS[1] = counter key
# ARGV = window_start_ms, now_ms, limit, member, window_seconds
# Returns {allowed (0|1), count after the check}
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local window_start = tonumber(ARGV[1])
local now = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', window_start)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
  redis.call('ZADD', key, now, ARGV[4])
  count = count + 1
  allowed = 1
end
redis.call('EXPIRE', key, tonumber(ARGV[5]))
return {allowed, count}
"""


class SharedCacheBackend(RateLimitBackend):
    """Rate limit backend correct across concurrently running instances."""

    name = "shared_cache"

    def __init__(self, client: UpstashRestClient) -> None:
        self._client = client

    async def check(
        self,
        key: RateLimitKey,
        *,
        limit: int,
        window_seconds: int,
        now: float,
    ) -> BackendResult:
        now_ms = int(now * 1000)
        window_start_ms = now_ms - window_seconds * 1000
        # Unique member so two requests in the same millisecond both count
        member = f"{now_ms}-{uuid.uuid4().hex}"

        try:
            result = await self._client.eval(
                SLIDING_WINDOW_SCRIPT,
                [f"{KEY_PREFIX}:{key}"],
                [window_start_ms, now_ms, limit, member, window_seconds],
            )
        except CacheServiceAppError as exc:
            return Unavailable(backend=self.name, reason=exc.code)

        if (
            not isinstance(result, list)
            or len(result) != 2
            or not all(isinstance(v, int) and not isinstance(v, bool) for v in result)
        ):
            logger.warning(
                "rate_limit.shared_cache_bad_result",
                extra={"result_type": type(result).__name__},
            )
            return Unavailable(backend=self.name, reason="cache_bad_result")

        allowed, count = result
        return build_decision(
            allowed=allowed == 1,
            count=count,
            limit=limit,
            now=now,
            window_seconds=window_seconds,
        )
