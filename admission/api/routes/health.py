from __future__ import annotations

from fastapi import APIRouter

from admission.core.admission import get_rate_limiter

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring. Also reports which rate limit
    backends are configured, in the order they are tried; a chain of only
    ``local_memory`` means limits are enforced per instance.

    Returns:
        dict: ``status`` ("ok") and ``rate_limit_backends``.
    """

    limiter = await get_rate_limiter()
    return {"status": "ok", "rate_limit_backends": limiter.backend_names}
