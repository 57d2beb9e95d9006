from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from admission.core.admission import (
    check_ip_whitelist,
    check_rate_limit,
    enforce_admission,
)
from admission.core.config import settings
from admission.schemas.admission import (
    AdmissionCheckRequest,
    AdmissionCheckResponse,
    IPDecisionSchema,
    RateLimitDecisionSchema,
)
from admission.services.rate_limiter import get_rate_limit_headers
from admission.utils.client_ip import extract_client_ip

router = APIRouter(prefix="/admission", tags=["Admission"])


@router.post("/check", response_model=AdmissionCheckResponse)
async def admission_check(
    body: AdmissionCheckRequest, request: Request, response: Response
) -> AdmissionCheckResponse:
    """Run both admission checks and report the decisions.

    For callers that shape their own HTTP responses (e.g. edge functions):
    always answers 200 with the decisions and the rate-limit headers, which
    are also set on this response. The rate limit is only consumed when the
    IP is admitted.

    Args:
        body: Identifier, optional institution, IP and overrides.
        request: Incoming request; its proxy headers supply the IP when omitted.
        response: Outgoing response, receives the rate-limit headers.

    Returns:
        AdmissionCheckResponse: Combined verdict and individual decisions.
    """
    ip = body.ip or extract_client_ip(request)
    ip_decision = await check_ip_whitelist(ip, body.institution_id)

    rate_limit: RateLimitDecisionSchema | None = None
    headers: dict[str, str] = {}
    if ip_decision.allowed:
        decision = await check_rate_limit(
            body.identifier,
            tenant_id=body.institution_id,
            limit=body.limit,
            window_seconds=body.window_seconds,
        )
        rate_limit = RateLimitDecisionSchema(
            allowed=decision.allowed,
            remaining=decision.remaining,
            reset_at=decision.reset_at,
            limit=decision.limit,
        )
        headers = get_rate_limit_headers(decision)

    if settings.app.rate_limit_include_headers:
        response.headers.update(headers)

    return AdmissionCheckResponse(
        admitted=rate_limit is not None and rate_limit.allowed,
        ip=ip,
        ip_decision=IPDecisionSchema(
            allowed=ip_decision.allowed,
            reason=ip_decision.reason,
            source=ip_decision.source,
        ),
        rate_limit=rate_limit,
        headers=headers,
    )


@router.get("/gate", dependencies=[Depends(enforce_admission)])
async def admission_gate(request: Request, response: Response) -> dict:
    """Probe endpoint guarded by the admission gate.

    Returns 200 when the caller is admitted, 403 when the client IP is not
    allowed and 429 (with Retry-After) when over the rate limit.
    """
    headers = getattr(request.state, "rate_limit_headers", None)
    if headers:
        response.headers.update(headers)
    return {"status": "admitted"}
