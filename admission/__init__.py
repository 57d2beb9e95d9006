"""Admission control for the savings-group back office.

Library entry points; each always returns a decision object.
"""

from admission.adapters.rate_limit.base import RateLimitDecision
from admission.core.admission import check_ip_whitelist, check_rate_limit
from admission.services.ip_whitelist import IPAdmissionDecision
from admission.services.rate_limiter import get_rate_limit_headers
from admission.utils.client_ip import extract_client_ip

__all__ = [
    "IPAdmissionDecision",
    "RateLimitDecision",
    "check_ip_whitelist",
    "check_rate_limit",
    "extract_client_ip",
    "get_rate_limit_headers",
]
