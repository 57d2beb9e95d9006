"""Client IP resolution from proxy-chain headers."""

from __future__ import annotations

from typing import Any, Mapping

# Checked in order; the first header yielding a non-empty value wins.
CONNECTING_IP_HEADER = "cf-connecting-ip"
FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"


def _header_lookup(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    # Plain dicts are case-sensitive; Starlette Headers already are not.
    for key, candidate in headers.items():
        if key.lower() == name:
            return candidate
    return None


def extract_client_ip(request: Any) -> str | None:
    """Derive the caller's IP from the request's proxy headers.

    Priority: edge "connecting IP" header, then the first hop of
    X-Forwarded-For, then X-Real-IP. The socket peer address is not used:
    behind the edge network it is always the proxy.

    Args:
        request: A Starlette/FastAPI ``Request`` or any header mapping.

    Returns:
        The resolved address, or None when no header carries one.
    """

    headers: Mapping[str, str] = getattr(request, "headers", request)

    connecting_ip = _header_lookup(headers, CONNECTING_IP_HEADER)
    if connecting_ip and connecting_ip.strip():
        return connecting_ip.strip()

    forwarded_for = _header_lookup(headers, FORWARDED_FOR_HEADER)
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = _header_lookup(headers, REAL_IP_HEADER)
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return None
