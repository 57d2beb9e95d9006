"""Admission-control wiring for the HTTP layer and library callers.

This module builds the process-wide limiter and IP checker from settings and
exposes them three ways:

- ``check_rate_limit`` / ``check_ip_whitelist``: library entry points that
  always return a decision;
- ``enforce_admission``: FastAPI dependency that rejects with 403/429;
- ``get_rate_limiter`` / ``get_ip_checker``: the shared instances (tests swap
  them with monkeypatch).

Instances are cached in-module to keep local rate-limit state across
requests. If the relevant settings change (primarily in tests), they are
rebuilt; HTTP clients are replaced (and the old ones closed) only when
their own settings change.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import Header, HTTPException, Request, status

from admission.adapters.cache.upstash import UpstashRestClient
from admission.adapters.data_store.base import AbstractDataStore
from admission.adapters.data_store.postgrest import PostgrestClient
from admission.adapters.rate_limit.base import RateLimitBackend, RateLimitDecision
from admission.adapters.rate_limit.in_memory import InMemorySlidingWindowStore
from admission.adapters.rate_limit.shared_cache import SharedCacheBackend
from admission.adapters.rate_limit.stored_procedure import StoredProcedureBackend
from admission.core.config import settings
from admission.core.logging import hash_identifier
from admission.services.institution_config import InstitutionConfigResolver
from admission.services.ip_whitelist import IPAdmissionDecision, IPWhitelistChecker
from admission.services.rate_limiter import RateLimiter, get_rate_limit_headers
from admission.utils.client_ip import extract_client_ip

logger = logging.getLogger(__name__)


_limiter: RateLimiter | None = None
_ip_checker: IPWhitelistChecker | None = None
_config_snapshot: tuple[Any, ...] | None = None

# HTTP clients are only replaced when their own settings change; a replaced
# client is closed before its successor is used.
_cache_client: UpstashRestClient | None = None
_cache_snapshot: tuple[Any, ...] | None = None
_data_store: AbstractDataStore | None = None
_data_store_snapshot: tuple[Any, ...] | None = None

# One local store per process, shared by every limiter rebuild.
_local_store: InMemorySlidingWindowStore | None = None


def _cache_config() -> tuple[Any, ...]:
    return (settings.cache.url, settings.cache.token, settings.cache.timeout_seconds)


def _data_store_config() -> tuple[Any, ...]:
    return (
        settings.data_store.url,
        settings.data_store.service_role_key,
        settings.data_store.timeout_seconds,
    )


def _current_config() -> tuple[Any, ...]:
    return (
        _cache_config(),
        _data_store_config(),
        settings.app.rate_limit_default_limit,
        settings.app.rate_limit_default_window_seconds,
        settings.app.rate_limit_sweep_probability,
        settings.app.allowed_ips,
    )


def _get_local_store() -> InMemorySlidingWindowStore:
    global _local_store

    if _local_store is None:
        _local_store = InMemorySlidingWindowStore(
            sweep_probability=settings.app.rate_limit_sweep_probability,
        )
    return _local_store


async def _refresh_clients() -> None:
    """Replace (and close) the HTTP clients whose settings changed."""

    global _cache_client, _cache_snapshot, _data_store, _data_store_snapshot

    cache_config = _cache_config()
    if cache_config != _cache_snapshot:
        if _cache_client is not None:
            await _cache_client.aclose()
        _cache_client = None
        if settings.cache.configured:
            _cache_client = UpstashRestClient(
                url=settings.cache.url or "",
                token=settings.cache.token or "",
                timeout_seconds=settings.cache.timeout_seconds,
            )
        _cache_snapshot = cache_config

    data_store_config = _data_store_config()
    if data_store_config != _data_store_snapshot:
        if _data_store is not None:
            await _data_store.aclose()
        _data_store = None
        if settings.data_store.configured:
            _data_store = PostgrestClient(
                url=settings.data_store.url or "",
                service_role_key=settings.data_store.service_role_key or "",
                timeout_seconds=settings.data_store.timeout_seconds,
            )
        _data_store_snapshot = data_store_config


async def _build() -> tuple[RateLimiter, IPWhitelistChecker]:
    """(Re)build limiter and checker from the current settings."""

    global _limiter, _ip_checker, _config_snapshot

    await _refresh_clients()

    backends: list[RateLimitBackend] = []
    if _cache_client is not None:
        backends.append(SharedCacheBackend(_cache_client))
    if _data_store is not None:
        backends.append(StoredProcedureBackend(_data_store))

    resolver = InstitutionConfigResolver(
        _data_store,
        default_limit=settings.app.rate_limit_default_limit,
        default_window_seconds=settings.app.rate_limit_default_window_seconds,
    )
    limiter = RateLimiter(
        resolver=resolver,
        local_store=_get_local_store(),
        backends=backends,
    )
    ip_checker = IPWhitelistChecker(
        _data_store,
        environment_allow_list=settings.app.allowed_ips,
    )
    _limiter, _ip_checker = limiter, ip_checker
    _config_snapshot = _current_config()

    logger.info(
        "admission.configured",
        extra={
            "rate_limit_backends": limiter.backend_names,
            "environment_allow_list": bool(settings.app.allowed_ips),
        },
    )
    return limiter, ip_checker


async def _ensure_built() -> tuple[RateLimiter, IPWhitelistChecker]:
    if _limiter is None or _ip_checker is None or _config_snapshot != _current_config():
        return await _build()
    return _limiter, _ip_checker


async def get_rate_limiter() -> RateLimiter:
    """Return the process-wide rate limiter."""

    limiter, _ = await _ensure_built()
    return limiter


async def get_ip_checker() -> IPWhitelistChecker:
    """Return the process-wide IP allow-list checker."""

    _, ip_checker = await _ensure_built()
    return ip_checker


async def close_admission_clients() -> None:
    """Close HTTP clients held by the shared instances (app shutdown)."""

    global _limiter, _ip_checker, _config_snapshot
    global _cache_client, _cache_snapshot, _data_store, _data_store_snapshot

    if _cache_client is not None:
        await _cache_client.aclose()
    if _data_store is not None:
        await _data_store.aclose()
    _limiter = _ip_checker = _config_snapshot = None
    _cache_client = _cache_snapshot = _data_store = _data_store_snapshot = None


async def check_rate_limit(
    identifier: str,
    *,
    tenant_id: str | None = None,
    limit: int | None = None,
    window_seconds: int | None = None,
) -> RateLimitDecision:
    """Admit or deny one request for ``identifier`` (see RateLimiter.check)."""

    limiter = await get_rate_limiter()
    return await limiter.check(
        identifier,
        tenant_id=tenant_id,
        limit=limit,
        window_seconds=window_seconds,
    )


async def check_ip_whitelist(ip: str | None, tenant_id: str | None = None) -> IPAdmissionDecision:
    """Admit or deny ``ip`` for ``tenant_id`` (see IPWhitelistChecker.check)."""

    ip_checker = await get_ip_checker()
    return await ip_checker.check(ip, tenant_id)


async def enforce_admission(
    request: Request,
    x_institution_id: Annotated[str | None, Header(alias="X-Institution-ID")] = None,
    x_device_id: Annotated[str | None, Header(alias="X-Device-ID")] = None,
) -> None:
    """FastAPI dependency running the IP and rate-limit checks before a route.

    The IP allow-list is evaluated first; a denied IP never consumes quota.
    The rate limit key is the device id when sent, else the client IP.
    On admission the rate-limit headers are left on ``request.state`` for
    the route to copy onto its response.

    Args:
        request: FastAPI request.
        x_institution_id: Tenant scope from the X-Institution-ID header.
        x_device_id: Caller device id from the X-Device-ID header.

    Raises:
        HTTPException: 403 when the IP is not allowed, 429 when over the limit.
    """

    client_ip = extract_client_ip(request)

    if settings.app.ip_whitelist_enabled:
        ip_decision = await check_ip_whitelist(client_ip, x_institution_id)
        if not ip_decision.allowed:
            logger.warning(
                "admission.ip_rejected",
                extra={
                    "tenant_id": x_institution_id,
                    "reason": ip_decision.reason,
                    "source": ip_decision.source,
                },
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=ip_decision.reason or "Access denied for this client address.",
            )

    if not settings.app.rate_limit_enabled:
        return

    identifier = x_device_id or client_ip or "unknown"
    key_type = "device" if x_device_id else "ip"
    decision = await check_rate_limit(identifier, tenant_id=x_institution_id)
    headers = get_rate_limit_headers(decision)

    if decision.allowed:
        if settings.app.rate_limit_include_headers:
            request.state.rate_limit_headers = headers
        return

    logger.warning(
        "admission.rate_limited",
        extra={
            "tenant_id": x_institution_id,
            "key_type": key_type,
            "identifier_hash": hash_identifier(identifier),
            "limit": decision.limit,
            "retry_after_s": headers["Retry-After"],
        },
    )
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=(
            headers
            if settings.app.rate_limit_include_headers
            else {"Retry-After": headers["Retry-After"]}
        ),
    )
