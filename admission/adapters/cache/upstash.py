"""REST client for the shared Redis-compatible cache service.

Commands are sent as JSON arrays (``["EVAL", script, ...]``) and answered
with ``{"result": ...}`` or ``{"error": "..."}``. Authentication is a bearer
token.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from admission.core.errors import CacheServiceAppError


class CommandResponse(BaseModel):
    """Envelope of a single REST command response."""

    result: Any = None
    error: str | None = None


class UpstashRestClient:
    """Minimal async client for the cache service's REST command endpoint."""

    def __init__(
        self,
        *,
        url: str,
        token: str,
        timeout_seconds: float = 2.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: Base URL of the REST endpoint.
            token: Bearer credential.
            timeout_seconds: Timeout applied to every call.
            http_client: Optional pre-built client (tests inject a MockTransport).
        """
        self._url = url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"}
        self._timeout = timeout_seconds
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def command(self, *args: str | int | float) -> Any:
        """Execute one command and return its ``result``.

        Raises:
            CacheServiceAppError: On transport failure, non-2xx status, an
                ``error`` payload or a body that is not a command envelope.
        """
        body = [str(arg) for arg in args]
        try:
            response = await self._client.post(
                self._url,
                json=body,
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise CacheServiceAppError(
                code="cache_unreachable",
                message=f"Cache service request failed: {type(exc).__name__}",
                details={"backend": "shared_cache"},
            ) from exc

        if response.status_code >= 400:
            raise CacheServiceAppError(
                code="cache_http_error",
                message=f"Cache service returned HTTP {response.status_code}",
                details={"backend": "shared_cache", "http_status": response.status_code},
            )

        try:
            envelope = CommandResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise CacheServiceAppError(
                code="cache_bad_response",
                message="Cache service returned an unexpected payload",
                details={"backend": "shared_cache"},
            ) from exc

        if envelope.error:
            raise CacheServiceAppError(
                code="cache_command_error",
                message=f"Cache service rejected command: {envelope.error}",
                details={"backend": "shared_cache"},
            )
        return envelope.result

    async def eval(self, script: str, keys: list[str], args: list[str | int | float]) -> Any:
        return await self.command("EVAL", script, len(keys), *keys, *args)

    async def aclose(self) -> None:
        await self._client.aclose()
