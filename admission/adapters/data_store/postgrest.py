"""REST adapter for the hosted relational data platform."""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from admission.adapters.data_store.base import AbstractDataStore
from admission.core.errors import DataStoreAppError


def _filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class PostgrestClient(AbstractDataStore):
    """Data store reached through the platform's REST API.

    Procedures are called at ``/rest/v1/rpc/<name>`` and tables read at
    ``/rest/v1/<table>`` with ``column=eq.value`` filters. The service-role
    credential is sent both as ``apikey`` and as a bearer token.
    """

    def __init__(
        self,
        *,
        url: str,
        service_role_key: str,
        timeout_seconds: float = 3.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the REST client.

        Args:
            url: Project URL of the data platform.
            service_role_key: Credential with read access and RPC rights.
            timeout_seconds: Timeout applied to every call.
            http_client: Optional pre-built client (tests inject a MockTransport).
        """
        self._base_url = f"{url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
            "Accept": "application/json",
        }
        self._timeout = timeout_seconds
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(
                method,
                f"{self._base_url}/{path}",
                headers=self._headers,
                timeout=self._timeout,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise DataStoreAppError(
                code="data_store_unreachable",
                message=f"Data store request failed: {type(exc).__name__}",
                details={"backend": "data_store"},
            ) from exc

        if response.status_code >= 400:
            raise DataStoreAppError(
                code="data_store_http_error",
                message=f"Data store returned HTTP {response.status_code}",
                details={"backend": "data_store", "http_status": response.status_code},
            )

        try:
            return response.json()
        except ValueError as exc:
            raise DataStoreAppError(
                code="data_store_bad_response",
                message="Data store returned a non-JSON body",
                details={"backend": "data_store"},
            ) from exc

    async def rpc(self, function: str, params: Mapping[str, Any]) -> Any:
        return await self._request("POST", f"rpc/{function}", json=dict(params))

    async def select(
        self,
        table: str,
        *,
        columns: list[str],
        filters: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        query = {"select": ",".join(columns)}
        query.update({column: _filter_value(value) for column, value in filters.items()})

        rows = await self._request("GET", table, params=query)
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise DataStoreAppError(
                code="data_store_bad_response",
                message=f"Expected a list of rows from {table}",
                details={"backend": "data_store"},
            )
        return rows

    async def aclose(self) -> None:
        await self._client.aclose()
