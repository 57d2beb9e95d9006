"""Tests for the data store REST adapter and the procedure-backed limiter."""

import json

import httpx
import pytest

from admission.adapters.data_store.postgrest import PostgrestClient
from admission.adapters.rate_limit.base import RateLimitDecision, RateLimitKey, Unavailable
from admission.adapters.rate_limit.stored_procedure import StoredProcedureBackend
from admission.core.errors import DataStoreAppError


def _store(handler) -> PostgrestClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PostgrestClient(
        url="https://project.example.test/",
        service_role_key="srk",
        http_client=http_client,
    )


class TestPostgrestClient:
    @pytest.mark.asyncio
    async def test_rpc_posts_params_with_credentials(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["apikey"] = request.headers["apikey"]
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        store = _store(handler)

        assert await store.rpc("do_thing", {"p_a": 1}) == {"ok": True}
        assert seen == {
            "method": "POST",
            "path": "/rest/v1/rpc/do_thing",
            "apikey": "srk",
            "auth": "Bearer srk",
            "body": {"p_a": 1},
        }

    @pytest.mark.asyncio
    async def test_select_builds_equality_filters(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[{"ip_address": "10.0.0.1"}])

        store = _store(handler)

        rows = await store.select(
            "institution_ip_whitelist",
            columns=["ip_address", "cidr_prefix"],
            filters={"institution_id": "t1", "is_active": True},
        )

        assert rows == [{"ip_address": "10.0.0.1"}]
        assert seen["path"] == "/rest/v1/institution_ip_whitelist"
        assert seen["params"] == {
            "select": "ip_address,cidr_prefix",
            "institution_id": "eq.t1",
            "is_active": "eq.true",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response, code",
        [
            (httpx.Response(500, json={"message": "boom"}), "data_store_http_error"),
            (httpx.Response(200, text="<html>"), "data_store_bad_response"),
            (httpx.Response(200, json={"not": "a list"}), "data_store_bad_response"),
            (httpx.Response(200, json=[1, 2]), "data_store_bad_response"),
        ],
    )
    async def test_select_failures(self, response: httpx.Response, code: str) -> None:
        store = _store(lambda request: response)

        with pytest.raises(DataStoreAppError) as exc_info:
            await store.select("t", columns=["a"], filters={})

        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        store = _store(handler)

        with pytest.raises(DataStoreAppError) as exc_info:
            await store.rpc("check_rate_limit", {})

        assert exc_info.value.code == "data_store_unreachable"


class TestStoredProcedureBackend:
    @pytest.mark.asyncio
    async def test_calls_procedure_with_key_and_millisecond_timestamp(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"allowed": True, "remaining": 7, "reset_at": 1_060_000}
            )

        backend = StoredProcedureBackend(_store(handler))

        decision = await backend.check(
            RateLimitKey("dev-A", "t1"), limit=10, window_seconds=60, now=1_000.0
        )

        assert decision == RateLimitDecision(allowed=True, remaining=7, reset_at=1_060.0, limit=10)
        assert seen["path"] == "/rest/v1/rpc/check_rate_limit"
        assert seen["body"] == {
            "p_key": "t1:dev-A",
            "p_limit": 10,
            "p_window_seconds": 60,
            "p_timestamp": 1_000_000,
        }

    @pytest.mark.asyncio
    async def test_unwraps_single_row_result(self) -> None:
        backend = StoredProcedureBackend(
            _store(
                lambda request: httpx.Response(
                    200, json=[{"allowed": False, "remaining": 0, "reset_at": 1_030_000}]
                )
            )
        )

        decision = await backend.check(RateLimitKey("dev-A"), limit=3, window_seconds=60, now=1_000.0)

        assert decision.allowed is False
        assert decision.reset_at == 1_030.0

    @pytest.mark.asyncio
    async def test_missing_reset_defaults_to_window_end(self) -> None:
        backend = StoredProcedureBackend(
            _store(lambda request: httpx.Response(200, json={"allowed": True, "remaining": 2}))
        )

        decision = await backend.check(RateLimitKey("dev-A"), limit=3, window_seconds=60, now=1_000.0)

        assert decision.reset_at == 1_060.0

    @pytest.mark.asyncio
    async def test_outage_is_unavailable(self) -> None:
        backend = StoredProcedureBackend(_store(lambda request: httpx.Response(502)))

        result = await backend.check(RateLimitKey("dev-A"), limit=3, window_seconds=60, now=1_000.0)

        assert result == Unavailable(backend="data_store", reason="data_store_http_error")

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_unavailable(self) -> None:
        backend = StoredProcedureBackend(
            _store(lambda request: httpx.Response(200, json=[]))
        )

        result = await backend.check(RateLimitKey("dev-A"), limit=3, window_seconds=60, now=1_000.0)

        assert result == Unavailable(backend="data_store", reason="procedure_bad_result")
