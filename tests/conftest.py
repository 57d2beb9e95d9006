"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It ensures that the TESTING environment variable is set to prevent
loading the .env file during tests, and that no remote backend is
configured unless a test injects one.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")

for _name in (
    "UPSTASH_REDIS_REST_URL",
    "UPSTASH_REDIS_REST_TOKEN",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SMS_WEBHOOK_ALLOWED_IPS",
    "APP_ALLOWED_IPS",
):
    os.environ.pop(_name, None)

from typing import Any, Mapping  # noqa: E402

import pytest  # noqa: E402

from admission.adapters.data_store.base import AbstractDataStore  # noqa: E402
from admission.core.errors import DataStoreAppError  # noqa: E402


class FakeClock:
    """Deterministic clock injected wherever a ``clock`` callable is accepted."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeDataStore(AbstractDataStore):
    """In-process stand-in for the relational data platform.

    ``tables`` maps table name -> rows; ``select`` applies equality filters.
    ``rpc_results`` maps procedure name -> value returned (or exception raised).
    Setting ``fail`` makes every call raise DataStoreAppError.
    """

    def __init__(
        self,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        rpc_results: dict[str, Any] | None = None,
    ) -> None:
        self.tables = tables or {}
        self.rpc_results = rpc_results or {}
        self.fail = False
        self.select_calls: list[tuple[str, dict[str, Any]]] = []
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []

    def _maybe_fail(self) -> None:
        if self.fail:
            raise DataStoreAppError(code="data_store_unreachable", message="down")

    async def rpc(self, function: str, params: Mapping[str, Any]) -> Any:
        self.rpc_calls.append((function, dict(params)))
        self._maybe_fail()
        result = self.rpc_results.get(function)
        if isinstance(result, Exception):
            raise result
        return result

    async def select(
        self,
        table: str,
        *,
        columns: list[str],
        filters: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        self.select_calls.append((table, dict(filters)))
        self._maybe_fail()
        rows = [
            row
            for row in self.tables.get(table, [])
            if all(row.get(column) == value for column, value in filters.items())
        ]
        return [{column: row.get(column) for column in columns} for row in rows]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_store() -> FakeDataStore:
    return FakeDataStore()
