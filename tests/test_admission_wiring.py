"""Tests for the process-wide limiter/checker wiring and client lifecycle."""

from __future__ import annotations

import pytest

import admission.core.admission as admission_core
from admission.core.config import settings


@pytest.fixture
def wiring(monkeypatch):
    """Reset module state and configure the data store; closes clients afterwards."""

    for name in (
        "_limiter",
        "_ip_checker",
        "_config_snapshot",
        "_cache_client",
        "_cache_snapshot",
        "_data_store",
        "_data_store_snapshot",
        "_local_store",
    ):
        monkeypatch.setattr(admission_core, name, None)
    monkeypatch.setattr(settings.data_store, "url", "https://project.example.test")
    monkeypatch.setattr(settings.data_store, "service_role_key", "srk")
    monkeypatch.setattr(settings.app, "allowed_ips", None)
    yield admission_core


def _http_client(store):
    return store._client


@pytest.mark.asyncio
async def test_configured_data_store_joins_backend_chain(wiring) -> None:
    limiter = await wiring.get_rate_limiter()

    assert limiter.backend_names == ["data_store", "local_memory"]
    await wiring.close_admission_clients()


@pytest.mark.asyncio
async def test_unrelated_setting_change_reuses_open_client(wiring, monkeypatch) -> None:
    first = await wiring.get_rate_limiter()
    store = wiring._data_store

    monkeypatch.setattr(settings.app, "allowed_ips", "10.0.0.0/8")
    second = await wiring.get_rate_limiter()

    assert second is not first
    assert wiring._data_store is store
    assert _http_client(store).is_closed is False
    await wiring.close_admission_clients()


@pytest.mark.asyncio
async def test_client_setting_change_closes_previous_client(wiring, monkeypatch) -> None:
    await wiring.get_rate_limiter()
    old_client = _http_client(wiring._data_store)

    monkeypatch.setattr(settings.data_store, "url", "https://other.example.test")
    await wiring.get_ip_checker()

    assert old_client.is_closed is True
    assert _http_client(wiring._data_store) is not old_client
    await wiring.close_admission_clients()


@pytest.mark.asyncio
async def test_unconfiguring_closes_client(wiring, monkeypatch) -> None:
    await wiring.get_rate_limiter()
    old_client = _http_client(wiring._data_store)

    monkeypatch.setattr(settings.data_store, "url", None)
    limiter = await wiring.get_rate_limiter()

    assert old_client.is_closed is True
    assert wiring._data_store is None
    assert limiter.backend_names == ["local_memory"]


@pytest.mark.asyncio
async def test_shutdown_closes_clients(wiring) -> None:
    await wiring.get_rate_limiter()
    client = _http_client(wiring._data_store)

    await wiring.close_admission_clients()

    assert client.is_closed is True
    assert wiring._limiter is None
