"""Unit tests for per-institution rate-limit configuration."""

import pytest

from admission.services.institution_config import (
    SETTINGS_TABLE,
    InstitutionConfigResolver,
)


@pytest.mark.asyncio
async def test_no_tenant_returns_global_default(data_store) -> None:
    resolver = InstitutionConfigResolver(data_store)

    config = await resolver.resolve(None)

    assert (config.limit, config.window_seconds) == (100, 60)
    assert data_store.select_calls == []


@pytest.mark.asyncio
async def test_loads_and_caches_override(data_store) -> None:
    data_store.tables[SETTINGS_TABLE] = [
        {"institution_id": "t1", "sms_rate_limit": 3, "sms_rate_limit_window_seconds": 30},
    ]
    resolver = InstitutionConfigResolver(data_store)

    first = await resolver.resolve("t1")
    second = await resolver.resolve("t1")

    assert (first.limit, first.window_seconds) == (3, 30)
    assert second == first
    assert len(data_store.select_calls) == 1
    assert data_store.select_calls[0] == (SETTINGS_TABLE, {"institution_id": "t1"})


@pytest.mark.asyncio
async def test_cached_value_survives_store_outage(data_store) -> None:
    data_store.tables[SETTINGS_TABLE] = [
        {"institution_id": "t1", "sms_rate_limit": 5, "sms_rate_limit_window_seconds": 10},
    ]
    resolver = InstitutionConfigResolver(data_store)
    await resolver.resolve("t1")

    data_store.fail = True
    config = await resolver.resolve("t1")

    assert config.limit == 5


@pytest.mark.asyncio
async def test_null_or_zero_columns_fall_back_per_field(data_store) -> None:
    data_store.tables[SETTINGS_TABLE] = [
        {"institution_id": "t1", "sms_rate_limit": 250, "sms_rate_limit_window_seconds": None},
        {"institution_id": "t2", "sms_rate_limit": 0, "sms_rate_limit_window_seconds": 120},
    ]
    resolver = InstitutionConfigResolver(data_store)

    t1 = await resolver.resolve("t1")
    t2 = await resolver.resolve("t2")

    assert (t1.limit, t1.window_seconds) == (250, 60)
    assert (t2.limit, t2.window_seconds) == (100, 120)


@pytest.mark.asyncio
async def test_missing_row_returns_default_without_caching(data_store) -> None:
    resolver = InstitutionConfigResolver(data_store)

    config = await resolver.resolve("unknown")

    assert (config.limit, config.window_seconds) == (100, 60)
    assert resolver.cached("unknown") is None


@pytest.mark.asyncio
async def test_lookup_failure_returns_default_without_raising(data_store) -> None:
    data_store.fail = True
    resolver = InstitutionConfigResolver(data_store, default_limit=20, default_window_seconds=5)

    config = await resolver.resolve("t1")

    assert (config.limit, config.window_seconds) == (20, 5)
    assert resolver.cached("t1") is None


@pytest.mark.asyncio
async def test_malformed_row_returns_default(data_store) -> None:
    data_store.tables[SETTINGS_TABLE] = [
        {"institution_id": "t1", "sms_rate_limit": "lots", "sms_rate_limit_window_seconds": 60},
    ]
    resolver = InstitutionConfigResolver(data_store)

    config = await resolver.resolve("t1")

    assert config.limit == 100


@pytest.mark.asyncio
async def test_without_store_only_defaults() -> None:
    resolver = InstitutionConfigResolver(None)

    config = await resolver.resolve("t1")

    assert (config.limit, config.window_seconds) == (100, 60)


@pytest.mark.asyncio
async def test_clear_forces_reload(data_store) -> None:
    data_store.tables[SETTINGS_TABLE] = [
        {"institution_id": "t1", "sms_rate_limit": 3, "sms_rate_limit_window_seconds": 30},
    ]
    resolver = InstitutionConfigResolver(data_store)
    await resolver.resolve("t1")

    data_store.tables[SETTINGS_TABLE][0]["sms_rate_limit"] = 7
    assert (await resolver.resolve("t1")).limit == 3

    resolver.clear()
    assert (await resolver.resolve("t1")).limit == 7
