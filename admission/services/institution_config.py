"""Per-institution rate-limit configuration.

Overrides live in ``institution_settings``. They are memoized for the life of
the process; a restart is the only refresh. Lookup failures fall back to the
global default and are never raised: configuration must not block admission.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from admission.adapters.data_store.base import AbstractDataStore
from admission.core.errors import DataStoreAppError
from admission.schemas.admission import InstitutionSettingsRow

logger = logging.getLogger(__name__)

SETTINGS_TABLE = "institution_settings"

DEFAULT_LIMIT = 100
DEFAULT_WINDOW_SECONDS = 60


def _positive_or(value: int | None, default: int) -> int:
    return value if value is not None and value > 0 else default


@dataclass(frozen=True)
class InstitutionRateConfig:
    tenant_id: str | None
    limit: int
    window_seconds: int


class InstitutionConfigResolver:
    """Resolve and memoize rate-limit overrides per tenant."""

    def __init__(
        self,
        store: AbstractDataStore | None,
        *,
        default_limit: int = DEFAULT_LIMIT,
        default_window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Data store holding overrides; None means defaults only.
            default_limit: Requests per window when no override applies.
            default_window_seconds: Window length when no override applies.
        """
        self._store = store
        self._default_limit = default_limit
        self._default_window_seconds = default_window_seconds
        self._cache: dict[str, InstitutionRateConfig] = {}

    def default_for(self, tenant_id: str | None) -> InstitutionRateConfig:
        return InstitutionRateConfig(
            tenant_id=tenant_id,
            limit=self._default_limit,
            window_seconds=self._default_window_seconds,
        )

    def cached(self, tenant_id: str) -> InstitutionRateConfig | None:
        return self._cache.get(tenant_id)

    def clear(self) -> None:
        self._cache.clear()

    async def resolve(self, tenant_id: str | None) -> InstitutionRateConfig:
        """Return the tenant's limit and window, or the global default.

        Args:
            tenant_id: Institution id; None always yields the default.

        Returns:
            InstitutionRateConfig for this tenant.
        """
        if not tenant_id:
            return self.default_for(None)

        cached = self._cache.get(tenant_id)
        if cached is not None:
            return cached

        if self._store is None:
            return self.default_for(tenant_id)

        try:
            rows = await self._store.select(
                SETTINGS_TABLE,
                columns=["sms_rate_limit", "sms_rate_limit_window_seconds"],
                filters={"institution_id": tenant_id},
            )
            row = InstitutionSettingsRow.model_validate(rows[0]) if rows else None
        except (DataStoreAppError, ValidationError) as exc:
            logger.warning(
                "institution_config.lookup_failed",
                extra={"tenant_id": tenant_id, "error_type": type(exc).__name__},
            )
            return self.default_for(tenant_id)

        if row is None:
            logger.debug("institution_config.not_configured", extra={"tenant_id": tenant_id})
            return self.default_for(tenant_id)

        config = InstitutionRateConfig(
            tenant_id=tenant_id,
            limit=_positive_or(row.sms_rate_limit, self._default_limit),
            window_seconds=_positive_or(
                row.sms_rate_limit_window_seconds, self._default_window_seconds
            ),
        )
        self._cache[tenant_id] = config
        logger.info(
            "institution_config.loaded",
            extra={
                "tenant_id": tenant_id,
                "limit": config.limit,
                "window_s": config.window_seconds,
            },
        )
        return config
