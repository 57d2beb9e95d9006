"""IP allow-list admission.

Decision order for ``check(ip, tenant_id)``:

1. No IP -> deny.
2. Tenant given: its active ``institution_ip_whitelist`` rows decide.
   No rows -> allow (the institution has not restricted access).
   Rows -> allow iff one matches, else deny.
   A failed lookup is inconclusive and moves on to step 3.
3. Global environment allow-list: unset -> allow, else allow iff one matches.

A definitive tenant answer is returned as-is; the environment list is only
consulted when there is no tenant or the tenant lookup failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from admission.adapters.data_store.base import AbstractDataStore
from admission.core.errors import DataStoreAppError
from admission.schemas.admission import IPDecisionSource, WhitelistEntry
from admission.utils.cidr import matches_any, parse_allow_list

logger = logging.getLogger(__name__)

WHITELIST_TABLE = "institution_ip_whitelist"

REASON_NO_IP = "no IP address provided"
REASON_NOT_IN_INSTITUTION = "IP not in institution whitelist"
REASON_NOT_IN_ENVIRONMENT = "IP not in environment whitelist"


@dataclass(frozen=True)
class IPAdmissionDecision:
    allowed: bool
    source: IPDecisionSource
    reason: str | None = None


class IPWhitelistChecker:
    """Admit or deny a (tenant, IP) pair against the configured allow-lists."""

    def __init__(
        self,
        store: AbstractDataStore | None,
        *,
        environment_allow_list: str | None = None,
    ) -> None:
        """Initialize the checker.

        Args:
            store: Data store holding per-institution allow-lists; None skips step 2.
            environment_allow_list: Comma-separated global allow-list; None/blank means open.
        """
        self._store = store
        self._environment_entries = parse_allow_list(environment_allow_list)

    async def check(self, ip: str | None, tenant_id: str | None = None) -> IPAdmissionDecision:
        if not ip or not ip.strip():
            logger.warning("ip_whitelist.denied", extra={"reason": REASON_NO_IP})
            return IPAdmissionDecision(allowed=False, source="default", reason=REASON_NO_IP)
        ip = ip.strip()

        if tenant_id and self._store is not None:
            decision = await self._check_tenant(self._store, ip, tenant_id)
            if decision is not None:
                return decision

        return self._check_environment(ip)

    async def _check_tenant(
        self, store: AbstractDataStore, ip: str, tenant_id: str
    ) -> IPAdmissionDecision | None:
        """Evaluate the tenant allow-list; None when the lookup is inconclusive."""
        try:
            rows = await store.select(
                WHITELIST_TABLE,
                columns=["ip_address", "cidr_prefix"],
                filters={"institution_id": tenant_id, "is_active": True},
            )
            entries = [WhitelistEntry.model_validate(row) for row in rows]
        except (DataStoreAppError, ValidationError) as exc:
            logger.warning(
                "ip_whitelist.lookup_failed",
                extra={"tenant_id": tenant_id, "error_type": type(exc).__name__},
            )
            return None

        if not entries:
            return IPAdmissionDecision(allowed=True, source="default")

        if matches_any(ip, (entry.as_allow_list_entry() for entry in entries)):
            return IPAdmissionDecision(allowed=True, source="tenant-store")

        logger.warning(
            "ip_whitelist.denied",
            extra={
                "tenant_id": tenant_id,
                "ip": ip,
                "source": "tenant-store",
                "entries": len(entries),
            },
        )
        return IPAdmissionDecision(
            allowed=False, source="tenant-store", reason=REASON_NOT_IN_INSTITUTION
        )

    def _check_environment(self, ip: str) -> IPAdmissionDecision:
        if not self._environment_entries:
            return IPAdmissionDecision(allowed=True, source="default")

        if matches_any(ip, self._environment_entries):
            return IPAdmissionDecision(allowed=True, source="environment")

        logger.warning(
            "ip_whitelist.denied",
            extra={"ip": ip, "source": "environment"},
        )
        return IPAdmissionDecision(
            allowed=False, source="environment", reason=REASON_NOT_IN_ENVIRONMENT
        )
