"""Pydantic schemas for data-store rows and the admission API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


IPDecisionSource = Literal["tenant-store", "environment", "default"]


class InstitutionSettingsRow(BaseModel):
    """Rate-limit columns of an ``institution_settings`` row."""

    sms_rate_limit: int | None = Field(
        default=None, description="Requests per window; null/0 means use the default."
    )
    sms_rate_limit_window_seconds: int | None = Field(
        default=None, description="Window length; null/0 means use the default."
    )


class WhitelistEntry(BaseModel):
    """Active row of ``institution_ip_whitelist``."""

    ip_address: str = Field(..., description="Exact address or network base address.")
    cidr_prefix: int | None = Field(
        default=None, description="Prefix length when the entry is a CIDR block."
    )

    def as_allow_list_entry(self) -> str:
        address = self.ip_address.strip()
        if self.cidr_prefix is not None and "/" not in address:
            return f"{address}/{self.cidr_prefix}"
        return address


class AdmissionCheckRequest(BaseModel):
    """Body of ``POST /v1/admission/check``."""

    identifier: str = Field(
        ..., min_length=1, description="Caller identity: device id, phone number or IP."
    )
    institution_id: str | None = Field(
        default=None, description="Tenant scope for quota and IP allow-list."
    )
    ip: str | None = Field(
        default=None,
        description="Client IP; resolved from proxy headers of this request when omitted.",
    )
    limit: int | None = Field(default=None, ge=1, description="Override requests per window.")
    window_seconds: int | None = Field(default=None, ge=1, description="Override window length.")


class RateLimitDecisionSchema(BaseModel):
    allowed: bool
    remaining: int = Field(..., ge=0)
    reset_at: float = Field(..., description="UNIX epoch seconds.")
    limit: int


class IPDecisionSchema(BaseModel):
    allowed: bool
    reason: str | None = None
    source: IPDecisionSource


class AdmissionCheckResponse(BaseModel):
    """Both admission decisions for one request, plus rate-limit headers."""

    admitted: bool = Field(..., description="True when both checks admit the request.")
    ip: str | None = Field(default=None, description="IP the allow-list was checked against.")
    ip_decision: IPDecisionSchema
    rate_limit: RateLimitDecisionSchema | None = Field(
        default=None, description="Absent when the IP was rejected and no quota was consumed."
    )
    headers: dict[str, str] = Field(default_factory=dict)
