"""Error types shared by adapters, services and the HTTP layer.

Adapters raise ``BackendAppError`` subclasses so callers can tell a backend
outage from a bug. The rate limiter and the IP checker turn them into
``Unavailable`` results or defaults; only code outside those checks lets
them reach the exception handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict


class ErrorDetails(TypedDict, total=False):
    """Optional machine-readable context attached to an AppError."""

    hint: str
    backend: str
    http_status: int


@dataclass
class AppError(Exception):
    """Base error carrying a stable ``code`` and a human ``message``."""

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ValidationAppError(AppError, ValueError):
    """Invalid input; also a ValueError for callers outside the HTTP layer."""


class BackendAppError(AppError):
    """An external admission backend could not serve a call."""


class CacheServiceAppError(BackendAppError):
    """The shared cache service failed or answered with an unexpected body."""


class DataStoreAppError(BackendAppError):
    """The relational data platform failed or answered with an unexpected body."""
