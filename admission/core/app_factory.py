"""Application factory for the admission-control service.

Centralizes app construction (metadata, middleware, handlers, routers,
shutdown of HTTP clients) so tests can build fresh apps.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from admission.api.routes import admission_router, health_router
from admission.core.admission import close_admission_clients
from admission.core.config import settings
from admission.core.exception_handlers import setup_exception_handlers
from admission.core.logging import configure_logging
from admission.core.middleware import request_id_middleware
from admission.core.openapi import apply_openapi_customizations

API_PREFIX = "/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await close_admission_clients()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Admission Control API",
        description=(
            "Admission control for the savings-group back office: per-institution "
            "IP allow-lists (exact addresses and CIDR blocks) and a distributed "
            "sliding-window rate limiter backed by a shared cache, the data "
            "store, or process memory as a last resort."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(admission_router, prefix=API_PREFIX)
    app.include_router(health_router)

    apply_openapi_customizations(app, gated_paths={f"{API_PREFIX}/admission/gate"})

    return app
