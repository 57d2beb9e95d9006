"""OpenAPI metadata and customization utilities.

Enriches the generated schema with tags metadata and documents the
403/429 responses (and rate-limit headers) of routes guarded by
``enforce_admission``. Keeps documentation concerns out of the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

RATE_LIMIT_HEADERS_DOC: Dict[str, Any] = {
    "X-RateLimit-Limit": {"description": "Requests allowed per window.", "schema": {"type": "string"}},
    "X-RateLimit-Remaining": {"description": "Requests left in the window.", "schema": {"type": "string"}},
    "X-RateLimit-Reset": {"description": "Window reset, UNIX epoch seconds.", "schema": {"type": "string"}},
    "Retry-After": {"description": "Seconds to wait before retrying.", "schema": {"type": "string"}},
}


def apply_openapi_customizations(app: FastAPI, gated_paths: set[str] | None = None) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and admission responses.

    Args:
        app: Application whose schema is customized.
        gated_paths: Paths protected by the admission gate; they get 403/429 docs.
    """

    original_openapi = app.openapi
    gated = gated_paths or set()

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Admission",
                "description": "IP allow-list and sliding-window rate limit checks.",
            },
            {
                "name": "Health",
                "description": "Liveness and readiness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path not in gated:
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                responses = method_obj.setdefault("responses", {})
                responses.setdefault(
                    "403", {"description": "Client IP is not on the allow-list."}
                )
                responses.setdefault(
                    "429",
                    {
                        "description": "Rate limit exceeded.",
                        "headers": RATE_LIMIT_HEADERS_DOC,
                    },
                )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
