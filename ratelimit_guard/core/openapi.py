"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- API Key security scheme (``X-API-Key``), attached to subject-limited routes
- Tags metadata
- 429 and 503 responses on every route guarded by a ``RateLimit`` dependency

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI
from fastapi.routing import APIRoute

from ratelimit_guard.core.rate_limit import RateLimit
from ratelimit_guard.services.identity import IdentityMode


def _route_limits(route: APIRoute) -> list[RateLimit]:
    return [dep.dependency for dep in route.dependencies if isinstance(dep.dependency, RateLimit)]


def _limited_response(limit: RateLimit) -> Dict[str, Any]:
    return {
        "description": limit.config.describe(),
        "headers": {
            "Retry-After": {
                "description": "Seconds until the current window ends",
                "schema": {"type": "integer", "minimum": 1},
            },
        },
    }


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and rate limit docs."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Identifies the caller for per-subject limits.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Account",
                "description": "Account operations protected by per-identity rate limits.",
            },
            {
                "name": "Health",
                "description": "Liveness and readiness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for route in app.routes:
            if not isinstance(route, APIRoute):
                continue
            limits = _route_limits(route)
            if not limits:
                continue
            for method in route.methods:
                operation = paths.get(route.path_format, {}).get(method.lower())
                if operation is None:
                    continue
                responses = operation.setdefault("responses", {})
                responses.setdefault("429", _limited_response(limits[0]))
                responses.setdefault(
                    "503", {"description": "Rate limiting is temporarily unavailable"}
                )
                if any(lim.config.identity_mode is IdentityMode.BY_SUBJECT for lim in limits):
                    operation["security"] = [{"ApiKeyAuth": []}]
                    responses.setdefault("401", {"description": "You are not authenticated"})

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
