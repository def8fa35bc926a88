"""OpenAPI customization.

Documents the rate limiting contract in the generated schema:
- a reusable ``TooManyRequests`` response (429 body and headers)
- a 429 reference on every throttled operation
- tags metadata
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from throttler.core.rate_limit import TOO_MANY_REQUESTS_MESSAGE

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Requests allowed per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "UNIX epoch seconds at which the window resets.",
        "schema": {"type": "integer"},
    },
    "Retry-After": {
        "description": "Seconds until the window resets.",
        "schema": {"type": "integer"},
    },
}

_TAGS = [
    {"name": "Limits", "description": "Rate limiter configuration and state."},
    {"name": "Health", "description": "Liveness checks (never throttled)."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with rate limiting documentation.

    Health endpoints are left untouched since they are never throttled.
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        responses = schema.setdefault("components", {}).setdefault("responses", {})
        responses.setdefault(
            "TooManyRequests",
            {
                "description": "Rate limit exceeded.",
                "headers": _RATE_LIMIT_HEADERS,
                "content": {
                    "application/json": {
                        "example": {"success": False, "error": TOO_MANY_REQUESTS_MESSAGE},
                    }
                },
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(t for t in _TAGS if t["name"] not in existing_tag_names)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault(
                        "429", {"$ref": "#/components/responses/TooManyRequests"}
                    )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
