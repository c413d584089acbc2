from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.
    Reports which counter store backs the rate limits.

    Returns:
        dict: ``{"status": "ok", "counter_store": <store class name>}``.
    """

    store = getattr(request.app.state, "counter_store", None)
    return {"status": "ok", "counter_store": type(store).__name__ if store else None}
