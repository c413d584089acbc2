from __future__ import annotations

from ratelimit_guard.api.routes.account import router as account_router
from ratelimit_guard.api.routes.health import router as health_router

__all__ = ["account_router", "health_router"]
