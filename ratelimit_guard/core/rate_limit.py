"""Rate limiting dependency for FastAPI routes.

This module wires the framework-neutral guard into the HTTP layer.

Design goals:
- One counter store and one guard per process, created by the app factory and
  kept on ``app.state``; routes never construct stores.
- Limits are declared next to the route they protect and validated when the
  route module is imported.
- Safe defaults: failures of the store follow an explicit policy.

Usage:
    @router.post("/login", dependencies=[Depends(RateLimit(max_attempts=5, window_minutes=1))])
    async def login(): ...
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from fastapi import FastAPI, Request, Response

from ratelimit_guard.adapters.counter_store.base import AbstractCounterStore
from ratelimit_guard.core.config import AppSettings, settings
from ratelimit_guard.core.errors import (
    AppError,
    IdentityUnavailableError,
    RateLimitExceededError,
    StoreUnavailableError,
)
from ratelimit_guard.services.decision_engine import RateLimitDecisionEngine
from ratelimit_guard.services.guard import FailurePolicy, GuardOutcome, OutcomeKind, RateLimitGuard
from ratelimit_guard.services.identity import IdentityMode, RequestContext, default_resolvers
from ratelimit_guard.services.window_policy import RateLimitConfig

logger = logging.getLogger(__name__)


def install_rate_limiting(
    app: FastAPI,
    store: AbstractCounterStore,
    *,
    app_settings: AppSettings | None = None,
    timeout_seconds: float | None = None,
) -> RateLimitGuard:
    """Attach the shared store and guard to the application.

    Args:
        app: FastAPI application.
        store: Counter store shared by every protected route.
        app_settings: Optional app settings; defaults to global settings.
        timeout_seconds: Maximum wait for one store round trip.

    Returns:
        RateLimitGuard: The guard stored on ``app.state.rate_limit_guard``.
    """
    cfg = app_settings or settings.app
    engine = RateLimitDecisionEngine(
        store,
        resolvers=default_resolvers(trust_forwarded_for=cfg.trust_forwarded_for),
    )
    guard = RateLimitGuard(
        engine,
        failure_policy=FailurePolicy(cfg.rate_limit_failure_policy),
        timeout_seconds=timeout_seconds,
    )
    app.state.counter_store = store
    app.state.rate_limit_guard = guard
    app.state.rate_limit_settings = cfg
    logger.info(
        "rate_limit.installed",
        extra={
            "store": type(store).__name__,
            "failure_policy": guard.failure_policy.value,
            "timeout_seconds": timeout_seconds,
        },
    )
    return guard


def get_rate_limit_guard(request: Request) -> RateLimitGuard:
    """Return the guard installed on the application."""
    guard = getattr(request.app.state, "rate_limit_guard", None)
    if guard is None:
        raise RuntimeError("Rate limiting is not installed; call install_rate_limiting()")
    return guard


def endpoint_operation(endpoint: Callable[..., Any]) -> str:
    """Operation name of a route endpoint: its module and qualified name.

    Both stay the same across processes and restarts.
    """
    return f"{endpoint.__module__}.{endpoint.__qualname__}"


def operation_name(request: Request) -> str:
    """Stable name of the route handling ``request``.

    Falls back to method and path for requests without a routed endpoint.
    """
    endpoint = request.scope.get("endpoint")
    if endpoint is not None:
        return endpoint_operation(endpoint)
    return f"{request.method} {request.url.path}"


def build_request_context(request: Request, operation: str | None = None) -> RequestContext:
    """Snapshot the parts of a request the guard needs.

    Args:
        request: Incoming request.
        operation: Operation to account against; defaults to the routed endpoint.
    """
    return RequestContext(
        operation=operation or operation_name(request),
        client_host=request.client.host if request.client else None,
        subject=getattr(request.state, "subject", None),
        headers={k.lower(): v for k, v in request.headers.items()},
    )


class RateLimit:
    """FastAPI dependency enforcing a per-identity fixed-window limit.

    The limit is validated on construction, so an invalid declaration fails
    when the route module is imported.
    """

    def __init__(
        self,
        max_attempts: int = 1,
        window_hours: int = 0,
        window_minutes: int = 0,
        key_prefix: str = "RL",
        identity_mode: IdentityMode = IdentityMode.BY_ORIGIN,
    ) -> None:
        self.config = RateLimitConfig(
            max_attempts=max_attempts,
            window_hours=window_hours,
            window_minutes=window_minutes,
            key_prefix=key_prefix,
            identity_mode=identity_mode,
        )

    async def __call__(self, request: Request, response: Response) -> None:
        """Admit the request or short-circuit it with the guard's outcome.

        Raises:
            RateLimitExceededError: 429 when over the limit.
            IdentityUnavailableError: 400/401 when the caller cannot be identified.
            StoreUnavailableError: 503 when the store fails closed.
        """
        cfg: AppSettings = getattr(request.app.state, "rate_limit_settings", settings.app)
        if not cfg.rate_limit_enabled:
            return

        guard = get_rate_limit_guard(request)
        outcome = await guard.check_async(build_request_context(request), self.config)
        request.state.rate_limit = outcome

        if outcome.proceed:
            if cfg.rate_limit_include_headers:
                response.headers.update(outcome.headers)
            return

        raise _outcome_error(
            outcome,
            self.config,
            include_rate_limit_headers=cfg.rate_limit_include_headers,
        )


def _error_headers(
    outcome: GuardOutcome, *, include_rate_limit_headers: bool
) -> dict[str, str] | None:
    headers: dict[str, str] = {}
    if include_rate_limit_headers:
        headers.update(outcome.headers)
    elif outcome.retry_after_seconds is not None:
        # Retry-After always accompanies a 429.
        headers["Retry-After"] = str(outcome.retry_after_seconds)
    if outcome.status_code == 401:
        headers["WWW-Authenticate"] = "ApiKey"
    return headers or None


def _outcome_error(
    outcome: GuardOutcome,
    config: RateLimitConfig,
    *,
    include_rate_limit_headers: bool,
) -> AppError:
    """Build the domain error answering a request the guard refused."""
    headers = _error_headers(outcome, include_rate_limit_headers=include_rate_limit_headers)
    code = outcome.code or "rate_limit_error"
    message = outcome.message or ""

    if outcome.kind is OutcomeKind.REJECT:
        return RateLimitExceededError(
            code=code,
            message=message,
            details={
                "retry_after": outcome.retry_after_seconds,
                "identity_mode": config.identity_mode.value,
            },
            headers=headers,
        )
    if outcome.kind is OutcomeKind.UNAUTHORIZED:
        return IdentityUnavailableError(
            code=code,
            message=message,
            details={
                "http_status": outcome.status_code or 401,
                "identity_mode": config.identity_mode.value,
            },
            headers=headers,
        )
    return StoreUnavailableError(code=code, message=message, headers=headers)
