"""Account endpoints protected by per-identity rate limits.

Login attempts are counted per network origin; password resets per
authenticated subject (the caller's API key).
"""

from __future__ import annotations

import asyncio
import math

from fastapi import APIRouter, Depends, Request

from ratelimit_guard.core.auth import identify_api_key
from ratelimit_guard.core.rate_limit import (
    RateLimit,
    build_request_context,
    endpoint_operation,
    get_rate_limit_guard,
)
from ratelimit_guard.schemas.rate_limit import AttemptAcceptedResponse, RateLimitStatusResponse
from ratelimit_guard.services.identity import IdentityMode

router = APIRouter(tags=["Account"])

login_limit = RateLimit(max_attempts=5, window_minutes=1)
password_reset_limit = RateLimit(
    max_attempts=1,
    window_hours=1,
    identity_mode=IdentityMode.BY_SUBJECT,
)


@router.post(
    "/account/login",
    response_model=AttemptAcceptedResponse,
    dependencies=[Depends(login_limit)],
)
async def login() -> AttemptAcceptedResponse:
    """Record a login attempt (credential checking is left to the host)."""
    return AttemptAcceptedResponse(operation=endpoint_operation(login))


@router.post(
    "/account/password-reset",
    response_model=AttemptAcceptedResponse,
    dependencies=[Depends(identify_api_key), Depends(password_reset_limit)],
)
async def request_password_reset() -> AttemptAcceptedResponse:
    """Request a password reset; one per subject per hour."""
    return AttemptAcceptedResponse(operation=endpoint_operation(request_password_reset))


@router.get("/account/login/limit", response_model=RateLimitStatusResponse)
async def login_limit_status(request: Request) -> RateLimitStatusResponse:
    """Show the caller's login counter without consuming an attempt.

    Raises:
        IdentityUnavailableError: If the caller's origin cannot be read.
        StoreUnavailableError: If the counter store is unreachable.
    """
    config = login_limit.config
    operation = endpoint_operation(login)
    engine = get_rate_limit_guard(request).engine
    context = build_request_context(request, operation=operation)

    loop = asyncio.get_running_loop()
    snapshot = await loop.run_in_executor(None, engine.inspect, context, config)

    count = snapshot.count if snapshot else 0
    return RateLimitStatusResponse(
        operation=operation,
        limit=config.max_attempts,
        window_seconds=config.window_seconds,
        count=count,
        remaining=max(0, config.max_attempts - count),
        reset_at=int(math.ceil(snapshot.window_end)) if snapshot else None,
    )
