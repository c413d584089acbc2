"""Guard mapping rate limit decisions to host control flow.

The guard is what request handlers call before running protected logic. It
turns every per-request failure into an outcome, so nothing raised by the
engine or the store reaches the host as an exception.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum

from ratelimit_guard.core.errors import StoreUnavailableError
from ratelimit_guard.core.logging import hash_identifier
from ratelimit_guard.services.decision_engine import Decision, DecisionKind, RateLimitDecisionEngine
from ratelimit_guard.services.identity import RequestContext
from ratelimit_guard.services.window_policy import RateLimitConfig

logger = logging.getLogger(__name__)

STORE_UNAVAILABLE_MESSAGE = "Rate limiting is temporarily unavailable. Please try again later."


class FailurePolicy(str, Enum):
    """What to do when the counter store cannot be reached."""

    OPEN = "open"
    CLOSED = "closed"


class OutcomeKind(str, Enum):
    PROCEED = "proceed"
    REJECT = "reject"
    UNAUTHORIZED = "unauthorized"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class GuardOutcome:
    """What the host should do with the request.

    Attributes:
        kind: Proceed, or the reason for short-circuiting.
        status_code: HTTP status to answer with when not proceeding.
        code: Stable, machine-readable reason code.
        message: Human-readable message for the caller.
        retry_after_seconds: Whole seconds until the window resets (REJECT).
        headers: Rate limit headers for the response.
    """

    kind: OutcomeKind
    status_code: int | None = None
    code: str | None = None
    message: str | None = None
    retry_after_seconds: int | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def proceed(self) -> bool:
        return self.kind is OutcomeKind.PROCEED


def _rate_limit_headers(decision: Decision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if decision.window_end is not None:
        headers["X-RateLimit-Reset"] = str(int(math.ceil(decision.window_end)))
    return headers


class RateLimitGuard:
    """Apply a limit to a request and report the outcome.

    One guard (and one engine) is created per process and shared by every
    protected operation; the per-operation limit travels with each call.
    """

    def __init__(
        self,
        engine: RateLimitDecisionEngine,
        *,
        failure_policy: FailurePolicy = FailurePolicy.CLOSED,
        timeout_seconds: float | None = None,
    ) -> None:
        """Initialize the guard.

        Args:
            engine: Decision engine bound to the shared counter store.
            failure_policy: Admit (open) or reject (closed) when the store fails.
            timeout_seconds: Maximum wait for a decision in :meth:`check_async`.
        """
        self._engine = engine
        self._failure_policy = FailurePolicy(failure_policy)
        self._timeout_seconds = timeout_seconds

    @property
    def engine(self) -> RateLimitDecisionEngine:
        return self._engine

    @property
    def failure_policy(self) -> FailurePolicy:
        return self._failure_policy

    def __call__(self, context: RequestContext, config: RateLimitConfig) -> GuardOutcome:
        return self.check(context, config)

    def check(self, context: RequestContext, config: RateLimitConfig) -> GuardOutcome:
        """Evaluate the request synchronously and map the decision."""
        return self.to_outcome(self._engine.evaluate(context, config), context, config)

    async def check_async(self, context: RequestContext, config: RateLimitConfig) -> GuardOutcome:
        """Evaluate the request without blocking the event loop.

        The store round trip runs in the default executor. If it does not
        finish within ``timeout_seconds`` the guard stops waiting and applies
        the failure policy; the store call itself still runs to completion.
        """
        loop = asyncio.get_running_loop()
        try:
            decision = await asyncio.wait_for(
                loop.run_in_executor(None, self._engine.evaluate, context, config),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "rate_limit.store_timeout",
                extra={
                    "operation": context.operation,
                    "timeout_seconds": self._timeout_seconds,
                },
            )
            decision = Decision(
                kind=DecisionKind.STORE_ERROR,
                limit=config.max_attempts,
                error=StoreUnavailableError(
                    code="counter_store_timeout",
                    message="Rate limit counter store did not answer in time",
                    details={"context": {"timeout_seconds": self._timeout_seconds}},
                ),
            )
        return self.to_outcome(decision, context, config)

    def to_outcome(
        self,
        decision: Decision,
        context: RequestContext,
        config: RateLimitConfig,
    ) -> GuardOutcome:
        """Translate an engine decision into a host outcome, logging it."""
        log_extra = {
            "operation": context.operation,
            "identity_mode": config.identity_mode.value,
            "key_hash": hash_identifier(decision.key) if decision.key else None,
            "limit": decision.limit,
            "window_s": config.window_seconds,
        }

        if decision.kind is DecisionKind.ADMIT:
            logger.info(
                "rate_limit.allowed",
                extra={**log_extra, "remaining": decision.remaining},
            )
            return GuardOutcome(kind=OutcomeKind.PROCEED, headers=_rate_limit_headers(decision))

        if decision.kind is DecisionKind.REJECT:
            retry_after = max(1, int(math.ceil(decision.retry_after_seconds or 0)))
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_extra, "count": decision.count, "retry_after_s": retry_after},
            )
            headers = _rate_limit_headers(decision)
            headers["Retry-After"] = str(retry_after)
            return GuardOutcome(
                kind=OutcomeKind.REJECT,
                status_code=429,
                code="rate_limit_exceeded",
                message=decision.limit_description,
                retry_after_seconds=retry_after,
                headers=headers,
            )

        if decision.kind is DecisionKind.IDENTITY_UNAVAILABLE:
            error = decision.error
            status_code = (error.details or {}).get("http_status", 401) if error else 401
            logger.warning(
                "rate_limit.identity_unavailable",
                extra={**log_extra, "reason": error.code if error else None},
            )
            return GuardOutcome(
                kind=OutcomeKind.UNAUTHORIZED,
                status_code=status_code,
                code=error.code if error else "identity_unavailable",
                message=error.message if error else "Unable to identify the caller",
            )

        error_code = decision.error.code if decision.error else "counter_store_unavailable"
        if self._failure_policy is FailurePolicy.OPEN:
            logger.warning(
                "rate_limit.fail_open",
                extra={**log_extra, "reason": error_code},
            )
            return GuardOutcome(kind=OutcomeKind.PROCEED)

        logger.error(
            "rate_limit.store_unavailable",
            extra={**log_extra, "reason": error_code},
        )
        return GuardOutcome(
            kind=OutcomeKind.INTERNAL_ERROR,
            status_code=503,
            code=error_code,
            message=STORE_UNAVAILABLE_MESSAGE,
        )
