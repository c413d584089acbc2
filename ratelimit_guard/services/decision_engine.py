"""Rate limit decision engine.

Resolves the caller, derives the counter key, records the attempt with one
atomic store call and applies the window policy to the returned count. The
engine never writes the counter back itself: the store's increment is the
only mutation, which is what keeps concurrent requests from over-admitting.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping

from ratelimit_guard.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from ratelimit_guard.core.errors import IdentityUnavailableError, StoreUnavailableError
from ratelimit_guard.services.identity import (
    IdentityMode,
    IdentityResolver,
    RequestContext,
    default_resolvers,
)
from ratelimit_guard.services.rate_limit_keys import build_key
from ratelimit_guard.services.window_policy import RateLimitConfig, Verdict, decide


class DecisionKind(str, Enum):
    ADMIT = "admit"
    REJECT = "reject"
    IDENTITY_UNAVAILABLE = "identity_unavailable"
    STORE_ERROR = "store_error"


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating one request against one limit.

    Attributes:
        kind: Which branch the evaluation took.
        limit: Configured ``max_attempts``.
        key: Counter key, when the identity could be resolved.
        count: Post-increment count (ADMIT/REJECT only).
        window_end: UNIX epoch seconds at which the window resets.
        retry_after_seconds: Time left in the window (REJECT only).
        limit_description: Human-readable limit (REJECT only).
        error: The identity or store error behind a non-counting decision.
    """

    kind: DecisionKind
    limit: int
    key: str | None = None
    count: int | None = None
    window_end: float | None = None
    retry_after_seconds: float | None = None
    limit_description: str | None = None
    error: IdentityUnavailableError | StoreUnavailableError | None = None

    @property
    def remaining(self) -> int:
        if self.count is None:
            return 0
        return max(0, self.limit - self.count)


class RateLimitDecisionEngine:
    """Evaluate requests against fixed-window limits held in a shared store.

    The engine is stateless apart from its collaborators and may be shared by
    any number of guards and threads. It holds no locks; mutual exclusion is
    the store's job.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        resolvers: Mapping[IdentityMode, IdentityResolver] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._resolvers = dict(resolvers or default_resolvers())
        self._clock = clock

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def key_for(self, context: RequestContext, config: RateLimitConfig) -> str:
        """Resolve the caller and build its counter key.

        Raises:
            IdentityUnavailableError: If the caller cannot be identified.
        """
        identity = self._resolvers[config.identity_mode].resolve(context)
        return build_key(config.key_prefix, identity, context.operation)

    def evaluate(self, context: RequestContext, config: RateLimitConfig) -> Decision:
        """Record one attempt for the caller and decide whether to admit it.

        Args:
            context: Snapshot of the request being guarded.
            config: Limit of the protected operation.

        Returns:
            Decision; identity and store failures are returned, not raised.
        """
        try:
            key = self.key_for(context, config)
        except IdentityUnavailableError as exc:
            return Decision(
                kind=DecisionKind.IDENTITY_UNAVAILABLE,
                limit=config.max_attempts,
                error=exc,
            )

        try:
            snapshot = self._store.try_increment(key, config.window_seconds)
        except StoreUnavailableError as exc:
            return Decision(
                kind=DecisionKind.STORE_ERROR,
                limit=config.max_attempts,
                key=key,
                error=exc,
            )

        if decide(snapshot.count, config.max_attempts) is Verdict.ADMIT:
            return Decision(
                kind=DecisionKind.ADMIT,
                limit=config.max_attempts,
                key=key,
                count=snapshot.count,
                window_end=snapshot.window_end,
            )

        return Decision(
            kind=DecisionKind.REJECT,
            limit=config.max_attempts,
            key=key,
            count=snapshot.count,
            window_end=snapshot.window_end,
            retry_after_seconds=max(0.0, snapshot.window_end - self._clock()),
            limit_description=config.describe(),
        )

    def inspect(self, context: RequestContext, config: RateLimitConfig) -> CounterSnapshot | None:
        """Return the caller's live counter for diagnostics without recording an attempt.

        Raises:
            IdentityUnavailableError: If the caller cannot be identified.
            StoreUnavailableError: If the store cannot be reached.
        """
        return self._store.peek(self.key_for(context, config))
