"""Redis-backed fixed-window counter store."""

from __future__ import annotations

import logging
import time
from typing import Callable

from redis import Redis
from redis.exceptions import RedisError

from ratelimit_guard.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from ratelimit_guard.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Distributed counters shared by every process using the same Redis.

    Each increment is one MULTI/EXEC transaction::

        SET key 0 PX <window_ms> NX   -- open a window only if none is live
        PEXPIRE key <window_ms> NX    -- bound a key that has no TTL
        INCR key                      -- keeps the TTL set above
        PTTL key                      -- remaining window for retry-after

    Redis runs the queued commands back to back, so two processes can never
    both observe the same count, and key expiry doubles as the window reset.
    ``PEXPIRE ... NX`` needs Redis 7 or newer.
    """

    def __init__(self, client: Redis, *, clock: Callable[[], float] = time.time) -> None:
        self._client = client
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, *, timeout_seconds: float) -> "RedisCounterStore":
        """Build a store from a ``redis://`` URL with socket timeouts applied."""
        client = Redis.from_url(
            url,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(client)

    def _unavailable(self, operation: str, exc: RedisError) -> StoreUnavailableError:
        logger.warning(
            "counter_store.redis_error",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        return StoreUnavailableError(
            code="counter_store_unavailable",
            message="Rate limit counter store is unavailable",
            details={"backend": "redis", "context": {"operation": operation}},
        )

    def try_increment(self, key: str, window_seconds: float) -> CounterSnapshot:
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        window_ms = max(1, int(window_seconds * 1000))
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.set(key, 0, px=window_ms, nx=True)
            # Bounds a key written without expiry; never touches a live TTL.
            pipe.pexpire(key, window_ms, nx=True)
            pipe.incr(key)
            pipe.pttl(key)
            _, _, count, ttl_ms = pipe.execute()
        except RedisError as exc:
            raise self._unavailable("try_increment", exc) from exc

        return CounterSnapshot(
            count=int(count), window_end=self._clock() + max(ttl_ms, 0) / 1000
        )

    def peek(self, key: str) -> CounterSnapshot | None:
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.get(key)
            pipe.pttl(key)
            raw, ttl_ms = pipe.execute()
        except RedisError as exc:
            raise self._unavailable("peek", exc) from exc

        if raw is None or ttl_ms == -2:
            return None
        window_end = self._clock() + max(ttl_ms, 0) / 1000
        return CounterSnapshot(count=int(raw), window_end=window_end)

    def close(self) -> None:
        self._client.close()
