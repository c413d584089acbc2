"""In-process fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
  Use the Redis store when more than one process protects the same routes.
- Thread-safe: keys are spread over lock stripes, each stripe owning its own
  entries, so increments for one key are serialized while unrelated keys
  rarely contend.
"""

from __future__ import annotations

import threading
import time
import zlib
from dataclasses import dataclass
from typing import Callable

from ratelimit_guard.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from ratelimit_guard.core.errors import ConfigurationAppError


@dataclass
class _Entry:
    count: int
    window_start: float
    window_end: float


class _Stripe:
    __slots__ = ("lock", "entries", "sweep_at")

    def __init__(self, sweep_at: int) -> None:
        self.lock = threading.Lock()
        self.entries: dict[str, _Entry] = {}
        self.sweep_at = sweep_at


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping entries in process memory.

    Expired entries are lazily replaced by the first increment after the
    window end, and swept from a stripe once it grows past
    ``sweep_threshold`` entries. A sweep that leaves many live entries raises
    that stripe's next sweep point to twice its remaining size.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        stripes: int = 64,
        sweep_threshold: int = 1024,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in seconds.
            stripes: Number of lock stripes.
            sweep_threshold: Stripe size that triggers removal of expired entries.

        Raises:
            ConfigurationAppError: If stripes or sweep_threshold are not positive.
        """
        if stripes < 1:
            raise ConfigurationAppError(
                code="invalid_store_stripes",
                message="stripes must be >= 1",
                details={"field": "stripes", "actual_value": stripes},
            )
        if sweep_threshold < 1:
            raise ConfigurationAppError(
                code="invalid_store_sweep_threshold",
                message="sweep_threshold must be >= 1",
                details={"field": "sweep_threshold", "actual_value": sweep_threshold},
            )

        self._clock = clock
        self._stripes = [_Stripe(sweep_threshold) for _ in range(stripes)]
        self._sweep_threshold = sweep_threshold

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(stripes={len(self._stripes)}, size={len(self)})"

    def __len__(self) -> int:
        return sum(len(stripe.entries) for stripe in self._stripes)

    def _stripe_for(self, key: str) -> _Stripe:
        return self._stripes[zlib.crc32(key.encode()) % len(self._stripes)]

    def _sweep(self, stripe: _Stripe, now: float) -> None:
        """Drop expired entries from a stripe. Caller holds ``stripe.lock``."""
        expired = [k for k, entry in stripe.entries.items() if entry.window_end <= now]
        for k in expired:
            del stripe.entries[k]
        # Next sweep once the live set doubles, so sweeps stay amortized O(1).
        stripe.sweep_at = max(self._sweep_threshold, 2 * len(stripe.entries))

    def try_increment(self, key: str, window_seconds: float) -> CounterSnapshot:
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        stripe = self._stripe_for(key)
        with stripe.lock:
            now = self._clock()
            entry = stripe.entries.get(key)
            if entry is None or entry.window_end <= now:
                if len(stripe.entries) >= stripe.sweep_at:
                    self._sweep(stripe, now)
                entry = _Entry(count=1, window_start=now, window_end=now + window_seconds)
                stripe.entries[key] = entry
            else:
                entry.count += 1
            return CounterSnapshot(count=entry.count, window_end=entry.window_end)

    def peek(self, key: str) -> CounterSnapshot | None:
        stripe = self._stripe_for(key)
        with stripe.lock:
            entry = stripe.entries.get(key)
            if entry is None or entry.window_end <= self._clock():
                return None
            return CounterSnapshot(count=entry.count, window_end=entry.window_end)

    def clear(self) -> None:
        """Forget every counter."""
        for stripe in self._stripes:
            with stripe.lock:
                stripe.entries.clear()
