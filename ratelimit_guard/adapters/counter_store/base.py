"""Counter store interface.

The decision engine depends on this abstraction, never on a concrete storage
technology, so the shared store can be swapped without touching the guard.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterSnapshot:
    """State of one counter right after an increment (or a diagnostic read).

    Attributes:
        count: Attempts recorded in the current window (>= 1).
        window_end: UNIX epoch seconds after which the window resets.
    """

    count: int
    window_end: float


class AbstractCounterStore(ABC):
    """Interface for shared fixed-window counters."""

    @abstractmethod
    def try_increment(self, key: str, window_seconds: float) -> CounterSnapshot:
        """Atomically record one attempt for ``key``.

        If no live entry exists (absent or expired) a new one is created with
        ``count == 1`` and ``window_end == now + window_seconds``. Otherwise
        the live entry is incremented and its ``window_end`` is returned
        unchanged. Concurrent callers for the same key must observe strictly
        sequential counts.

        Args:
            key: Storage key produced by ``build_key``.
            window_seconds: Window length applied when a new entry is created.

        Returns:
            CounterSnapshot with the post-increment count.

        Raises:
            StoreUnavailableError: If the backing store cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    def peek(self, key: str) -> CounterSnapshot | None:
        """Return the live entry for ``key`` without mutating it.

        Returns:
            CounterSnapshot, or None when the key is absent or expired.

        Raises:
            StoreUnavailableError: If the backing store cannot be reached.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release connections held by the store (no-op by default)."""
