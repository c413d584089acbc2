"""Counter store adapters.

The decision engine depends only on :class:`AbstractCounterStore`. An
in-process store serves single-worker deployments and tests; the Redis store
shares counters between every process pointed at the same server.
"""

from ratelimit_guard.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from ratelimit_guard.adapters.counter_store.in_memory import InMemoryCounterStore
from ratelimit_guard.adapters.counter_store.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "CounterSnapshot",
    "InMemoryCounterStore",
    "RedisCounterStore",
]
