"""Factory pattern for creating counter store instances."""

from ratelimit_guard.adapters.counter_store.base import AbstractCounterStore
from ratelimit_guard.adapters.counter_store.in_memory import InMemoryCounterStore
from ratelimit_guard.adapters.counter_store.redis_store import RedisCounterStore
from ratelimit_guard.core.config import StoreSettings, settings
from ratelimit_guard.core.errors import ConfigurationAppError


def create_counter_store(store_settings: StoreSettings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store selected by configuration.

    Called once at application startup; the resulting store is shared by
    every guard in the process.

    Args:
        store_settings: Optional store settings; defaults to global settings.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ConfigurationAppError: If backend-specific requirements are not met.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryCounterStore()

    if backend == "redis":
        if not cfg.redis_url:
            raise ConfigurationAppError(
                code="store_missing_redis_url",
                message="Redis counter store requires STORE_REDIS_URL",
                details={"backend": "redis", "field": "redis_url"},
            )
        return RedisCounterStore.from_url(cfg.redis_url, timeout_seconds=cfg.timeout_seconds)

    raise ConfigurationAppError(
        code="store_unknown_backend",
        message=f"Unknown counter store backend: '{backend}'. Supported backends: memory, redis",
        details={"backend": backend},
    )
