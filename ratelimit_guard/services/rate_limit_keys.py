"""Storage key construction for rate limit counters."""

from __future__ import annotations

from ratelimit_guard.services.identity import Identity


def _field(value: str) -> str:
    return f"{len(value)}:{value}"


def build_key(prefix: str, identity: Identity, operation: str) -> str:
    """Derive the counter key for one (identity, operation) pair.

    Every component is length-prefixed, so components may contain any
    character (including the separators) without two different inputs
    producing the same key. The result depends on the inputs only, which
    keeps it identical across calls, processes and restarts.

    Examples:
        >>> build_key("RL", Identity("ip", "10.0.0.1"), "login")
        '2:RL|2:ip|8:10.0.0.1|5:login'
    """
    return "|".join(
        (
            _field(prefix),
            _field(identity.tag),
            _field(identity.value),
            _field(operation),
        )
    )
