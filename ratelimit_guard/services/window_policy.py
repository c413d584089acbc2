"""Fixed-window limit configuration and admission rule.

All attempts between a window's start and end share one counter. The window
resets on the first increment the store sees after it ends, so a caller can
spend ``max_attempts`` at the end of one window and ``max_attempts`` again
right after the reset. That boundary burst is accepted behavior.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from ratelimit_guard.core.errors import ConfigurationAppError
from ratelimit_guard.services.identity import IdentityMode


class Verdict(str, Enum):
    ADMIT = "admit"
    REJECT = "reject"


def decide(new_count: int, max_attempts: int) -> Verdict:
    """Admit while the post-increment count stays within the limit."""
    return Verdict.ADMIT if new_count <= max_attempts else Verdict.REJECT


@dataclass(frozen=True)
class RateLimitConfig:
    """Limit applied to one protected operation.

    The window is ``window_hours`` plus ``window_minutes``. Invalid values
    raise :class:`ConfigurationAppError` here, when the route is declared,
    rather than on the first request.

    Attributes:
        max_attempts: Attempts admitted per window.
        window_hours: Hours component of the window.
        window_minutes: Minutes component of the window.
        key_prefix: Namespace separating limiters that share a store.
        identity_mode: How callers are told apart.
    """

    max_attempts: int = 1
    window_hours: int = 0
    window_minutes: int = 0
    key_prefix: str = "RL"
    identity_mode: IdentityMode = IdentityMode.BY_ORIGIN

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationAppError(
                code="invalid_max_attempts",
                message="max_attempts must be >= 1",
                details={"field": "max_attempts", "actual_value": self.max_attempts},
            )
        if self.window_hours < 0 or self.window_minutes < 0:
            raise ConfigurationAppError(
                code="invalid_window",
                message="window_hours and window_minutes must not be negative",
                details={
                    "field": "window",
                    "actual_value": [self.window_hours, self.window_minutes],
                },
            )
        if self.window_duration <= timedelta(0):
            raise ConfigurationAppError(
                code="invalid_window",
                message="rate limit window must be longer than zero",
                details={
                    "field": "window",
                    "actual_value": [self.window_hours, self.window_minutes],
                    "hint": "Set window_hours and/or window_minutes",
                },
            )
        if not self.key_prefix:
            raise ConfigurationAppError(
                code="invalid_key_prefix",
                message="key_prefix must be a non-empty string",
                details={"field": "key_prefix"},
            )
        # Accept plain strings such as "by_subject" from settings files.
        try:
            mode = IdentityMode(self.identity_mode)
        except ValueError as exc:
            raise ConfigurationAppError(
                code="invalid_identity_mode",
                message=f"Unknown identity mode: '{self.identity_mode}'",
                details={"field": "identity_mode", "actual_value": self.identity_mode},
            ) from exc
        object.__setattr__(self, "identity_mode", mode)

    @property
    def window_duration(self) -> timedelta:
        return timedelta(hours=self.window_hours, minutes=self.window_minutes)

    @property
    def window_seconds(self) -> float:
        return self.window_duration.total_seconds()

    def describe(self) -> str:
        """Human-readable limit used in rejection messages."""
        minutes = int(self.window_seconds // 60)
        return (
            f"You are allowed to make {self.max_attempts} request(s) every "
            f"{minutes} minute(s). Please try again later."
        )
