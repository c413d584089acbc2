"""Application-level exception types.

This module defines domain errors used across the guard, adapters and HTTP
layer, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    hint: str
    field: str
    actual_value: Any
    http_status: int
    retry_after: int
    identity_mode: str
    backend: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
        headers: Optional response headers (``Retry-After``, rate limit headers).
    """

    code: str
    message: str
    details: ErrorDetails | None = None
    headers: dict[str, str] | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised when a limiter or store is configured with invalid values.

    Always raised at construction time, never per request.
    """


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class IdentityUnavailableError(AppError):
    """Raised when the caller identity cannot be determined for the mode."""


class StoreUnavailableError(AppError):
    """Raised when the shared counter store cannot be reached."""


class RateLimitExceededError(AppError):
    """Raised when a caller has used up its attempts for the current window."""
