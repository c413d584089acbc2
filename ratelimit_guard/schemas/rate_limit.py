"""Pydantic schemas for rate limited account endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AttemptAcceptedResponse(BaseModel):
    """Response returned when a protected operation was admitted."""

    status: str = Field("accepted", description="Always 'accepted'.")
    operation: str = Field(..., description="Protected operation that was admitted.")


class RateLimitStatusResponse(BaseModel):
    """Caller's current counter for a protected operation."""

    operation: str = Field(..., description="Protected operation the counter belongs to.")
    limit: int = Field(..., description="Attempts allowed per window.")
    window_seconds: float = Field(..., description="Window length in seconds.")
    count: int = Field(
        0, description="Attempts recorded in the current window (0 when no window is open)."
    )
    remaining: int = Field(..., description="Attempts left in the current window.")
    reset_at: int | None = Field(
        None,
        description="UNIX epoch seconds when the current window ends (null when none is open).",
    )
