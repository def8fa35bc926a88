from __future__ import annotations

from pydantic import BaseModel, Field


class LimiterStatus(BaseModel):
    """Configuration and current size of one limiter."""

    name: str = Field(..., description="Limiter name (standard, auth, sensitive)")
    window_ms: int = Field(..., ge=1, description="Window length in milliseconds")
    max_requests: int = Field(..., ge=1, description="Requests allowed per key per window")
    tracked_keys: int = Field(..., ge=0, description="Keys currently held in the registry")


class LimitsResponse(BaseModel):
    limiters: list[LimiterStatus]
