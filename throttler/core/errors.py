"""Application-level exception types.

This module defines domain errors used across the HTTP layer, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, TypedDict

if TYPE_CHECKING:
    from fastapi import Request, Response

    from throttler.core.rate_limit import Decision


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    limiter: str
    limit: int
    retry_after: int


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


@dataclass
class RateLimitExceededError(AppError):
    """Raised by a throttled route when its limiter rejects the request.

    Attributes:
        decision: The rejecting decision, including the headers to send.
        on_reject: Builds the rejection response for the limiter that fired.
    """

    decision: "Decision | None" = None
    on_reject: "Callable[[Request, Decision], Response] | None" = field(default=None, repr=False)
