from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from throttler.core.rate_limit import RequestThrottler, throttle
from throttler.schemas.limits import LimiterStatus, LimitsResponse

router = APIRouter(tags=["Limits"])


@router.get(
    "/limits",
    response_model=LimitsResponse,
    dependencies=[Depends(throttle("standard"))],
)
async def list_limits(request: Request) -> LimitsResponse:
    """Describe every configured limiter.

    Reports the window, the per-key limit and how many keys each limiter is
    currently tracking. Throttled by the ``standard`` limiter.
    """
    limiters: dict[str, RequestThrottler] = request.app.state.limiters
    return LimitsResponse(
        limiters=[
            LimiterStatus(
                name=limiter.name,
                window_ms=limiter.window_ms,
                max_requests=limiter.max_requests,
                tracked_keys=len(limiter.registry),
            )
            for limiter in limiters.values()
        ]
    )
