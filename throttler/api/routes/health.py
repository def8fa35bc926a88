from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check for load balancers.

    Deliberately outside every limiter so health checks never consume quota.
    """

    return {"status": "ok"}
