"""Request throttling for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Flow per request:
- Build a ClientRequest (client address plus optional credential identifier).
- Map it to a key with the limiter's key extractor.
- Count it in the limiter's fixed window and attach X-RateLimit-* headers.
- On rejection, short-circuit with the limiter's ``on_reject`` response.

Three presets exist: ``standard`` for general traffic, ``auth`` keyed by
address and submitted credential identifier, and ``sensitive`` with a long
window for high-value actions.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Mapping

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from throttler.adapters.rate_limit.base import RateLimitResult
from throttler.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from throttler.adapters.rate_limit.registry import ThrottleRegistry
from throttler.core.config import ThrottleSettings, settings
from throttler.core.errors import RateLimitExceededError

logger = logging.getLogger(__name__)

FALLBACK_KEY = "unknown"
TOO_MANY_REQUESTS_MESSAGE = "Too many requests, please try again later."
CREDENTIAL_FIELDS = ("email", "walletAddress")


@dataclass(frozen=True)
class ClientRequest:
    """Inbound request as seen by key extractors.

    Attributes:
        client_host: Caller network address, when one could be resolved.
        identifier: Submitted credential identifier (e.g., email or wallet).
    """

    client_host: str | None = None
    identifier: str | None = None


KeyExtractor = Callable[[ClientRequest], str | None]


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating one request.

    Attributes:
        allowed: True to admit the request, False to reject it.
        key: Key the request was counted under.
        result: Counter state after this request.
        headers: Response headers to attach whatever the outcome.
    """

    allowed: bool
    key: str
    result: RateLimitResult
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        return status.HTTP_200_OK if self.allowed else status.HTTP_429_TOO_MANY_REQUESTS


RejectHandler = Callable[[Request, Decision], Response]


def client_address_key(request: ClientRequest) -> str | None:
    """Default key: the caller network address."""
    return request.client_host


def address_identifier_key(request: ClientRequest) -> str:
    """Composite key of address and credential identifier.

    Slows down both many accounts tried from one address and one account
    tried from many addresses.
    """
    return f"{request.client_host or ''}-{request.identifier or ''}"


def default_reject_response(request: Request, decision: Decision) -> Response:
    """Fixed 429 JSON response used when a limiter has no custom handler."""
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"success": False, "error": TOO_MANY_REQUESTS_MESSAGE},
        headers=decision.headers,
    )


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Headers describing the quota; Retry-After only for rejections."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(max(0, result.remaining)),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds or 0)
    return headers


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing caller identity."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _resolve_client_host(request: Request, trust_forwarded_for: bool) -> str | None:
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def _pick_identifier(payload: object, fields: Iterable[str]) -> str | None:
    if not isinstance(payload, Mapping):
        return None
    for name in fields:
        value = payload.get(name)
        if value:
            return str(value)
    return None


async def build_client_request(
    request: Request,
    *,
    identifier_fields: Iterable[str] = (),
    trust_forwarded_for: bool = False,
) -> ClientRequest:
    """Extract the rate limiting view of an HTTP request.

    The body is only read when ``identifier_fields`` is non-empty and the
    request declares a JSON content type. A body that is not valid JSON
    yields no identifier.

    Args:
        request: Incoming Starlette/FastAPI request.
        identifier_fields: JSON body fields to read the identifier from, in order.
        trust_forwarded_for: Prefer the first X-Forwarded-For address.

    Returns:
        ClientRequest for key extraction.
    """
    fields = tuple(identifier_fields)
    identifier = None
    if fields and "json" in request.headers.get("content-type", ""):
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        identifier = _pick_identifier(payload, fields)

    return ClientRequest(
        client_host=_resolve_client_host(request, trust_forwarded_for),
        identifier=identifier,
    )


class RequestThrottler:
    """Fixed-window request throttler usable as a FastAPI dependency.

    Each instance owns its registry and, optionally, a background sweeper,
    so several independently configured throttlers can coexist.

    Usage:
        limiter = RequestThrottler(window_ms=60_000, max_requests=120)

        @router.get("/items", dependencies=[Depends(limiter)])
        async def list_items(): ...

    On admit the quota headers are set on the dependency response, which
    FastAPI merges into the route result. A route that returns its own
    Response object drops them; rejections always carry them.
    """

    def __init__(
        self,
        *,
        window_ms: int,
        max_requests: int,
        name: str = "standard",
        key_extractor: KeyExtractor = client_address_key,
        on_reject: RejectHandler = default_reject_response,
        identifier_fields: Iterable[str] = (),
        trust_forwarded_for: bool = False,
        registry: ThrottleRegistry | None = None,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float | None = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the throttler.

        A disabled throttler admits everything without counting or adding headers.

        Raises:
            ValueError: If window_ms or max_requests is not positive.
        """
        self.name = name
        self.key_extractor = key_extractor
        self.on_reject = on_reject
        self.identifier_fields = tuple(identifier_fields)
        self.trust_forwarded_for = trust_forwarded_for
        self.enabled = enabled
        self._limiter = InMemoryFixedWindowRateLimiter(
            limit=max_requests,
            window_ms=window_ms,
            clock=clock,
            registry=registry,
            sweep_interval_seconds=sweep_interval_seconds,
            name=name,
        )

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"RequestThrottler(name={self.name!r}, window_ms={self.window_ms}, "
            f"max_requests={self.max_requests})"
        )

    @property
    def window_ms(self) -> int:
        return self._limiter.window_ms

    @property
    def max_requests(self) -> int:
        return self._limiter.limit

    @property
    def registry(self) -> ThrottleRegistry:
        return self._limiter.registry

    @property
    def limiter(self) -> InMemoryFixedWindowRateLimiter:
        return self._limiter

    def evaluate(self, request: ClientRequest) -> Decision:
        """Count ``request`` and decide whether it is admitted.

        Callers without a resolvable key share the ``unknown`` quota.
        """
        key = self.key_extractor(request) or FALLBACK_KEY
        result = self._limiter.consume(key)
        decision = Decision(
            allowed=result.allowed,
            key=key,
            result=result,
            headers=build_rate_limit_headers(result),
        )

        log_extra = {
            "limiter": self.name,
            "key_hash": _hash_limiter_key(key),
            "limit": result.limit,
            "remaining": result.remaining,
            "window_ms": self.window_ms,
        }
        if decision.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_extra, "retry_after_s": result.retry_after_seconds},
            )
        return decision

    def sweep(self) -> int:
        """Run one sweep cycle now."""
        return self._limiter.sweep()

    def close(self) -> None:
        """Stop the background sweeper."""
        self._limiter.close()

    async def __call__(self, request: Request, response: Response) -> None:
        """FastAPI dependency enforcing this throttler.

        Raises:
            RateLimitExceededError: When the request is rejected.
        """
        if not self.enabled:
            return

        client_request = await build_client_request(
            request,
            identifier_fields=self.identifier_fields,
            trust_forwarded_for=self.trust_forwarded_for,
        )
        decision = self.evaluate(client_request)

        if decision.allowed:
            for name, value in decision.headers.items():
                response.headers[name] = value
            return

        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message=TOO_MANY_REQUESTS_MESSAGE,
            details={
                "limiter": self.name,
                "limit": decision.result.limit,
                "retry_after": decision.result.retry_after_seconds or 0,
            },
            decision=decision,
            on_reject=self.on_reject,
        )


def build_standard_limiter(cfg: ThrottleSettings, **overrides) -> RequestThrottler:
    """General traffic: loose limit keyed by client address."""
    options = {
        "name": "standard",
        "window_ms": cfg.standard_window_ms,
        "max_requests": cfg.standard_max_requests,
        "trust_forwarded_for": cfg.trust_forwarded_for,
        "sweep_interval_seconds": cfg.sweep_interval_seconds,
        "enabled": cfg.enabled,
    }
    options.update(overrides)
    return RequestThrottler(**options)


def build_auth_limiter(cfg: ThrottleSettings, **overrides) -> RequestThrottler:
    """Authentication routes: tighter limit keyed by address and credential."""
    options = {
        "name": "auth",
        "window_ms": cfg.auth_window_ms,
        "max_requests": cfg.auth_max_requests,
        "key_extractor": address_identifier_key,
        "identifier_fields": CREDENTIAL_FIELDS,
        "trust_forwarded_for": cfg.trust_forwarded_for,
        "sweep_interval_seconds": cfg.sweep_interval_seconds,
        "enabled": cfg.enabled,
    }
    options.update(overrides)
    return RequestThrottler(**options)


def build_sensitive_limiter(cfg: ThrottleSettings, **overrides) -> RequestThrottler:
    """High-value operations: very tight limit over a long window."""
    options = {
        "name": "sensitive",
        "window_ms": cfg.sensitive_window_ms,
        "max_requests": cfg.sensitive_max_requests,
        "trust_forwarded_for": cfg.trust_forwarded_for,
        "sweep_interval_seconds": cfg.sweep_interval_seconds,
        "enabled": cfg.enabled,
    }
    options.update(overrides)
    return RequestThrottler(**options)


def create_limiters(cfg: ThrottleSettings | None = None, **overrides) -> dict[str, RequestThrottler]:
    """Build the three named limiters from settings.

    Args:
        cfg: Throttle settings; defaults to global settings if omitted.
        **overrides: Applied to every limiter (e.g., ``clock`` in tests).

    Returns:
        Mapping of limiter name to throttler.
    """
    cfg = cfg or settings.throttle
    limiters = [
        build_standard_limiter(cfg, **overrides),
        build_auth_limiter(cfg, **overrides),
        build_sensitive_limiter(cfg, **overrides),
    ]
    return {limiter.name: limiter for limiter in limiters}


def throttle(name: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Dependency enforcing the named limiter registered on ``app.state``.

    Usage:
        @router.post("/login", dependencies=[Depends(throttle("auth"))])
    """

    async def _enforce(request: Request, response: Response) -> None:
        limiters: dict[str, RequestThrottler] = request.app.state.limiters
        limiter = limiters.get(name)
        if limiter is None:
            raise LookupError(f"no limiter named {name!r} is registered on app.state.limiters")
        await limiter(request, response)

    _enforce.__name__ = f"throttle_{name}"
    return _enforce
