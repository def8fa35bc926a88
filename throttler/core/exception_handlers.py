"""Global exception handlers for consistent error responses.

Design:
- RateLimitExceededError → the rejecting limiter's own response (429)
- Other AppError subclasses → JSON error envelope (400)
- Unexpected Exception → generic 500 (safety net)
- Error envelopes include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from throttler.core.errors import AppError, RateLimitExceededError
from throttler.core.logging import get_request_id
from throttler.core.rate_limit import default_reject_response

logger = logging.getLogger(__name__)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> Response:
    """Render a rejected request with the limiter's ``on_reject`` callable.

    The decision headers (X-RateLimit-* and Retry-After) are always copied
    onto the response, whatever the callable returned.
    """
    decision = exc.decision
    if decision is None:
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": exc.message},
        )

    on_reject = exc.on_reject or default_reject_response
    response = on_reject(request, decision)
    for name, value in decision.headers.items():
        response.headers[name] = value
    return response


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with a consistent JSON format.

    Response body:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context
    """
    status_code = 400

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure and returns a generic message without implementation
    details.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
