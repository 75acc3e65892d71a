"""Global exception handlers for consistent error responses."""

import uuid

from fastapi import Request, status
from fastapi.responses import JSONResponse

from sync_webhooks.exceptions import WebhookAPIError
from sync_webhooks.logging.config import get_logger
from sync_webhooks.middleware.logging import REQUEST_ID_HEADER

logger = get_logger(__name__)


def create_error_response(
    message: str,
    status_code: int,
    correlation_id: str | None = None,
) -> JSONResponse:
    """
    Create the error body webhook senders see.

    Senders only get a short message; codes and details stay in our logs.

    Args:
        message: Human-readable error message
        status_code: HTTP status code
        correlation_id: Request id to return in X-Request-Id

    Returns:
        JSONResponse with ``{"error": message}``
    """
    return JSONResponse(
        status_code=status_code,
        content={"error": message},
        headers={REQUEST_ID_HEADER: correlation_id or str(uuid.uuid4())},
    )


async def webhook_api_exception_handler(
    request: Request, exc: WebhookAPIError
) -> JSONResponse:
    """
    Handle WebhookAPIError raised by routes.

    Args:
        request: FastAPI request
        exc: WebhookAPIError instance

    Returns:
        JSONResponse with the exception's status and message
    """
    correlation_id = getattr(request.state, "correlation_id", None)

    logger.warning(
        exc.message,
        extra={
            "correlation_id": correlation_id,
            "context": {
                "error_code": exc.error_code,
                "status_code": exc.status_code,
                "path": request.url.path,
                **exc.details,
            },
        },
    )

    return create_error_response(
        message=exc.message,
        status_code=exc.status_code,
        correlation_id=correlation_id,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Logs the full traceback and returns a generic 500 so internals never
    reach the caller.

    Args:
        request: FastAPI request
        exc: Any unhandled exception

    Returns:
        JSONResponse with a generic error message
    """
    correlation_id = getattr(request.state, "correlation_id", None)

    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        exc_info=exc,
        extra={
            "correlation_id": correlation_id,
            "context": {
                "exception_type": type(exc).__name__,
                "method": request.method,
                "path": request.url.path,
            },
        },
    )

    return create_error_response(
        message="Internal server error",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        correlation_id=correlation_id,
    )
