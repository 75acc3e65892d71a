"""Request logging middleware with per-request id."""

import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from sync_webhooks.logging.config import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def _generate_request_id() -> str:
    """
    Generate the id for this request.

    A fresh UUID is always used; an id sent by the caller is logged as
    ``upstream_request_id`` but never echoed back as ours.

    Returns:
        New UUID string
    """
    return str(uuid.uuid4())


def _log_request_start(request: Request, correlation_id: str) -> None:
    """
    Log the start of a request.

    Args:
        request: The incoming request
        correlation_id: The id generated for this request
    """
    logger.info(
        "Request started",
        extra={
            "correlation_id": correlation_id,
            "context": {
                "method": request.method,
                "path": request.url.path,
                "upstream_request_id": request.headers.get("x-request-id"),
                "client_host": request.client.host if request.client else None,
            },
        },
    )


def _log_request_error(
    request: Request, correlation_id: str, exc: Exception, elapsed_ms: float
) -> None:
    """
    Log a request that failed with an exception.

    Args:
        request: The incoming request
        correlation_id: The id generated for this request
        exc: The exception that was raised
        elapsed_ms: Time elapsed before the exception
    """
    logger.error(
        "Request failed with exception",
        exc_info=exc,
        extra={
            "correlation_id": correlation_id,
            "context": {
                "method": request.method,
                "path": request.url.path,
                "response_time_ms": round(elapsed_ms, 2),
            },
        },
    )


def _log_request_complete(
    request: Request, response: Response, correlation_id: str, elapsed_ms: float
) -> None:
    """
    Log the completion of a request.

    Args:
        request: The incoming request
        response: The response being returned
        correlation_id: The id generated for this request
        elapsed_ms: Time elapsed during request processing
    """
    logger.info(
        "Request completed",
        extra={
            "correlation_id": correlation_id,
            "context": {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": round(elapsed_ms, 2),
            },
        },
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests and responses.

    Features:
    - Generates a request id and stores it on ``request.state``
    - Logs request start with method, path and caller details
    - Logs completion with status code and response time
    - Adds the id to every response as ``X-Request-Id``
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process the request and add logging.

        Args:
            request: The incoming request
            call_next: The next middleware/handler in the chain

        Returns:
            The response from the handler
        """
        correlation_id = _generate_request_id()
        request.state.correlation_id = correlation_id

        start_time = time.time()
        _log_request_start(request, correlation_id)

        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed_ms = (time.time() - start_time) * 1000
            _log_request_error(request, correlation_id, exc, elapsed_ms)
            raise

        elapsed_ms = (time.time() - start_time) * 1000
        _log_request_complete(request, response, correlation_id, elapsed_ms)

        response.headers[REQUEST_ID_HEADER] = correlation_id

        return response
