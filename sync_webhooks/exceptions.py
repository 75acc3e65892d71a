"""Custom exception classes for the webhook receiver."""

from typing import Any


class WebhookAPIError(Exception):
    """Base exception for the webhook receiver's HTTP surface."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message (returned to the sender)
            status_code: HTTP status code
            error_code: Machine-readable error code (logged only)
            details: Additional error details (logged only)
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class InvalidSourceError(WebhookAPIError):
    """Raised when the path names a source we do not accept (400)."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
    ) -> None:
        """
        Initialize InvalidSourceError.

        Args:
            message: Error message listing the accepted routes
            source: The rejected source value
        """
        details = {"source": source} if source else None
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_SOURCE",
            details=details,
        )


class InvalidBodyError(WebhookAPIError):
    """Raised when the request body cannot be JSON at all (400)."""

    def __init__(
        self,
        message: str = "Invalid JSON body",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_BODY",
            details=details,
        )
