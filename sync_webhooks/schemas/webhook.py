"""Request and response schemas for the webhook endpoints."""

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from sync_webhooks.models.webhook_event import WebhookSource


class CallerContext(BaseModel):
    """
    Invocation context recorded with each audit record.

    Fields are optional; anything missing is simply not stored.
    """

    aws_request_id: str | None = None
    function_name: str | None = None
    function_version: str | None = None
    log_group_name: str | None = None
    log_stream_name: str | None = None
    request_id: str | None = Field(
        None, description="Id generated by this service for the request"
    )
    client_host: str | None = Field(
        None, description="Peer address as seen by the ASGI server"
    )

    @classmethod
    def from_lambda_context(
        cls,
        context: object | None,
        request_id: str | None = None,
        client_host: str | None = None,
    ) -> "CallerContext":
        """
        Build from an AWS Lambda context object (attributes read if present).

        Args:
            context: Lambda context passed through by the adapter, or None
            request_id: Correlation id assigned to this request
            client_host: Peer address of the connection

        Returns:
            CallerContext populated from whatever the context exposes
        """
        return cls(
            aws_request_id=getattr(context, "aws_request_id", None),
            function_name=getattr(context, "function_name", None),
            function_version=getattr(context, "function_version", None),
            log_group_name=getattr(context, "log_group_name", None),
            log_stream_name=getattr(context, "log_stream_name", None),
            request_id=request_id,
            client_host=client_host,
        )


class WebhookRequest(BaseModel):
    """
    Inbound webhook, normalized once at the HTTP boundary.

    Header keys are lowercased; the body is kept as the exact bytes the
    sender transmitted because signatures are computed over them.
    """

    model_config = ConfigDict(frozen=True)

    source: WebhookSource
    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)
    context: CallerContext = Field(default_factory=CallerContext)

    @classmethod
    def build(
        cls,
        source: WebhookSource,
        body: bytes | str | None,
        headers: Mapping[str, str] | None,
        context: CallerContext | None = None,
    ) -> "WebhookRequest":
        """
        Normalize raw transport values into a WebhookRequest.

        Args:
            source: Resolved source tag
            body: Raw body (str bodies are UTF-8 encoded)
            headers: Request headers in any case
            context: Invocation context

        Returns:
            WebhookRequest with lowercase header keys
        """
        if body is None:
            raw = b""
        elif isinstance(body, str):
            raw = body.encode("utf-8")
        else:
            raw = bytes(body)
        return cls(
            source=source,
            body=raw,
            headers=normalize_headers(headers or {}),
            context=context or CallerContext(),
        )


def normalize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Lowercase header keys for consistent lookups."""
    return {str(key).lower(): str(value) for key, value in headers.items()}


class WebhookResponse(BaseModel):
    """Body returned to the webhook sender once the event was accepted."""

    received: bool = Field(default=True)
    source: str = Field(..., description="Source tag")
    workflow_triggered: bool = Field(default=False)
    log_id: str | None = Field(None, description="Opaque audit record id")
    reason: str | None = None
    error: str | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "received": True,
                "source": "cloudflare",
                "workflow_triggered": True,
                "log_id": "019a3c4e5f60-9f86d081884c7d65",
            }
        }
    )


class ErrorResponse(BaseModel):
    """Body for rejected requests."""

    error: str


class HealthResponse(BaseModel):
    """Body of GET /health."""

    status: str = "healthy"
    stage: str
    timestamp: str


class WebhookOutcome(BaseModel):
    """HTTP status and JSON body the receiver decided on."""

    status_code: int
    body: dict[str, Any]
