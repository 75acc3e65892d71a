"""API routes receiving third-party webhooks."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from sync_webhooks.dependencies import get_webhook_receiver
from sync_webhooks.exceptions import InvalidSourceError
from sync_webhooks.models.webhook_event import WebhookSource
from sync_webhooks.schemas.webhook import (
    CallerContext,
    ErrorResponse,
    WebhookRequest,
    WebhookResponse,
)
from sync_webhooks.services.webhook_receiver import WebhookReceiver

router = APIRouter(prefix="/webhook", tags=["Webhooks"])

INVALID_SOURCE_MESSAGE = "Invalid webhook source. Use " + " or ".join(
    f"/webhook/{source.value}" for source in WebhookSource
)


@router.post(
    "/{source}",
    responses={
        200: {"model": WebhookResponse, "description": "Webhook accepted"},
        400: {"model": ErrorResponse, "description": "Unknown source or invalid body"},
        401: {"model": ErrorResponse, "description": "Signature rejected"},
        500: {
            "model": WebhookResponse,
            "description": "Accepted but the workflow could not be triggered",
        },
    },
)
async def receive_webhook(
    source: str,
    request: Request,
    receiver: WebhookReceiver = Depends(get_webhook_receiver),
) -> JSONResponse:
    """
    Receive a webhook from Planning Center or Cloudflare Stream.

    The body is read as raw bytes because signatures are computed over the
    exact bytes the sender transmitted.

    Args:
        source: Source tag from the path (case-insensitive)
        request: FastAPI request
        receiver: WebhookReceiver (injected)

    Returns:
        JSONResponse with the receiver's status code and body

    Raises:
        InvalidSourceError: If the source is not recognized (400)
    """
    tag = WebhookSource.parse(source)
    if tag is None:
        raise InvalidSourceError(INVALID_SOURCE_MESSAGE, source=source)

    body = await request.body()
    context = CallerContext.from_lambda_context(
        request.scope.get("aws.context"),
        request_id=getattr(request.state, "correlation_id", None),
        client_host=request.client.host if request.client else None,
    )
    webhook = WebhookRequest.build(tag, body, request.headers, context)

    outcome = await receiver.handle(webhook)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
