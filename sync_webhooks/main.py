"""FastAPI application entry point."""

from fastapi import FastAPI

from sync_webhooks.config import settings
from sync_webhooks.exceptions import WebhookAPIError
from sync_webhooks.handlers.exception_handler import (
    generic_exception_handler,
    webhook_api_exception_handler,
)
from sync_webhooks.logging.config import configure_logging
from sync_webhooks.middleware.logging import LoggingMiddleware
from sync_webhooks.routes import health, webhooks

# Configure logging before creating the app
configure_logging()

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="""
## Sync Webhooks

Receives webhooks from Planning Center and Cloudflare Stream, records every
delivery in a DynamoDB audit table, verifies it, and triggers the site's
content-sync GitHub Actions workflow.

### Endpoints

- `POST /webhook/pco` - Planning Center webhooks (logged only by default)
- `POST /webhook/cloudflare` - Cloudflare Stream webhooks (trigger the sync)
- `GET /health` - Health check

### Responses

- **200**: accepted (logged, or workflow triggered)
- **400**: unknown source or undecodable body
- **401**: signature rejected
- **500**: accepted but the workflow could not be triggered, or internal error

Every response carries a freshly generated `X-Request-Id` header.
""",
    docs_url="/docs",
    redoc_url=None,
)

app.add_middleware(LoggingMiddleware)

app.add_exception_handler(WebhookAPIError, webhook_api_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(webhooks.router)
app.include_router(health.router)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """
    Root endpoint with service information.

    Returns:
        Dict with service name, version and health link
    """
    return {
        "message": f"Welcome to {settings.api_title}",
        "version": settings.api_version,
        "health": "/health",
    }
