"""Health check endpoint."""

from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from sync_webhooks.config import settings
from sync_webhooks.schemas.webhook import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def get_health() -> JSONResponse:
    """
    Health check endpoint for monitoring and uptime checks.

    Returns:
        JSONResponse with status, deployment stage and current UTC time
    """
    body = HealthResponse(
        status="healthy",
        stage=settings.stage,
        timestamp=datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
    )
    return JSONResponse(status_code=200, content=body.model_dump())
