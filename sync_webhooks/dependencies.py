"""FastAPI dependencies wiring the webhook pipeline together."""

from functools import lru_cache

import httpx

from sync_webhooks.config import settings
from sync_webhooks.repositories.webhook_log_repository import WebhookLogRepository
from sync_webhooks.services.audit_log import AuditLog
from sync_webhooks.services.signature_verifier import SignatureVerifier
from sync_webhooks.services.webhook_receiver import RoutingPolicy, WebhookReceiver
from sync_webhooks.services.workflow_dispatcher import WorkflowDispatcher


@lru_cache(maxsize=1)
def get_webhook_receiver() -> WebhookReceiver:
    """
    Build the receiver once per process (i.e. once per Lambda container).

    The GitHub client is shared so warm invocations reuse its connection
    pool. Tests replace the receiver through ``app.dependency_overrides``.

    Returns:
        WebhookReceiver with collaborators built from settings
    """
    return WebhookReceiver(
        verifier=SignatureVerifier(config=settings),
        audit_log=AuditLog(
            repository=WebhookLogRepository(config=settings),
            config=settings,
        ),
        # Timeouts are sent per request by the dispatcher
        dispatcher=WorkflowDispatcher(config=settings, client=httpx.AsyncClient()),
        policy=RoutingPolicy.from_settings(settings),
        config=settings,
    )
