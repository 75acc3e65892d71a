"""Data models for the webhook receiver."""

from sync_webhooks.models.webhook_event import (
    InboundWebhookEvent,
    RecordHandle,
    WebhookSource,
    WebhookStatus,
)

__all__ = ["InboundWebhookEvent", "RecordHandle", "WebhookSource", "WebhookStatus"]
