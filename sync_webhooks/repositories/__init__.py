"""Repository layer for DynamoDB operations."""

from sync_webhooks.repositories.webhook_log_repository import WebhookLogRepository

__all__ = ["WebhookLogRepository"]
