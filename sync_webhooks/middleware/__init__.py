"""Middleware components for request processing."""

from sync_webhooks.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
