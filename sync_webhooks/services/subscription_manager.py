"""
Webhook subscription management for Planning Center and Cloudflare Stream.

Used by the operator script to point each platform at the receiver after a
deployment and to remove those registrations again.

- Planning Center allows many subscriptions per application
  (``/webhooks/v2/subscriptions``, HTTP basic auth with an app id/secret).
- Cloudflare Stream allows one webhook URL per account
  (``/accounts/{id}/stream/webhook``, bearer token). Registering returns the
  signing secret the receiver needs as ``CLOUDFLARE_WEBHOOK_SECRET``.
"""

from typing import Any

import httpx

from sync_webhooks.config import Settings, settings as default_settings
from sync_webhooks.logging.config import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


class SubscriptionError(Exception):
    """Raised when a platform API rejects a subscription request."""


class SubscriptionManager:
    """Registers and removes receiver URLs with the webhook platforms."""

    def __init__(
        self,
        config: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            config: Settings holding platform credentials
            client: HTTP client (a private one is created if None)
        """
        self.config = config or default_settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "SubscriptionManager":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # Planning Center

    async def _pco_request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        if not self.config.pco_client_id or not self.config.pco_secret:
            raise SubscriptionError("PCO_CLIENT_ID and PCO_SECRET must be set")

        response = await self.client.request(
            method,
            f"{self.config.pco_api_url.rstrip('/')}{path}",
            json=body,
            auth=(self.config.pco_client_id, self.config.pco_secret),
            headers={"Accept": "application/json"},
        )
        if response.is_success:
            return response.json() if response.content else {}
        raise SubscriptionError(
            f"PCO API error: {response.status_code} - {response.text}"
        )

    async def list_pco_webhooks(self) -> list[dict[str, Any]]:
        """All Planning Center webhook subscriptions for the app."""
        response = await self._pco_request("GET", "/webhooks/v2/subscriptions")
        return response.get("data") or []

    async def create_pco_webhook(self, name: str, url: str) -> dict[str, Any]:
        """
        Create a Planning Center webhook subscription.

        Args:
            name: Event name to subscribe to (e.g. people.v2.events.person.updated)
            url: Receiver URL

        Returns:
            The created subscription, including its authenticity secret
        """
        payload = {
            "data": {
                "type": "Subscription",
                "attributes": {"name": name, "url": url, "active": True},
            }
        }
        response = await self._pco_request("POST", "/webhooks/v2/subscriptions", payload)
        return response.get("data") or {}

    async def delete_pco_webhook(self, subscription_id: str) -> None:
        await self._pco_request("DELETE", f"/webhooks/v2/subscriptions/{subscription_id}")

    async def delete_pco_webhooks_matching(self, url_fragment: str) -> int:
        """
        Delete every Planning Center subscription whose URL contains a fragment.

        Returns:
            Number of subscriptions deleted
        """
        webhooks = await self.list_pco_webhooks()
        matching = [
            webhook
            for webhook in webhooks
            if url_fragment in ((webhook.get("attributes") or {}).get("url") or "")
        ]
        for webhook in matching:
            logger.info(
                "Deleting PCO webhook",
                extra={
                    "context": {
                        "subscription_id": webhook.get("id"),
                        "name": (webhook.get("attributes") or {}).get("name"),
                    }
                },
            )
            await self.delete_pco_webhook(webhook["id"])
        return len(matching)

    # Cloudflare Stream

    def _cloudflare_account_id(self) -> str:
        if not self.config.cloudflare_account_id:
            raise SubscriptionError("CLOUDFLARE_ACCOUNT_ID not set")
        return self.config.cloudflare_account_id

    async def _cloudflare_request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        if not self.config.cloudflare_api_token:
            raise SubscriptionError("CLOUDFLARE_API_TOKEN not set")

        response = await self.client.request(
            method,
            f"{self.config.cloudflare_api_url.rstrip('/')}{path}",
            json=body,
            headers={"Authorization": f"Bearer {self.config.cloudflare_api_token}"},
        )
        try:
            result = response.json()
        except ValueError as exc:
            raise SubscriptionError(
                f"Cloudflare API error: {response.status_code} - {response.text}"
            ) from exc

        if not result.get("success"):
            messages = [e.get("message", "") for e in result.get("errors") or []]
            raise SubscriptionError(
                f"Cloudflare API error: {', '.join(m for m in messages if m) or 'Unknown error'}"
            )
        return result

    async def get_cloudflare_webhook(self) -> dict[str, Any] | None:
        """Current Cloudflare Stream webhook configuration, if any."""
        path = f"/accounts/{self._cloudflare_account_id()}/stream/webhook"
        return (await self._cloudflare_request("GET", path)).get("result")

    async def set_cloudflare_webhook(self, url: str) -> dict[str, Any]:
        """
        Point the account's Stream webhook at ``url``.

        Returns:
            Webhook configuration including the signing ``secret``
        """
        path = f"/accounts/{self._cloudflare_account_id()}/stream/webhook"
        result = await self._cloudflare_request("PUT", path, {"notificationUrl": url})
        return result.get("result") or {}

    async def delete_cloudflare_webhook(self) -> None:
        path = f"/accounts/{self._cloudflare_account_id()}/stream/webhook"
        await self._cloudflare_request("DELETE", path)
