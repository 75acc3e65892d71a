"""
Send test webhooks to a running receiver.

Builds requests the way each platform does:
- Cloudflare Stream: signed ``Webhook-Signature: time=...,sig1=...`` header
- Planning Center: authenticity headers and a JSON:API style body

Requirements:
    pip install httpx python-dotenv

Usage:
    python examples/send_test_webhook.py cloudflare
    python examples/send_test_webhook.py pco --base-url https://webhooks.api.dev.rol.church
"""

import argparse
import asyncio
import hashlib
import hmac
import json
import os
import sys
import time
import uuid
from typing import Any

import httpx
from dotenv import load_dotenv


def sign_cloudflare(secret: str, body: bytes, timestamp: int | None = None) -> str:
    """
    Build a Cloudflare Stream ``Webhook-Signature`` header value.

    Args:
        secret: Webhook signing secret
        body: Raw request body
        timestamp: Unix seconds (now if None)

    Returns:
        Header value in the form ``time=<t>,sig1=<hex>``
    """
    timestamp = int(time.time()) if timestamp is None else timestamp
    message = f"{timestamp}.".encode() + body
    signature = hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return f"time={timestamp},sig1={signature}"


def cloudflare_payload() -> dict[str, Any]:
    return {
        "uid": uuid.uuid4().hex,
        "readyToStream": True,
        "status": {"state": "ready"},
        "meta": {"name": "Sunday Service"},
        "event": {"type": "video.ready"},
    }


def pco_payload() -> dict[str, Any]:
    return {
        "data": [
            {
                "id": str(uuid.uuid4()),
                "type": "EventDelivery",
                "attributes": {
                    "name": "people.v2.events.person.updated",
                    "attempt": 1,
                    "payload": json.dumps({"data": {"type": "Person", "id": "1"}}),
                },
            }
        ]
    }


async def send_webhook(
    client: httpx.AsyncClient,
    source: str,
    secret: str | None = None,
) -> httpx.Response:
    """
    Send one test webhook for ``source``.

    Args:
        client: HTTP client with the receiver base URL
        source: ``pco`` or ``cloudflare``
        secret: Signing secret (Cloudflare always needs one)

    Returns:
        Receiver response
    """
    headers = {"Content-Type": "application/json"}

    if source == "cloudflare":
        body = json.dumps(cloudflare_payload()).encode()
        headers["Webhook-Signature"] = sign_cloudflare(secret or "", body)
    else:
        body = json.dumps(pco_payload()).encode()
        headers["User-Agent"] = "Planning Center Webhooks"
        headers["X-PCO-Webhooks-Event"] = "people.v2.events.person.updated"
        if secret:
            headers["X-PCO-Webhooks-Authenticity"] = hmac.new(
                secret.encode(), body, hashlib.sha256
            ).hexdigest()
        else:
            headers["X-PCO-Webhooks-Authenticity-Token"] = uuid.uuid4().hex

    return await client.post(f"/webhook/{source}", content=body, headers=headers)


async def main() -> None:
    """Send a test webhook and print the receiver's answer."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Send a test webhook")
    parser.add_argument("source", choices=["pco", "cloudflare"])
    parser.add_argument(
        "--base-url",
        default=os.getenv("WEBHOOK_BASE_URL", "http://localhost:8000"),
    )
    args = parser.parse_args()

    secret_var = "CLOUDFLARE_WEBHOOK_SECRET" if args.source == "cloudflare" else "PCO_WEBHOOK_SECRET"
    secret = os.getenv(secret_var)
    if args.source == "cloudflare" and not secret:
        print(f"Error: {secret_var} not set in environment", file=sys.stderr)
        print(f"Set it in .env file or export {secret_var}=your_secret")
        sys.exit(1)

    async with httpx.AsyncClient(base_url=args.base_url.rstrip("/"), timeout=30.0) as client:
        response = await send_webhook(client, args.source, secret)

    print(f"Status: {response.status_code}")
    print(f"Request ID: {response.headers.get('x-request-id')}")
    print(json.dumps(response.json(), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
