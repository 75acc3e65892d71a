"""
Webhook authenticity checks for each supported source.

Planning Center and Cloudflare authenticate their webhooks differently:

- Cloudflare Stream signs ``"<time>.<body>"`` with HMAC-SHA256 and sends
  ``Webhook-Signature: time=<unix>,sig1=<hex>``.
- Planning Center webhooks registered for this receiver carry no shared
  secret we can enforce, so they are accepted on a structural check: a
  Planning Center marker header plus a body shaped like a Planning Center
  delivery (policy "structural"). Setting
  ``PCO_WEBHOOK_SECRET`` upgrades it to an HMAC check of the
  ``X-PCO-Webhooks-Authenticity`` header on top of the structural one.

All checks work on the raw body bytes, never on a re-serialized payload,
and never raise: callers get a VerificationResult with a reason to log.
"""

import hashlib
import hmac
import json
import time
from collections.abc import Callable, Mapping

from pydantic import BaseModel

from sync_webhooks.config import Settings, settings as default_settings
from sync_webhooks.logging.config import get_logger
from sync_webhooks.models.webhook_event import WebhookSource

logger = get_logger(__name__)

PCO_MARKER_HEADERS = (
    "x-pco-webhooks-authenticity-token",
    "x-pco-webhooks-authenticity",
)
PCO_USER_AGENT_MARKER = "Planning Center"
PCO_PAYLOAD_KEYS = ("data", "type", "id")
PCO_SIGNATURE_HEADER = "x-pco-webhooks-authenticity"

CLOUDFLARE_SIGNATURE_HEADER = "webhook-signature"


class VerificationResult(BaseModel):
    """Outcome of a signature check."""

    valid: bool
    reason: str
    # True when the failure is an operator problem (missing secret)
    misconfigured: bool = False

    def __bool__(self) -> bool:
        return self.valid


def secure_compare(a: str | bytes | None, b: str | bytes | None) -> bool:
    """
    Compare two values in time independent of where they first differ.

    Lengths are compared first; equal-length inputs are then XOR-folded
    over every byte with no early exit.

    Args:
        a: First value
        b: Second value

    Returns:
        True if both are present and byte-for-byte equal
    """
    if a is None or b is None:
        return False
    left = a.encode("utf-8") if isinstance(a, str) else bytes(a)
    right = b.encode("utf-8") if isinstance(b, str) else bytes(b)
    if len(left) != len(right):
        return False

    result = 0
    for x, y in zip(left, right):
        result |= x ^ y
    return result == 0


def parse_signature_header(header: str) -> dict[str, str]:
    """
    Split ``time=...,sig1=...`` into a dict.

    Pieces without ``=`` are ignored; values may themselves contain ``=``.
    """
    parts: dict[str, str] = {}
    for piece in header.split(","):
        key, sep, value = piece.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class SignatureVerifier:
    """
    Decides whether an inbound request really came from the named source.

    Each source has its own check method; unknown sources are rejected.
    """

    def __init__(
        self,
        config: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the verifier.

        Args:
            config: Settings holding secrets and the replay tolerance
            clock: Returns the current Unix time (injectable for tests)
        """
        self.config = config or default_settings
        self.clock = clock
        self._checks: dict[
            WebhookSource, Callable[[bytes, Mapping[str, str]], VerificationResult]
        ] = {
            WebhookSource.PCO: self._check_pco,
            WebhookSource.CLOUDFLARE: self._check_cloudflare,
        }

    def verify(
        self,
        source: WebhookSource | str,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> bool:
        """Return True if the request is authentic for ``source``."""
        return self.check(source, raw_body, headers).valid

    def check(
        self,
        source: WebhookSource | str,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> VerificationResult:
        """
        Verify a request and explain the decision.

        Args:
            source: Source tag the request was routed to
            raw_body: Body bytes exactly as received
            headers: Request headers with lowercase keys

        Returns:
            VerificationResult; never raises
        """
        tag = WebhookSource.parse(str(getattr(source, "value", source)))
        check = self._checks.get(tag) if tag else None
        if check is None:
            logger.warning(
                "Unknown webhook source",
                extra={"context": {"source": str(source)}},
            )
            return VerificationResult(valid=False, reason="unknown source")

        try:
            result = check(raw_body, headers)
        except Exception as exc:
            logger.error(
                "Signature verification crashed",
                exc_info=exc,
                extra={"context": {"source": tag.value}},
            )
            result = VerificationResult(valid=False, reason="verification error")

        log = logger.error if result.misconfigured else (
            logger.info if result.valid else logger.warning
        )
        log(
            "Webhook signature verified" if result.valid else "Webhook signature rejected",
            extra={"context": {"source": tag.value, "reason": result.reason}},
        )
        return result

    def _check_pco(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> VerificationResult:
        """Planning Center: marker header AND delivery-shaped JSON body."""
        has_marker = any(headers.get(name) for name in PCO_MARKER_HEADERS) or (
            PCO_USER_AGENT_MARKER in headers.get("user-agent", "")
        )

        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (ValueError, RecursionError):
            return VerificationResult(valid=False, reason="body is not valid JSON")

        has_structure = isinstance(payload, dict) and any(
            payload.get(key) is not None and payload.get(key) is not False
            for key in PCO_PAYLOAD_KEYS
        )

        if not has_marker:
            return VerificationResult(
                valid=False, reason="missing Planning Center marker header"
            )
        if not has_structure:
            return VerificationResult(
                valid=False, reason="body is not a Planning Center delivery"
            )

        secret = self.config.pco_webhook_secret
        if secret:
            signature = headers.get(PCO_SIGNATURE_HEADER)
            if not signature:
                return VerificationResult(
                    valid=False, reason=f"missing {PCO_SIGNATURE_HEADER} header"
                )
            expected = hmac_sha256_hex(secret, raw_body)
            if not secure_compare(expected, signature.strip().lower()):
                return VerificationResult(valid=False, reason="signature mismatch")
            return VerificationResult(valid=True, reason="hmac signature matched")

        return VerificationResult(valid=True, reason="header/structure check passed")

    def _check_cloudflare(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> VerificationResult:
        """Cloudflare Stream: HMAC-SHA256 over ``"<time>.<body>"``."""
        signature_header = headers.get(CLOUDFLARE_SIGNATURE_HEADER)
        if not signature_header:
            return VerificationResult(
                valid=False, reason="missing Webhook-Signature header"
            )

        secret = self.config.cloudflare_webhook_secret
        if not secret:
            return VerificationResult(
                valid=False,
                reason="CLOUDFLARE_WEBHOOK_SECRET not configured",
                misconfigured=True,
            )

        parts = parse_signature_header(signature_header)
        timestamp = parts.get("time")
        signature = parts.get("sig1")
        if not timestamp or not signature:
            return VerificationResult(
                valid=False, reason="invalid Webhook-Signature header format"
            )

        if self._timestamp_expired(timestamp):
            return VerificationResult(
                valid=False, reason="timestamp outside replay window"
            )

        expected = hmac_sha256_hex(secret, timestamp.encode("utf-8") + b"." + raw_body)
        if not secure_compare(expected, signature):
            return VerificationResult(valid=False, reason="signature mismatch")
        return VerificationResult(valid=True, reason="hmac signature matched")

    def _timestamp_expired(self, timestamp: str) -> bool:
        """True if unparseable or more than the tolerance away from now."""
        try:
            sent_at = int(timestamp)
        except ValueError:
            return True
        tolerance = self.config.signature_tolerance_seconds
        return abs(self.clock() - sent_at) > tolerance
