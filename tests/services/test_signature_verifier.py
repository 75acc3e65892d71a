"""Tests for SignatureVerifier."""

import hashlib
import hmac
import json

import pytest

from sync_webhooks.config import Settings
from sync_webhooks.models.webhook_event import WebhookSource
from sync_webhooks.services import signature_verifier
from sync_webhooks.services.signature_verifier import (
    SignatureVerifier,
    VerificationResult,
    parse_signature_header,
    secure_compare,
)

NOW = 1_700_000_000
CLOUDFLARE_SECRET = "cf-signing-secret"
PCO_SECRET = "pco-authenticity-secret"


def cloudflare_header(body: bytes, timestamp: int = NOW, secret: str = CLOUDFLARE_SECRET) -> str:
    """Build a Webhook-Signature header the way Cloudflare Stream does."""
    message = f"{timestamp}.".encode() + body
    signature = hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return f"time={timestamp},sig1={signature}"


@pytest.fixture
def config() -> Settings:
    """Settings with a Cloudflare secret and no PCO secret."""
    return Settings(
        _env_file=None,
        cloudflare_webhook_secret=CLOUDFLARE_SECRET,
        pco_webhook_secret="",
        signature_tolerance_seconds=300,
    )


@pytest.fixture
def verifier(config: Settings) -> SignatureVerifier:
    """Verifier with a frozen clock."""
    return SignatureVerifier(config=config, clock=lambda: NOW)


@pytest.fixture
def video_body() -> bytes:
    return json.dumps({"uid": "abc123", "readyToStream": True}).encode()


@pytest.fixture
def pco_body() -> bytes:
    return json.dumps(
        {
            "data": [
                {
                    "type": "EventDelivery",
                    "attributes": {"name": "people.v2.events.person.updated"},
                }
            ]
        }
    ).encode()


@pytest.fixture
def visited_pairs(monkeypatch) -> list:
    """Record every byte pair secure_compare folds."""
    visited: list = []

    def counting_zip(*iterables):
        for pair in zip(*iterables):
            visited.append(pair)
            yield pair

    monkeypatch.setattr(signature_verifier, "zip", counting_zip, raising=False)
    return visited


class TestSecureCompare:
    """Tests for secure_compare."""

    def test_equal_values(self) -> None:
        assert secure_compare("abc", "abc") is True
        assert secure_compare(b"abc", "abc") is True

    def test_different_values_same_length(self) -> None:
        assert secure_compare("abc", "abd") is False

    def test_different_lengths(self) -> None:
        assert secure_compare("abc", "abcd") is False

    def test_missing_values(self) -> None:
        assert secure_compare(None, "abc") is False
        assert secure_compare("abc", None) is False
        assert secure_compare(None, None) is False

    @pytest.mark.parametrize("position", [0, 63])
    def test_every_byte_visited_wherever_inputs_differ(self, visited_pairs, position: int) -> None:
        """A difference at the first or last byte costs the same full pass."""
        expected = "a" * 64
        actual = expected[:position] + "b" + expected[position + 1 :]

        assert secure_compare(expected, actual) is False
        assert len(visited_pairs) == 64

    def test_length_mismatch_skips_traversal(self, visited_pairs) -> None:
        assert secure_compare("a" * 64, "a" * 63) is False
        assert visited_pairs == []


class TestParseSignatureHeader:
    """Tests for parse_signature_header."""

    def test_parses_time_and_signature(self) -> None:
        assert parse_signature_header("time=123,sig1=abcdef") == {
            "time": "123",
            "sig1": "abcdef",
        }

    def test_tolerates_spaces_and_junk(self) -> None:
        parts = parse_signature_header(" time = 123 , junk , sig1=ab=cd ")
        assert parts == {"time": "123", "sig1": "ab=cd"}


class TestCloudflare:
    """Tests for Cloudflare Stream signature checks."""

    def test_valid_signature(self, verifier: SignatureVerifier, video_body: bytes) -> None:
        headers = {"webhook-signature": cloudflare_header(video_body)}

        result = verifier.check(WebhookSource.CLOUDFLARE, video_body, headers)

        assert result.valid is True
        assert verifier.verify("cloudflare", video_body, headers) is True

    def test_tampered_body_rejected(self, verifier: SignatureVerifier, video_body: bytes) -> None:
        headers = {"webhook-signature": cloudflare_header(video_body)}

        result = verifier.check(WebhookSource.CLOUDFLARE, video_body + b" ", headers)

        assert result.valid is False
        assert result.reason == "signature mismatch"

    def test_any_single_body_byte_changed_rejected(
        self, verifier: SignatureVerifier, video_body: bytes
    ) -> None:
        headers = {"webhook-signature": cloudflare_header(video_body)}

        for position in range(len(video_body)):
            mutated = bytearray(video_body)
            mutated[position] ^= 0x01

            assert len(mutated) == len(video_body)
            assert verifier.verify(WebhookSource.CLOUDFLARE, bytes(mutated), headers) is False, position

    def test_any_single_signature_digit_changed_rejected(
        self, verifier: SignatureVerifier, video_body: bytes
    ) -> None:
        signature = cloudflare_header(video_body).split("sig1=")[1]

        for position, digit in enumerate(signature):
            replacement = "0" if digit != "0" else "1"
            mutated = signature[:position] + replacement + signature[position + 1 :]
            headers = {"webhook-signature": f"time={NOW},sig1={mutated}"}

            assert verifier.verify(WebhookSource.CLOUDFLARE, video_body, headers) is False, position

    def test_any_single_secret_byte_changed_rejected(
        self, verifier: SignatureVerifier, video_body: bytes
    ) -> None:
        for position in range(len(CLOUDFLARE_SECRET)):
            secret = bytearray(CLOUDFLARE_SECRET.encode())
            secret[position] ^= 0x01
            headers = {
                "webhook-signature": cloudflare_header(video_body, secret=secret.decode())
            }

            assert verifier.verify(WebhookSource.CLOUDFLARE, video_body, headers) is False, position

    def test_wrong_secret_rejected(self, verifier: SignatureVerifier, video_body: bytes) -> None:
        headers = {"webhook-signature": cloudflare_header(video_body, secret="other")}

        assert verifier.verify(WebhookSource.CLOUDFLARE, video_body, headers) is False

    def test_missing_header_rejected(self, verifier: SignatureVerifier, video_body: bytes) -> None:
        result = verifier.check(WebhookSource.CLOUDFLARE, video_body, {})

        assert result.valid is False
        assert result.misconfigured is False
        assert "missing" in result.reason.lower()

    def test_malformed_header_rejected(self, verifier: SignatureVerifier, video_body: bytes) -> None:
        result = verifier.check(
            WebhookSource.CLOUDFLARE, video_body, {"webhook-signature": "garbage"}
        )

        assert result.valid is False
        assert "format" in result.reason

    @pytest.mark.parametrize("skew", [-300, 0, 300])
    def test_timestamp_inside_window_accepted(
        self, verifier: SignatureVerifier, video_body: bytes, skew: int
    ) -> None:
        headers = {"webhook-signature": cloudflare_header(video_body, timestamp=NOW + skew)}

        assert verifier.verify(WebhookSource.CLOUDFLARE, video_body, headers) is True

    @pytest.mark.parametrize("skew", [-301, 301, -86400])
    def test_timestamp_outside_window_rejected(
        self, verifier: SignatureVerifier, video_body: bytes, skew: int
    ) -> None:
        headers = {"webhook-signature": cloudflare_header(video_body, timestamp=NOW + skew)}

        result = verifier.check(WebhookSource.CLOUDFLARE, video_body, headers)

        assert result.valid is False
        assert result.reason == "timestamp outside replay window"

    def test_non_numeric_timestamp_rejected(
        self, verifier: SignatureVerifier, video_body: bytes
    ) -> None:
        signature = hmac.new(
            CLOUDFLARE_SECRET.encode(), b"soon." + video_body, hashlib.sha256
        ).hexdigest()
        headers = {"webhook-signature": f"time=soon,sig1={signature}"}

        assert verifier.verify(WebhookSource.CLOUDFLARE, video_body, headers) is False

    def test_missing_secret_is_misconfiguration(self, video_body: bytes) -> None:
        verifier = SignatureVerifier(
            config=Settings(_env_file=None, cloudflare_webhook_secret=""),
            clock=lambda: NOW,
        )
        headers = {"webhook-signature": cloudflare_header(video_body)}

        result = verifier.check(WebhookSource.CLOUDFLARE, video_body, headers)

        assert result.valid is False
        assert result.misconfigured is True


class TestPlanningCenter:
    """Tests for Planning Center structural checks."""

    def test_token_header_and_delivery_body(
        self, verifier: SignatureVerifier, pco_body: bytes
    ) -> None:
        headers = {"x-pco-webhooks-authenticity-token": "token"}

        assert verifier.verify(WebhookSource.PCO, pco_body, headers) is True

    def test_user_agent_marker(self, verifier: SignatureVerifier) -> None:
        body = json.dumps({"id": "42"}).encode()
        headers = {"user-agent": "Planning Center Webhooks/1.0"}

        assert verifier.verify(WebhookSource.PCO, body, headers) is True

    def test_no_marker_rejected(self, verifier: SignatureVerifier, pco_body: bytes) -> None:
        result = verifier.check(WebhookSource.PCO, pco_body, {"user-agent": "curl/8.0"})

        assert result.valid is False
        assert "marker" in result.reason

    @pytest.mark.parametrize(
        "payload",
        [{"foo": "bar"}, {"data": None}, {"type": False}, ["data"], "data"],
    )
    def test_body_without_delivery_shape_rejected(
        self, verifier: SignatureVerifier, payload: object
    ) -> None:
        headers = {"x-pco-webhooks-authenticity-token": "token"}

        assert verifier.verify(WebhookSource.PCO, json.dumps(payload).encode(), headers) is False

    def test_non_json_body_rejected(self, verifier: SignatureVerifier) -> None:
        headers = {"x-pco-webhooks-authenticity-token": "token"}

        result = verifier.check(WebhookSource.PCO, b"not json", headers)

        assert result.valid is False
        assert "JSON" in result.reason

    def test_body_too_deep_to_parse_rejected(self, verifier: SignatureVerifier) -> None:
        headers = {"x-pco-webhooks-authenticity-token": "token"}
        body = b'{"data":' + b"[" * 100_000 + b"]" * 100_000 + b"}"

        result = verifier.check(WebhookSource.PCO, body, headers)

        assert result.valid is False
        assert result.reason == "body is not valid JSON"

    def test_secret_requires_matching_hmac(self, pco_body: bytes) -> None:
        verifier = SignatureVerifier(
            config=Settings(_env_file=None, pco_webhook_secret=PCO_SECRET)
        )
        good = hmac.new(PCO_SECRET.encode(), pco_body, hashlib.sha256).hexdigest()

        assert verifier.verify(
            WebhookSource.PCO, pco_body, {"x-pco-webhooks-authenticity": good}
        ) is True
        assert verifier.verify(
            WebhookSource.PCO, pco_body, {"x-pco-webhooks-authenticity": "0" * 64}
        ) is False

    def test_secret_with_only_user_agent_rejected(self, pco_body: bytes) -> None:
        verifier = SignatureVerifier(
            config=Settings(_env_file=None, pco_webhook_secret=PCO_SECRET)
        )

        result = verifier.check(
            WebhookSource.PCO, pco_body, {"user-agent": "Planning Center"}
        )

        assert result.valid is False
        assert "x-pco-webhooks-authenticity" in result.reason


def test_unknown_source_rejected(verifier: SignatureVerifier, video_body: bytes) -> None:
    """Sources outside the accepted set never verify."""
    result = verifier.check("github", video_body, {})

    assert result.valid is False
    assert result.reason == "unknown source"


def test_check_never_raises(verifier: SignatureVerifier, video_body: bytes) -> None:
    """A crashing check is reported as a rejection."""

    def explode(raw_body, headers):
        raise RuntimeError("boom")

    verifier._checks[WebhookSource.CLOUDFLARE] = explode

    result = verifier.check(WebhookSource.CLOUDFLARE, video_body, {})

    assert result.valid is False
    assert result.reason == "verification error"


def test_verification_result_truthiness() -> None:
    assert bool(VerificationResult(valid=True, reason="ok")) is True
    assert bool(VerificationResult(valid=False, reason="no")) is False
