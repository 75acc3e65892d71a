"""Tests for the webhook audit record model and its enums."""

import pytest

from sync_webhooks.models.webhook_event import (
    TERMINAL_STATUSES,
    InboundWebhookEvent,
    RecordHandle,
    WebhookSource,
    WebhookStatus,
)


class TestWebhookSource:
    """Tests for WebhookSource."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("pco", WebhookSource.PCO),
            ("PCO", WebhookSource.PCO),
            (" Cloudflare ", WebhookSource.CLOUDFLARE),
            ("github", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse(self, value, expected) -> None:
        assert WebhookSource.parse(value) is expected

    def test_platform_names(self) -> None:
        assert WebhookSource.PCO.platform == "planningcenter"
        assert WebhookSource.CLOUDFLARE.platform == "cloudflare"


class TestWebhookStatus:
    """Tests for the status progression."""

    def test_terminal_statuses(self) -> None:
        assert TERMINAL_STATUSES == {
            WebhookStatus.SIGNATURE_FAILED,
            WebhookStatus.LOGGED_ONLY,
            WebhookStatus.PROCESSED,
            WebhookStatus.WORKFLOW_FAILED,
        }
        assert not WebhookStatus.RECEIVED.is_terminal
        assert not WebhookStatus.VERIFIED.is_terminal

    def test_predecessors(self) -> None:
        assert WebhookStatus.RECEIVED.predecessors == frozenset()
        assert WebhookStatus.VERIFIED.predecessors == {WebhookStatus.RECEIVED}
        assert WebhookStatus.SIGNATURE_FAILED.predecessors == {WebhookStatus.RECEIVED}
        for status in (
            WebhookStatus.LOGGED_ONLY,
            WebhookStatus.PROCESSED,
            WebhookStatus.WORKFLOW_FAILED,
        ):
            assert status.predecessors == {WebhookStatus.VERIFIED}

    def test_terminal_statuses_have_no_successors(self) -> None:
        for status in TERMINAL_STATUSES:
            assert all(status not in other.predecessors for other in WebhookStatus)


def test_event_handle_and_extra_attributes() -> None:
    event = InboundWebhookEvent(
        id="0190abcdef12-0011223344556677",
        received_at="2026-06-01T12:30:00.000-05:00",
        source=WebhookSource.PCO,
        platform="planningcenter",
        source_event="pco:unknown",
        date_partition="2026-06-01",
        received_at_unix=1780335000,
        received_at_local="2026-06-01 12:30:00 CDT",
        ttl=1788111000,
        workflow_triggered=False,
    )

    assert event.source == "pco"
    assert event.status == "received"
    assert event.event_type == "unknown"
    assert event.handle == RecordHandle(
        id="0190abcdef12-0011223344556677",
        received_at="2026-06-01T12:30:00.000-05:00",
    )
    assert event.handle.as_key() == {
        "id": "0190abcdef12-0011223344556677",
        "received_at": "2026-06-01T12:30:00.000-05:00",
    }
    assert event.model_dump()["workflow_triggered"] is False
