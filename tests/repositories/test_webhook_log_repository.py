"""Tests for WebhookLogRepository against a local moto DynamoDB server."""

import json
import uuid
from datetime import UTC, datetime, timedelta

import aioboto3
import pytest
from botocore.exceptions import ClientError
from moto.server import ThreadedMotoServer

from infrastructure.dynamodb_tables import create_webhook_logs_table
from sync_webhooks.config import Settings
from sync_webhooks.models.webhook_event import WebhookSource, WebhookStatus
from sync_webhooks.repositories.base import get_dynamodb_config
from sync_webhooks.repositories.webhook_log_repository import WebhookLogRepository
from sync_webhooks.schemas.webhook import CallerContext
from sync_webhooks.services.audit_log import AuditLog

MOTO_PORT = 5555


@pytest.fixture(scope="module")
def moto_server():
    """Run moto in a thread; aioboto3 talks to it over HTTP."""
    server = ThreadedMotoServer(ip_address="127.0.0.1", port=MOTO_PORT)
    server.start()
    yield f"http://127.0.0.1:{MOTO_PORT}"
    server.stop()


@pytest.fixture
async def config(moto_server: str) -> Settings:
    """Settings pointing at a freshly created table."""
    config = Settings(
        _env_file=None,
        aws_region="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        dynamodb_endpoint_url=moto_server,
        webhook_logs_table=f"webhook-logs-{uuid.uuid4().hex[:8]}",
        stage="test",
    )
    session = aioboto3.Session()
    async with session.resource("dynamodb", **get_dynamodb_config(config)) as dynamodb:
        await create_webhook_logs_table(dynamodb, config.webhook_logs_table)
    return config


@pytest.fixture
def repository(config: Settings) -> WebhookLogRepository:
    return WebhookLogRepository(config=config)


@pytest.fixture
def audit_log(repository: WebhookLogRepository, config: Settings) -> AuditLog:
    return AuditLog(repository=repository, config=config)


def pco_body(name: str = "people.v2.events.person.updated") -> bytes:
    return json.dumps(
        {"data": [{"type": "EventDelivery", "attributes": {"name": name}, "score": 1.5}]}
    ).encode()


@pytest.mark.asyncio
async def test_create_and_get(repository: WebhookLogRepository, audit_log: AuditLog) -> None:
    """Stored records come back with every attribute intact."""
    event = audit_log.build_event(
        WebhookSource.PCO,
        pco_body(),
        {"user-agent": "Planning Center"},
        CallerContext(request_id="req-1"),
    )

    await repository.create(event)
    fetched = await repository.get(event.handle)

    assert fetched is not None
    assert fetched.id == event.id
    assert fetched.source == "pco"
    assert fetched.event_type == "people.v2.events.person.updated"
    assert fetched.status == "received"
    assert fetched.ttl == event.ttl
    assert fetched.metadata["request_id"] == "req-1"
    assert fetched.payload_raw == pco_body().decode()


@pytest.mark.asyncio
async def test_large_body_still_recorded(repository: WebhookLogRepository, audit_log: AuditLog) -> None:
    """A 250 KB body fits once the parsed copy is swapped for a marker."""
    body = json.dumps({"data": {"blob": "x" * 250_000}}).encode()

    handle = await audit_log.record(WebhookSource.PCO, body, {})

    assert handle is not None
    stored = await repository.get(handle)
    assert stored.payload == {"truncated": True, "original_size_bytes": len(body)}
    assert stored.payload_size_bytes == len(body)
    assert stored.payload_raw == body.decode()


@pytest.mark.asyncio
async def test_get_missing_returns_none(repository: WebhookLogRepository, audit_log: AuditLog) -> None:
    event = audit_log.build_event(WebhookSource.PCO, b"{}", {}, CallerContext())

    assert await repository.get(event.handle) is None


@pytest.mark.asyncio
async def test_status_moves_forward(repository: WebhookLogRepository, audit_log: AuditLog) -> None:
    event = audit_log.build_event(WebhookSource.CLOUDFLARE, b'{"uid": "1"}', {}, CallerContext())
    await repository.create(event)

    await repository.update_status(event.handle, WebhookStatus.VERIFIED, "2026-06-01T12:00:01.000-05:00")
    updated = await repository.update_status(
        event.handle,
        WebhookStatus.PROCESSED,
        "2026-06-01T12:00:02.000-05:00",
        extra={"workflow_triggered": True, "workflow_run_id": None},
    )

    assert updated.status == "processed"
    assert updated.updated_at == "2026-06-01T12:00:02.000-05:00"
    assert updated.model_extra["workflow_triggered"] is True
    assert "workflow_run_id" not in updated.model_extra


@pytest.mark.asyncio
async def test_reapplying_status_is_allowed(repository: WebhookLogRepository, audit_log: AuditLog) -> None:
    event = audit_log.build_event(WebhookSource.CLOUDFLARE, b"{}", {}, CallerContext())
    await repository.create(event)

    await repository.update_status(event.handle, WebhookStatus.RECEIVED, "t1", extra={"error_message": "Invalid JSON body"})
    updated = await repository.update_status(event.handle, WebhookStatus.RECEIVED, "t2")

    assert updated.status == "received"


@pytest.mark.asyncio
async def test_status_never_moves_backwards(repository: WebhookLogRepository, audit_log: AuditLog) -> None:
    event = audit_log.build_event(WebhookSource.CLOUDFLARE, b"{}", {}, CallerContext())
    await repository.create(event)
    await repository.update_status(event.handle, WebhookStatus.VERIFIED, "t1")
    await repository.update_status(event.handle, WebhookStatus.WORKFLOW_FAILED, "t2")

    with pytest.raises(ClientError) as exc_info:
        await repository.update_status(event.handle, WebhookStatus.VERIFIED, "t3")

    assert exc_info.value.response["Error"]["Code"] == "ConditionalCheckFailedException"
    stored = await repository.get(event.handle)
    assert stored.status == "workflow_failed"


@pytest.mark.asyncio
async def test_terminal_status_cannot_be_skipped_to(repository: WebhookLogRepository, audit_log: AuditLog) -> None:
    """processed requires verified first."""
    event = audit_log.build_event(WebhookSource.CLOUDFLARE, b"{}", {}, CallerContext())
    await repository.create(event)

    with pytest.raises(ClientError):
        await repository.update_status(event.handle, WebhookStatus.PROCESSED, "t1")


@pytest.mark.asyncio
async def test_audit_log_ignores_out_of_order_update(
    repository: WebhookLogRepository, audit_log: AuditLog
) -> None:
    handle = await audit_log.record(WebhookSource.PCO, pco_body(), {})
    await audit_log.update_status(handle, WebhookStatus.SIGNATURE_FAILED, {"reason": "nope"})

    # Swallowed, not raised
    await audit_log.update_status(handle, WebhookStatus.VERIFIED)

    stored = await repository.get(handle)
    assert stored.status == "signature_failed"
    assert stored.model_extra["reason"] == "nope"


@pytest.mark.asyncio
async def test_query_paths(repository: WebhookLogRepository, audit_log: AuditLog) -> None:
    """Each index answers its query for the expected time window."""
    base = datetime(2026, 6, 1, 17, 0, tzinfo=UTC)
    events = [
        audit_log.build_event(WebhookSource.PCO, pco_body(), {}, CallerContext(), received=base),
        audit_log.build_event(
            WebhookSource.PCO,
            pco_body("calendar.v2.events.event.updated"),
            {},
            CallerContext(),
            received=base + timedelta(hours=1),
        ),
        audit_log.build_event(
            WebhookSource.CLOUDFLARE,
            b'{"event": {"type": "video.ready"}}',
            {},
            CallerContext(),
            received=base + timedelta(days=3),
        ),
    ]
    for event in events:
        await repository.create(event)

    first_day = audit_log._range(base - timedelta(minutes=1), base + timedelta(days=1))

    by_source = await repository.query_by_source("pco", *first_day)
    assert {e.id for e in by_source} == {events[0].id, events[1].id}

    by_type = await repository.query_by_event_type("video.ready", *audit_log._range(base, base + timedelta(days=4)))
    assert [e.id for e in by_type] == [events[2].id]

    by_status = await repository.query_by_status("received", *first_day)
    assert len(by_status) == 2

    by_combo = await repository.query_by_source_event(
        "pco", "calendar.v2.events.event.updated", *first_day
    )
    assert [e.id for e in by_combo] == [events[1].id]

    by_date = await repository.query_by_date("2026-06-04")
    assert [e.id for e in by_date] == [events[2].id]


@pytest.mark.asyncio
async def test_audit_log_query_by_source(audit_log: AuditLog) -> None:
    start = datetime.now(UTC) - timedelta(minutes=5)
    await audit_log.record(WebhookSource.CLOUDFLARE, b'{"uid": "x"}', {})

    results = await audit_log.query_by_source(WebhookSource.CLOUDFLARE, start)

    assert len(results) == 1
    assert results[0].source == "cloudflare"
