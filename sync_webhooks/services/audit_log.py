"""Audit log service: one DynamoDB record per inbound webhook."""

from datetime import date, datetime
from typing import Any, Awaitable, Callable, Mapping

from botocore.exceptions import BotoCoreError, ClientError

from sync_webhooks.config import Settings, settings as default_settings
from sync_webhooks.logging.config import get_logger
from sync_webhooks.models.webhook_event import (
    InboundWebhookEvent,
    RecordHandle,
    WebhookSource,
    WebhookStatus,
)
from sync_webhooks.repositories.webhook_log_repository import WebhookLogRepository
from sync_webhooks.schemas.webhook import CallerContext
from sync_webhooks.utils import clock
from sync_webhooks.utils.payload import (
    build_metadata,
    extract_event_type,
    extract_relevant_headers,
    fit_payload,
    parse_payload,
    sanitize_for_dynamodb,
    storable_payload,
)

logger = get_logger(__name__)

STORAGE_ERRORS = (ClientError, BotoCoreError)


class AuditLog:
    """
    Append-only record of webhook traffic.

    Writes never raise: on a storage failure the error is logged and the
    caller carries on without an audit trail. With no table configured the
    log is disabled and every call is a no-op.
    """

    def __init__(
        self,
        repository: WebhookLogRepository | None = None,
        config: Settings | None = None,
    ) -> None:
        """
        Initialize AuditLog.

        Args:
            repository: WebhookLogRepository instance (creates new if None)
            config: Settings for retention, zone and size limits
        """
        self.config = config or default_settings
        self.repository = repository or WebhookLogRepository(config=self.config)

    @property
    def enabled(self) -> bool:
        return bool(self.config.webhook_logs_table)

    def _now(self) -> datetime:
        return clock.now_in_zone(self.config.audit_timezone)

    def build_event(
        self,
        source: WebhookSource,
        raw_body: bytes,
        headers: Mapping[str, str],
        context: CallerContext,
        status: WebhookStatus = WebhookStatus.RECEIVED,
        received: datetime | None = None,
    ) -> InboundWebhookEvent:
        """
        Assemble the audit record for a request without storing it.

        Args:
            source: Source tag
            raw_body: Body bytes as received
            headers: Lowercased request headers
            context: Invocation context
            status: Initial status
            received: Receipt time (defaults to now in the audit zone)

        Returns:
            The record ready to be written
        """
        now = clock.to_zone(received, self.config.audit_timezone) if received else self._now()
        payload = parse_payload(raw_body)
        event_type = extract_event_type(source, payload, headers)
        stored_payload, payload_raw = fit_payload(
            storable_payload(payload),
            raw_body,
            self.config.max_raw_payload_bytes,
            self.config.max_audit_payload_bytes,
        )

        return InboundWebhookEvent(
            id=clock.generate_sortable_id(now),
            received_at=clock.iso_millis(now),
            source=source,
            platform=source.platform,
            event_type=event_type,
            status=status,
            source_event=f"{source.value}:{event_type}",
            date_partition=clock.date_partition(now),
            received_at_unix=int(now.timestamp()),
            received_at_local=clock.readable_local(now),
            ttl=clock.expiry_epoch(now, self.config.audit_ttl_days),
            payload=stored_payload,
            payload_raw=payload_raw,
            payload_size_bytes=len(raw_body),
            headers=extract_relevant_headers(headers),
            metadata=build_metadata(context, headers, self.config.stage),
        )

    async def record(
        self,
        source: WebhookSource,
        raw_body: bytes,
        headers: Mapping[str, str],
        context: CallerContext | None = None,
        status: WebhookStatus = WebhookStatus.RECEIVED,
    ) -> RecordHandle | None:
        """
        Write the initial audit record for a request.

        Returns:
            Handle for later status updates, or None if the log is disabled
            or the write failed
        """
        if not self.enabled:
            return None

        try:
            event = self.build_event(
                source, raw_body, headers, context or CallerContext(), status
            )
            await self.repository.create(event)
        except STORAGE_ERRORS as exc:
            logger.error(
                "Failed to write webhook audit record",
                exc_info=exc,
                extra={"context": {"source": source.value}},
            )
            return None
        except Exception as exc:
            logger.error(
                "Unexpected error writing webhook audit record",
                exc_info=exc,
                extra={"context": {"source": source.value}},
            )
            return None

        logger.info(
            "Logged webhook to DynamoDB",
            extra={
                "context": {
                    "log_id": event.id,
                    "source": source.value,
                    "event_type": event.event_type,
                    "status": status.value,
                }
            },
        )
        return event.handle

    async def update_status(
        self,
        handle: RecordHandle | None,
        status: WebhookStatus,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """
        Move a record to a new status, best-effort.

        Args:
            handle: Record key from ``record`` (None is ignored)
            status: New status
            extra: Additional attributes to store with the update
        """
        if handle is None or not self.enabled:
            return

        try:
            await self.repository.update_status(
                handle,
                status,
                updated_at=clock.iso_millis(self._now()),
                extra=sanitize_for_dynamodb(extra or {}),
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ConditionalCheckFailedException":
                logger.warning(
                    "Ignored out-of-order webhook status update",
                    extra={"context": {"log_id": handle.id, "status": status.value}},
                )
                return
            logger.error(
                "Failed to update webhook status",
                exc_info=exc,
                extra={"context": {"log_id": handle.id, "status": status.value}},
            )
            return
        except Exception as exc:
            logger.error(
                "Unexpected error updating webhook status",
                exc_info=exc,
                extra={"context": {"log_id": handle.id, "status": status.value}},
            )
            return

        logger.info(
            f"Updated webhook status to '{status.value}'",
            extra={"context": {"log_id": handle.id, "status": status.value}},
        )

    def _range(self, start: datetime, end: datetime | None) -> tuple[str, str]:
        zone = self.config.audit_timezone
        end = end or self._now()
        return (
            clock.iso_millis(clock.to_zone(start, zone)),
            clock.iso_millis(clock.to_zone(end, zone)),
        )

    async def _safe_query(
        self,
        description: str,
        query: Callable[..., Awaitable[list[InboundWebhookEvent]]],
        *args: Any,
    ) -> list[InboundWebhookEvent]:
        if not self.enabled:
            return []
        try:
            return await query(*args)
        except Exception as exc:
            logger.error(
                f"Query by {description} failed",
                exc_info=exc,
            )
            return []

    async def query_by_source(
        self,
        source: WebhookSource | str,
        start: datetime,
        end: datetime | None = None,
    ) -> list[InboundWebhookEvent]:
        """Records from ``source`` received in [start, end] (end defaults to now)."""
        lower, upper = self._range(start, end)
        tag = str(getattr(source, "value", source))
        return await self._safe_query(
            "source", self.repository.query_by_source, tag, lower, upper
        )

    async def query_by_event_type(
        self,
        event_type: str,
        start: datetime,
        end: datetime | None = None,
    ) -> list[InboundWebhookEvent]:
        """Records with ``event_type`` received in [start, end]."""
        lower, upper = self._range(start, end)
        return await self._safe_query(
            "event type", self.repository.query_by_event_type, event_type, lower, upper
        )

    async def query_by_status(
        self,
        status: WebhookStatus | str,
        start: datetime,
        end: datetime | None = None,
    ) -> list[InboundWebhookEvent]:
        """Records currently in ``status`` received in [start, end]."""
        lower, upper = self._range(start, end)
        value = str(getattr(status, "value", status))
        return await self._safe_query(
            "status", self.repository.query_by_status, value, lower, upper
        )

    async def query_by_source_event(
        self,
        source: WebhookSource | str,
        event_type: str,
        start: datetime,
        end: datetime | None = None,
    ) -> list[InboundWebhookEvent]:
        """Records for one source and event type received in [start, end]."""
        lower, upper = self._range(start, end)
        tag = str(getattr(source, "value", source))
        return await self._safe_query(
            "source+event",
            self.repository.query_by_source_event,
            tag,
            event_type,
            lower,
            upper,
        )

    async def query_by_date(self, day: date | str) -> list[InboundWebhookEvent]:
        """All records received on a calendar day in the audit zone."""
        value = day.strftime("%Y-%m-%d") if isinstance(day, date) else str(day)
        return await self._safe_query("date", self.repository.query_by_date, value)
