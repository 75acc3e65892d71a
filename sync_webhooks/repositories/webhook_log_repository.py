"""Webhook log repository for DynamoDB operations."""

from typing import Any

import aioboto3

from sync_webhooks.config import Settings, settings as default_settings
from sync_webhooks.models.webhook_event import (
    InboundWebhookEvent,
    RecordHandle,
    WebhookStatus,
)
from sync_webhooks.repositories.base import BaseRepository

SOURCE_DATE_INDEX = "SourceDateIndex"
EVENT_TYPE_DATE_INDEX = "EventTypeDateIndex"
STATUS_DATE_INDEX = "StatusDateIndex"
SOURCE_EVENT_INDEX = "SourceEventIndex"
DATE_PARTITION_INDEX = "DatePartitionIndex"


class WebhookLogRepository(BaseRepository):
    """
    Repository for webhook audit records in DynamoDB.

    Records are keyed by ``(id, received_at)``. Five global secondary
    indexes give the operator query paths over the same items.
    """

    def __init__(
        self,
        config: Settings | None = None,
        session: aioboto3.Session | None = None,
    ) -> None:
        """Initialize WebhookLogRepository with the webhook logs table."""
        config = config or default_settings
        super().__init__(config.webhook_logs_table or "", config=config, session=session)

    def _deserialize(self, item: dict[str, Any]) -> InboundWebhookEvent:
        return InboundWebhookEvent(**item)

    async def create(self, event: InboundWebhookEvent) -> InboundWebhookEvent:
        """
        Store a new audit record.

        Args:
            event: Record to store

        Returns:
            The stored record
        """
        # DynamoDB rejects None attribute values
        item = event.model_dump(exclude_none=True)
        await self.put_item(item)
        return event

    async def get(self, handle: RecordHandle) -> InboundWebhookEvent | None:
        """
        Fetch a record by its key.

        Args:
            handle: Record key

        Returns:
            The record, or None if absent
        """
        item = await self.get_item(handle.as_key())
        if item:
            return self._deserialize(item)
        return None

    async def update_status(
        self,
        handle: RecordHandle,
        status: WebhookStatus,
        updated_at: str,
        extra: dict[str, Any] | None = None,
    ) -> InboundWebhookEvent:
        """
        Move a record to ``status`` and set any extra attributes.

        The write is conditional: the stored status must be one the new
        status may follow, or the new status itself. Re-applying a status
        is therefore a no-op change, and a record can never move backwards.

        Args:
            handle: Record key
            status: New status
            updated_at: Timestamp for the updated_at attribute
            extra: Additional attributes; None values are skipped

        Returns:
            The record after the update

        Raises:
            botocore.exceptions.ClientError: ConditionalCheckFailedException
                if the transition is not allowed, or any storage error
        """
        update_expression = "SET #status = :status, updated_at = :updated_at"
        expression_values: dict[str, Any] = {
            ":status": status.value,
            ":updated_at": updated_at,
        }
        expression_names = {"#status": "status"}

        index = 0
        for key, value in (extra or {}).items():
            if value is None:
                continue
            update_expression += f", #attr{index} = :val{index}"
            expression_names[f"#attr{index}"] = str(key)
            expression_values[f":val{index}"] = value
            index += 1

        allowed = sorted(s.value for s in status.predecessors | {status})
        placeholders = []
        for position, previous in enumerate(allowed):
            expression_values[f":prev{position}"] = previous
            placeholders.append(f":prev{position}")
        condition = f"#status IN ({', '.join(placeholders)})"

        attributes = await self.update_item(
            handle.as_key(),
            update_expression,
            expression_values,
            expression_names,
            condition_expression=condition,
        )
        return self._deserialize(attributes)

    async def query_by_source(
        self, source: str, start: str, end: str
    ) -> list[InboundWebhookEvent]:
        """Records for a source received between ``start`` and ``end``."""
        items = await self.query(
            IndexName=SOURCE_DATE_INDEX,
            KeyConditionExpression="#source = :source AND received_at BETWEEN :start AND :end",
            ExpressionAttributeNames={"#source": "source"},
            ExpressionAttributeValues={
                ":source": source,
                ":start": start,
                ":end": end,
            },
        )
        return [self._deserialize(item) for item in items]

    async def query_by_event_type(
        self, event_type: str, start: str, end: str
    ) -> list[InboundWebhookEvent]:
        """Records of an event type received between ``start`` and ``end``."""
        items = await self.query(
            IndexName=EVENT_TYPE_DATE_INDEX,
            KeyConditionExpression="event_type = :event_type AND received_at BETWEEN :start AND :end",
            ExpressionAttributeValues={
                ":event_type": event_type,
                ":start": start,
                ":end": end,
            },
        )
        return [self._deserialize(item) for item in items]

    async def query_by_status(
        self, status: str, start: str, end: str
    ) -> list[InboundWebhookEvent]:
        """Records in a status received between ``start`` and ``end``."""
        items = await self.query(
            IndexName=STATUS_DATE_INDEX,
            KeyConditionExpression="#status = :status AND received_at BETWEEN :start AND :end",
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={
                ":status": status,
                ":start": start,
                ":end": end,
            },
        )
        return [self._deserialize(item) for item in items]

    async def query_by_source_event(
        self, source: str, event_type: str, start: str, end: str
    ) -> list[InboundWebhookEvent]:
        """Records for a source/event-type pair in a time range."""
        items = await self.query(
            IndexName=SOURCE_EVENT_INDEX,
            KeyConditionExpression="source_event = :source_event AND received_at BETWEEN :start AND :end",
            ExpressionAttributeValues={
                ":source_event": f"{source}:{event_type}",
                ":start": start,
                ":end": end,
            },
        )
        return [self._deserialize(item) for item in items]

    async def query_by_date(self, date: str) -> list[InboundWebhookEvent]:
        """All records whose date partition is ``date`` (YYYY-MM-DD)."""
        items = await self.query(
            IndexName=DATE_PARTITION_INDEX,
            KeyConditionExpression="date_partition = :date",
            ExpressionAttributeValues={":date": date},
        )
        return [self._deserialize(item) for item in items]
