"""Webhook audit record model for DynamoDB."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WebhookSource(str, Enum):
    """External platforms allowed to call the receiver."""

    PCO = "pco"
    CLOUDFLARE = "cloudflare"

    @property
    def platform(self) -> str:
        """Display name stored alongside the tag."""
        return _PLATFORM_NAMES[self]

    @classmethod
    def parse(cls, value: str | None) -> "WebhookSource | None":
        """
        Resolve a path segment to a source tag.

        Args:
            value: Raw value from the request path (any case)

        Returns:
            The matching WebhookSource, or None if unrecognized
        """
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


_PLATFORM_NAMES = {
    WebhookSource.PCO: "planningcenter",
    WebhookSource.CLOUDFLARE: "cloudflare",
}


class WebhookStatus(str, Enum):
    """Processing status of an audit record."""

    RECEIVED = "received"
    SIGNATURE_FAILED = "signature_failed"
    VERIFIED = "verified"
    LOGGED_ONLY = "logged_only"
    PROCESSED = "processed"
    WORKFLOW_FAILED = "workflow_failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def predecessors(self) -> frozenset["WebhookStatus"]:
        """Statuses a record may hold immediately before moving to this one."""
        return frozenset(
            prev for prev, nexts in STATUS_TRANSITIONS.items() if self in nexts
        )


STATUS_TRANSITIONS: dict[WebhookStatus, frozenset[WebhookStatus]] = {
    WebhookStatus.RECEIVED: frozenset(
        {WebhookStatus.SIGNATURE_FAILED, WebhookStatus.VERIFIED}
    ),
    WebhookStatus.VERIFIED: frozenset(
        {
            WebhookStatus.LOGGED_ONLY,
            WebhookStatus.PROCESSED,
            WebhookStatus.WORKFLOW_FAILED,
        }
    ),
}

TERMINAL_STATUSES = frozenset(
    {
        WebhookStatus.SIGNATURE_FAILED,
        WebhookStatus.LOGGED_ONLY,
        WebhookStatus.PROCESSED,
        WebhookStatus.WORKFLOW_FAILED,
    }
)


class RecordHandle(BaseModel):
    """Primary key of a stored audit record, used for status updates."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Sortable record id (partition key)")
    received_at: str = Field(..., description="Receipt timestamp (sort key)")

    def as_key(self) -> dict[str, str]:
        """DynamoDB key for this record."""
        return {"id": self.id, "received_at": self.received_at}


class InboundWebhookEvent(BaseModel):
    """
    Audit record for one inbound webhook request.

    Attributes:
        id: Sortable id with embedded receipt time (partition key)
        received_at: ISO 8601 receipt time, millisecond precision, civil zone
        source: Source tag the request was routed to
        platform: Display name of the source platform
        event_type: Event name extracted from payload or headers
        status: Current processing status
        source_event: "<source>:<event_type>" composite index key
        date_partition: Receipt date (YYYY-MM-DD) in the civil zone
        received_at_unix: Receipt time as epoch seconds
        received_at_local: Human readable receipt time
        ttl: Epoch seconds after which DynamoDB may purge the record
        payload: Sanitized parsed body
        payload_raw: Raw body, truncated to the storage ceiling
        payload_size_bytes: Size of the raw body before truncation
        headers: Relevant request headers
        metadata: Invocation context (request ids, function, caller IP)
        updated_at: Time of the last status update
    """

    model_config = ConfigDict(extra="allow", use_enum_values=True)

    id: str = Field(..., description="Sortable record id")
    received_at: str = Field(..., description="ISO 8601 receipt timestamp")
    source: WebhookSource = Field(..., description="Source tag")
    platform: str = Field(..., description="Source platform name")
    event_type: str = Field(default="unknown", description="Event type")
    status: WebhookStatus = Field(
        default=WebhookStatus.RECEIVED, description="Processing status"
    )
    source_event: str = Field(..., description="source:event_type key")
    date_partition: str = Field(..., description="YYYY-MM-DD partition")
    received_at_unix: int = Field(..., description="Epoch seconds")
    received_at_local: str = Field(..., description="Readable local time")
    ttl: int = Field(..., description="Unix timestamp for TTL")
    payload: dict[str, Any] = Field(default_factory=dict)
    payload_raw: str = Field(default="")
    payload_size_bytes: int = Field(default=0)
    headers: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    updated_at: str | None = Field(None, description="Last update time")

    @property
    def handle(self) -> RecordHandle:
        return RecordHandle(id=self.id, received_at=self.received_at)
