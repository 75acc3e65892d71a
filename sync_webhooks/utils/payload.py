"""
Helpers that turn a raw webhook request into audit record attributes.

Everything here is best-effort: a malformed body or an unexpected payload
shape degrades to an empty/"unknown" value instead of raising.
"""

import json
from decimal import Decimal
from typing import Any, Mapping

from sync_webhooks.models.webhook_event import WebhookSource
from sync_webhooks.schemas.webhook import CallerContext

UNKNOWN_EVENT_TYPE = "unknown"
TRUNCATION_MARKER = "... [TRUNCATED]"
RAW_PREVIEW_CHARS = 1000
# DynamoDB allows 32 levels; the payload attribute and its record take two
MAX_PAYLOAD_DEPTH = 30

RELEVANT_HEADERS = frozenset(
    {
        "content-type",
        "user-agent",
        "x-forwarded-for",
        "x-real-ip",
        "x-request-id",
        "x-pco-signature",
        "x-pco-event",
        "x-pco-delivery",
        "x-pco-webhooks-authenticity",
        "x-pco-webhooks-authenticity-token",
        "x-pco-webhooks-event",
        "webhook-signature",
        "cf-webhook-signature",
        "cf-connecting-ip",
        "cf-ray",
        "cf-webhook-event",
    }
)


def load_json(body: bytes) -> Any:
    """
    Parse JSON the way DynamoDB wants it: floats as Decimal.

    Raises:
        ValueError: If the body is not valid UTF-8 JSON
    """
    return json.loads(
        body.decode("utf-8"),
        parse_float=Decimal,
        # NaN/Infinity cannot be stored; drop them
        parse_constant=lambda _: None,
    )


def parse_payload(body: bytes) -> dict[str, Any]:
    """
    Parse a webhook body into a mapping for storage and inspection.

    Args:
        body: Raw request body

    Returns:
        The parsed object; ``{"value": ...}`` for non-object JSON;
        ``{"raw": <preview>}`` for bodies that are not JSON; ``{}`` if empty
    """
    if not body:
        return {}
    try:
        parsed = load_json(body)
    except (ValueError, RecursionError):
        # RecursionError: nesting deeper than the interpreter stack
        return {"raw": body.decode("utf-8", errors="replace")[:RAW_PREVIEW_CHARS]}
    if isinstance(parsed, dict):
        return parsed
    return {"value": parsed}


def sanitize_for_dynamodb(obj: Any) -> Any:
    """
    Strip values DynamoDB rejects or that carry no information.

    Empty strings and None are dropped from maps and lists; floats become
    Decimal; unknown types are stringified.
    """
    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            sanitized = sanitize_for_dynamodb(value)
            if sanitized is not None:
                result[str(key)] = sanitized
        return result
    if isinstance(obj, (list, tuple)):
        return [
            sanitized
            for sanitized in (sanitize_for_dynamodb(v) for v in obj)
            if sanitized is not None
        ]
    if isinstance(obj, str):
        return obj or None
    if obj is None:
        return None
    if isinstance(obj, (bool, int, Decimal)):
        return obj
    if isinstance(obj, float):
        return Decimal(str(obj))
    text = str(obj)
    return text or None


def truncate_body(body: bytes, max_bytes: int) -> str:
    """
    Render the raw body as text capped at ``max_bytes`` of UTF-8.

    Oversized bodies keep their first ``max_bytes - 100`` bytes followed by
    a visible truncation marker. The cap applies to the decoded text, since
    invalid bytes widen to three-byte replacement characters.
    """
    text = body.decode("utf-8", errors="replace")
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    head = encoded[: max(max_bytes - 100, 0)]
    return head.decode("utf-8", errors="ignore") + TRUNCATION_MARKER


def nesting_depth(obj: Any) -> int:
    """Deepest level of nested maps/lists in ``obj`` (scalars are 0)."""
    deepest = 0
    stack = [(obj, 1)]
    while stack:
        current, depth = stack.pop()
        if isinstance(current, dict):
            children = current.values()
        elif isinstance(current, (list, tuple)):
            children = current
        else:
            continue
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in children)
    return deepest


def storable_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Sanitize a parsed body, or replace it with a marker when it nests deeper
    than DynamoDB accepts.
    """
    if nesting_depth(payload) > MAX_PAYLOAD_DEPTH:
        return {"truncated": True, "reason": "nesting too deep"}
    return sanitize_for_dynamodb(payload)


def stored_size(value: Any) -> int:
    """Approximate bytes ``value`` occupies in a DynamoDB item (its JSON size)."""
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    return len(json.dumps(value, default=str, separators=(",", ":")).encode("utf-8"))


def fit_payload(
    payload: dict[str, Any],
    body: bytes,
    max_raw_bytes: int,
    budget_bytes: int,
) -> tuple[dict[str, Any], str]:
    """
    Size the stored ``payload`` and ``payload_raw`` to fit one item.

    Both copies of the body count against ``budget_bytes``. When together
    they exceed it the parsed payload is replaced by a truncation marker
    and the raw text gets whatever budget is left.

    Args:
        payload: Sanitized parsed body
        body: Raw request body
        max_raw_bytes: Cap on the raw text alone
        budget_bytes: Cap on payload plus raw text

    Returns:
        (payload, payload_raw) ready to store
    """
    raw = truncate_body(body, min(max_raw_bytes, budget_bytes))
    if stored_size(payload) + stored_size(raw) <= budget_bytes:
        return payload, raw

    marker = {"truncated": True, "original_size_bytes": len(body)}
    remaining = max(budget_bytes - stored_size(marker), 0)
    return marker, truncate_body(body, min(max_raw_bytes, remaining))


def _dig(obj: Any, *path: Any) -> Any:
    """Follow keys/indexes through nested dicts and lists, None on a miss."""
    current = obj
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def _first_text(*candidates: Any) -> str | None:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def extract_event_type(
    source: WebhookSource | str,
    payload: Mapping[str, Any],
    headers: Mapping[str, str],
) -> str:
    """
    Work out the event name for a webhook.

    Planning Center delivers ``data`` as a list of EventDelivery objects
    whose ``attributes.name`` is the event name; older payloads carry
    ``meta.event``. Cloudflare Stream uses ``event.type`` or ``type``.

    Returns:
        The event name, or "unknown"
    """
    tag = str(getattr(source, "value", source)).lower()
    if tag == WebhookSource.PCO.value:
        found = _first_text(
            _dig(payload, "data", 0, "attributes", "name"),
            _dig(payload, "data", "attributes", "name"),
            _dig(payload, "meta", "event"),
            headers.get("x-pco-webhooks-event"),
            headers.get("x-pco-event"),
            payload.get("name"),
        )
    elif tag == WebhookSource.CLOUDFLARE.value:
        found = _first_text(
            _dig(payload, "event", "type"),
            headers.get("cf-webhook-event"),
            payload.get("type"),
        )
    else:
        found = None
    return found or UNKNOWN_EVENT_TYPE


def extract_relevant_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Keep only headers useful for audit and debugging."""
    return {
        key.lower(): value
        for key, value in headers.items()
        if key.lower() in RELEVANT_HEADERS and value
    }


def client_ip(headers: Mapping[str, str], fallback: str | None = None) -> str | None:
    """First hop of X-Forwarded-For, else X-Real-IP, else CF-Connecting-IP."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return headers.get("x-real-ip") or headers.get("cf-connecting-ip") or fallback


def build_metadata(
    context: CallerContext,
    headers: Mapping[str, str],
    stage: str | None,
) -> dict[str, Any]:
    """
    Combine invocation context and caller details for the audit record.

    Absent values are omitted.
    """
    metadata = {
        "aws_request_id": context.aws_request_id,
        "function_name": context.function_name,
        "function_version": context.function_version,
        "log_group_name": context.log_group_name,
        "log_stream_name": context.log_stream_name,
        "request_id": context.request_id,
        "upstream_request_id": headers.get("x-request-id"),
        "source_ip": client_ip(headers, fallback=context.client_host),
        "user_agent": headers.get("user-agent"),
        "stage": stage,
    }
    return {key: value for key, value in metadata.items() if value}
