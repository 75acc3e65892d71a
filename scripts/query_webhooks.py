#!/usr/bin/env python3
"""
CLI for querying the webhook audit log.

Examples:
    python -m scripts.query_webhooks source cloudflare --days 7
    python -m scripts.query_webhooks status signature_failed --days 1
    python -m scripts.query_webhooks source-event pco people.v2.events.person.updated
    python -m scripts.query_webhooks date 2026-10-18 --json
"""

import argparse
import asyncio
import json
import sys
from datetime import timedelta

from sync_webhooks.config import settings
from sync_webhooks.models.webhook_event import (
    InboundWebhookEvent,
    WebhookSource,
    WebhookStatus,
)
from sync_webhooks.services.audit_log import AuditLog
from sync_webhooks.utils import clock


def print_events(events: list[InboundWebhookEvent], as_json: bool = False) -> None:
    """
    Print audit records as a table or as JSON lines.

    Args:
        events: Records to print
        as_json: Emit one JSON object per line instead of a table
    """
    if as_json:
        for event in events:
            print(json.dumps(event.model_dump(), default=str))
        return

    if not events:
        print("No webhooks found.")
        return

    print(
        f"\n{'Received':<30} {'Source':<11} {'Status':<17}"
        f" {'Event Type':<40} {'ID':<30}"
    )
    print("-" * 130)

    for event in sorted(events, key=lambda e: e.received_at):
        event_type = event.event_type
        if len(event_type) > 37:
            event_type = event_type[:37] + "..."
        print(
            f"{event.received_at:<30} {event.source:<11} {event.status:<17}"
            f" {event_type:<40} {event.id:<30}"
        )

    print(f"\nTotal: {len(events)} webhooks")


async def run_query(
    args: argparse.Namespace, audit_log: AuditLog | None = None
) -> list[InboundWebhookEvent]:
    """
    Execute the query selected on the command line.

    Args:
        args: Parsed arguments
        audit_log: AuditLog to query (creates new if None)

    Returns:
        Matching audit records
    """
    audit_log = audit_log or AuditLog()
    start = clock.now_in_zone(settings.audit_timezone) - timedelta(days=args.days)

    if args.command == "source":
        return await audit_log.query_by_source(args.source, start)
    if args.command == "event-type":
        return await audit_log.query_by_event_type(args.event_type, start)
    if args.command == "status":
        return await audit_log.query_by_status(args.status, start)
    if args.command == "source-event":
        return await audit_log.query_by_source_event(args.source, args.event_type, start)
    if args.command == "date":
        return await audit_log.query_by_date(args.date)
    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Query the webhook audit log",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--days",
        type=int,
        default=7,
        help="How many days back to search (default: 7)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print one JSON record per line",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    source_parser = subparsers.add_parser("source", help="Webhooks from a source")
    source_parser.add_argument("source", choices=[s.value for s in WebhookSource])

    event_parser = subparsers.add_parser("event-type", help="Webhooks of an event type")
    event_parser.add_argument("event_type", type=str)

    status_parser = subparsers.add_parser("status", help="Webhooks in a status")
    status_parser.add_argument("status", choices=[s.value for s in WebhookStatus])

    combo_parser = subparsers.add_parser(
        "source-event", help="Webhooks for a source and event type"
    )
    combo_parser.add_argument("source", choices=[s.value for s in WebhookSource])
    combo_parser.add_argument("event_type", type=str)

    date_parser = subparsers.add_parser("date", help="All webhooks on a date")
    date_parser.add_argument("date", type=str, help="YYYY-MM-DD")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if not settings.webhook_logs_table:
        print("✗ Error: WEBHOOK_LOGS_TABLE is not set")
        sys.exit(1)

    events = asyncio.run(run_query(args))
    print_events(events, as_json=args.json)


if __name__ == "__main__":
    main()
