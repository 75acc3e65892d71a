#!/usr/bin/env python3
"""
CLI for registering the receiver with Planning Center and Cloudflare.

Run after deploying the Lambda function:

    python -m scripts.manage_webhooks setup --stage prod
    python -m scripts.manage_webhooks verify --stage prod
    python -m scripts.manage_webhooks list
    python -m scripts.manage_webhooks teardown --stage dev --dry-run
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass, field
from typing import Any

from sync_webhooks.services.subscription_manager import (
    SubscriptionError,
    SubscriptionManager,
)

WEBHOOK_DOMAINS = {
    "dev": "webhooks.api.dev.rol.church",
    "prod": "webhooks.api.rol.church",
}

# Planning Center events the receiver subscribes to; exactly these, no more
PCO_EVENTS = [
    "groups.v2.events.group.created",
    "groups.v2.events.group.updated",
    "groups.v2.events.group.destroyed",
    "calendar.v2.events.event_request.approved",
    "calendar.v2.events.event_request.updated",
    "people.v2.events.person.created",
    "people.v2.events.person.updated",
]


def webhook_url(domain: str, source: str) -> str:
    return f"https://{domain}/webhook/{source}"


@dataclass
class SubscriptionDiff:
    """Planning Center subscriptions for one receiver URL vs. PCO_EVENTS."""

    present: list[dict[str, Any]] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    extra: list[dict[str, Any]] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not self.missing and not self.extra


def _subscription_name(subscription: dict[str, Any]) -> str:
    return (subscription.get("attributes") or {}).get("name") or ""


def diff_pco_subscriptions(
    subscriptions: list[dict[str, Any]], url: str
) -> SubscriptionDiff:
    """
    Compare existing subscriptions pointing at ``url`` with PCO_EVENTS.

    Subscriptions for other URLs are ignored. For a required event the
    first subscription is kept; repeats and events not in PCO_EVENTS are
    reported as extra.
    """
    diff = SubscriptionDiff()
    seen: set[str] = set()
    for subscription in subscriptions:
        if (subscription.get("attributes") or {}).get("url") != url:
            continue
        name = _subscription_name(subscription)
        if name in PCO_EVENTS and name not in seen:
            seen.add(name)
            diff.present.append(subscription)
        else:
            diff.extra.append(subscription)
    diff.missing = [name for name in PCO_EVENTS if name not in seen]
    return diff


def _print_secret(result: dict[str, Any]) -> None:
    if result.get("secret"):
        print()
        print("  ⚠️  IMPORTANT: Save this webhook signing secret!")
        print(f"  CLOUDFLARE_WEBHOOK_SECRET={result['secret']}")
        print("  Add it to the Lambda environment variables.")


async def _create_missing(
    manager: SubscriptionManager, missing: list[str], url: str
) -> int:
    failures = 0
    for event_name in missing:
        try:
            result = await manager.create_pco_webhook(name=event_name, url=url)
            print(f"  ✓ Created {event_name}: subscription {result.get('id')}")
        except SubscriptionError as e:
            failures += 1
            print(f"  ✗ {event_name}: {e}")
    return failures


async def cmd_setup(domain: str, dry_run: bool, manager: SubscriptionManager | None = None) -> int:
    """
    Register the receiver URLs with both platforms.

    Events already subscribed for this URL are skipped, so reruns do not
    create duplicates.

    Args:
        domain: Receiver domain for the stage
        dry_run: Only print what would be registered
        manager: SubscriptionManager (creates new if None)

    Returns:
        Number of registrations that failed
    """
    pco_url = webhook_url(domain, "pco")
    cloudflare_url = webhook_url(domain, "cloudflare")
    print(f"PCO Webhook URL: {pco_url}")
    print(f"Cloudflare Webhook URL: {cloudflare_url}")
    print()

    if dry_run:
        print("[DRY RUN] Would register webhooks with the above URLs")
        return 0

    failures = 0
    manager = manager or SubscriptionManager()
    async with manager:
        print("Setting up Planning Center webhooks...")
        print("-" * 40)
        try:
            diff = diff_pco_subscriptions(await manager.list_pco_webhooks(), pco_url)
            for subscription in diff.present:
                print(f"  → {_subscription_name(subscription)}: already subscribed")
            failures += await _create_missing(manager, diff.missing, pco_url)
        except SubscriptionError as e:
            failures += 1
            print(f"  ✗ Error listing subscriptions: {e}")

        print()
        print("Setting up Cloudflare Stream webhook...")
        print("-" * 40)
        try:
            result = await manager.set_cloudflare_webhook(cloudflare_url)
            print("  ✓ Webhook registered")
            _print_secret(result)
        except SubscriptionError as e:
            failures += 1
            print(f"  ✗ Error: {e}")

    return failures


async def cmd_verify(domain: str, dry_run: bool, manager: SubscriptionManager | None = None) -> int:
    """
    Reconcile both platforms with the expected configuration.

    Creates missing Planning Center events, deletes extra or duplicate
    ones, and points the Cloudflare webhook at this stage when it is unset
    or points elsewhere. Safe to run on every deploy.

    Returns:
        Number of checks or changes that failed
    """
    pco_url = webhook_url(domain, "pco")
    cloudflare_url = webhook_url(domain, "cloudflare")
    print(f"Expected PCO URL: {pco_url}")
    print(f"Expected Cloudflare URL: {cloudflare_url}")
    print()

    failures = 0
    changes = 0
    manager = manager or SubscriptionManager()
    async with manager:
        print("Checking Planning Center webhooks...")
        print("-" * 40)
        try:
            diff = diff_pco_subscriptions(await manager.list_pco_webhooks(), pco_url)
            if diff.in_sync:
                print(f"  ✓ PCO webhooks correctly configured ({len(diff.present)} webhooks)")
            for name in diff.missing:
                print(f"  ⚠ Missing: {name}")
            for subscription in diff.extra:
                print(f"  ⚠ Extra: {_subscription_name(subscription)} ({subscription.get('id')})")

            if not dry_run:
                created = len(diff.missing)
                failed = await _create_missing(manager, diff.missing, pco_url)
                failures += failed
                changes += created - failed
                for subscription in diff.extra:
                    try:
                        await manager.delete_pco_webhook(subscription["id"])
                        changes += 1
                        print(f"  ✓ Deleted {_subscription_name(subscription)}")
                    except SubscriptionError as e:
                        failures += 1
                        print(f"  ✗ Failed to delete {subscription.get('id')}: {e}")
        except SubscriptionError as e:
            failures += 1
            print(f"  ✗ Error checking PCO webhooks: {e}")

        print()
        print("Checking Cloudflare Stream webhook...")
        print("-" * 40)
        try:
            current = await manager.get_cloudflare_webhook()
            current_url = (current or {}).get("notificationUrl") or ""
            if current_url == cloudflare_url:
                print("  ✓ Cloudflare webhook correctly configured")
            else:
                if current_url:
                    print("  ⚠ Cloudflare webhook URL mismatch")
                    print(f"    Current:  {current_url}")
                else:
                    print("  ⚠ No Cloudflare webhook configured")
                if not dry_run:
                    result = await manager.set_cloudflare_webhook(cloudflare_url)
                    changes += 1
                    print(f"  ✓ Webhook set to {cloudflare_url}")
                    _print_secret(result)
        except SubscriptionError as e:
            failures += 1
            print(f"  ✗ Error checking Cloudflare webhook: {e}")

    print()
    if dry_run:
        print("[DRY RUN] No changes made")
    elif failures:
        print(f"⚠️  Completed with {failures} error(s)")
    elif changes:
        print("✓ Webhooks configured successfully (changes made)")
    else:
        print("✓ All webhooks verified (no changes needed)")
    return failures


async def cmd_list(manager: SubscriptionManager | None = None) -> None:
    """Print the current registrations on both platforms."""
    manager = manager or SubscriptionManager()
    async with manager:
        print("Planning Center subscriptions:")
        try:
            webhooks = await manager.list_pco_webhooks()
            if not webhooks:
                print("  (none)")
            for webhook in webhooks:
                attributes = webhook.get("attributes") or {}
                state = "active" if attributes.get("active") else "inactive"
                print(
                    f"  {webhook.get('id'):<12} {attributes.get('name', ''):<45}"
                    f" {state:<9} {attributes.get('url', '')}"
                )
        except SubscriptionError as e:
            print(f"  ✗ Error: {e}")

        print()
        print("Cloudflare Stream webhook:")
        try:
            result = await manager.get_cloudflare_webhook()
            print(f"  {(result or {}).get('notificationUrl') or '(none)'}")
        except SubscriptionError as e:
            print(f"  ✗ Error: {e}")


async def cmd_teardown(
    domains: list[str], dry_run: bool, manager: SubscriptionManager | None = None
) -> int:
    """
    Remove registrations pointing at the given receiver domains.

    Returns:
        Number of Planning Center subscriptions removed
    """
    if dry_run:
        for domain in domains:
            print(f"[DRY RUN] Would remove webhooks pointing at {domain}")
        return 0

    removed = 0
    manager = manager or SubscriptionManager()
    async with manager:
        for domain in domains:
            try:
                count = await manager.delete_pco_webhooks_matching(domain)
                removed += count
                print(f"✓ Removed {count} Planning Center subscriptions for {domain}")
            except SubscriptionError as e:
                print(f"✗ Planning Center error for {domain}: {e}")

        try:
            current = await manager.get_cloudflare_webhook()
            current_url = (current or {}).get("notificationUrl") or ""
            if any(domain in current_url for domain in domains):
                await manager.delete_cloudflare_webhook()
                print(f"✓ Removed Cloudflare Stream webhook ({current_url})")
            else:
                print("→ Cloudflare Stream webhook does not point at these domains")
        except SubscriptionError as e:
            print(f"✗ Cloudflare error: {e}")

    return removed


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Manage webhook subscriptions for the sync receiver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command")

    setup_parser = subparsers.add_parser("setup", help="Register webhook URLs")
    setup_parser.add_argument("--stage", choices=sorted(WEBHOOK_DOMAINS), default="dev")
    setup_parser.add_argument("--dry-run", action="store_true")

    verify_parser = subparsers.add_parser(
        "verify", help="Reconcile registrations with the expected set"
    )
    verify_parser.add_argument("--stage", choices=sorted(WEBHOOK_DOMAINS), default="prod")
    verify_parser.add_argument("--dry-run", action="store_true", help="Report drift only")

    subparsers.add_parser("list", help="List current registrations")

    teardown_parser = subparsers.add_parser("teardown", help="Remove webhook URLs")
    target = teardown_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--stage", choices=sorted(WEBHOOK_DOMAINS))
    target.add_argument("--all", action="store_true", help="Remove for all stages")
    teardown_parser.add_argument("--dry-run", action="store_true")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "setup":
        print(f"Stage: {args.stage}")
        failures = asyncio.run(cmd_setup(WEBHOOK_DOMAINS[args.stage], args.dry_run))
        if failures:
            sys.exit(1)
    elif args.command == "verify":
        print(f"Stage: {args.stage}")
        failures = asyncio.run(cmd_verify(WEBHOOK_DOMAINS[args.stage], args.dry_run))
        if failures:
            sys.exit(1)
    elif args.command == "list":
        asyncio.run(cmd_list())
    elif args.command == "teardown":
        domains = list(WEBHOOK_DOMAINS.values()) if args.all else [WEBHOOK_DOMAINS[args.stage]]
        asyncio.run(cmd_teardown(domains, args.dry_run))


if __name__ == "__main__":
    main()
