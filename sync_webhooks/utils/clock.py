"""
Civil-time helpers for audit timestamps.

Audit records are stamped in a fixed civil time zone so that the
``received_at`` sort key and the ``date_partition`` match the local
calendar operators reason in. The zone is always passed explicitly; process
state such as ``TZ`` is never modified.
"""

import secrets
from datetime import datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo


@lru_cache(maxsize=8)
def civil_zone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for an IANA zone name (cached)."""
    return ZoneInfo(name)


def now_in_zone(zone_name: str) -> datetime:
    """Current time as an aware datetime in the given zone."""
    return datetime.now(civil_zone(zone_name))


def to_zone(moment: datetime, zone_name: str) -> datetime:
    """
    Convert a datetime to the given zone.

    Naive datetimes are taken to already be wall-clock time in that zone.
    """
    zone = civil_zone(zone_name)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=zone)
    return moment.astimezone(zone)


def iso_millis(moment: datetime) -> str:
    """ISO 8601 with millisecond precision and UTC offset."""
    return moment.isoformat(timespec="milliseconds")


def date_partition(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def readable_local(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S %Z")


def expiry_epoch(moment: datetime, days: int) -> int:
    """Epoch seconds ``days`` after ``moment`` (for DynamoDB TTL)."""
    return int((moment + timedelta(days=days)).timestamp())


def generate_sortable_id(moment: datetime) -> str:
    """
    Generate a sortable unique id with the receipt time embedded.

    Format: 12 hex digits of epoch milliseconds, a dash, 16 random hex
    digits. Lexicographic order follows receipt order at millisecond
    resolution.

    Args:
        moment: Receipt time

    Returns:
        Id such as ``019a3c4e5f60-9f86d081884c7d65``
    """
    millis = int(moment.timestamp() * 1000)
    return f"{millis:012x}-{secrets.token_hex(8)}"
