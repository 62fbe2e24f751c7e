"""
Utility functions for the outreach sequencer.

Includes:
- UTC datetime helpers
- Short identifiers for log prefixes
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:
    """Return the current UTC time as a **naive** datetime.

    Scheduling columns are ``TIMESTAMP WITHOUT TIME ZONE``, so every
    comparison against them must also be naive-UTC.
    """
    return utc_now().replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def short_id(value: str, length: int = 8) -> str:
    """Shorten a UUID string for log prefixes."""
    return (value or "")[:length]
