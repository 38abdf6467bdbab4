"""Provide utility helpers for timestamps."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

# Clients stamp ``startTime`` as seconds since this instant.
SWIFT_REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=timezone.utc)


def swift_timestamp_to_datetime(value: float) -> datetime:
    """Convert a Swift timestamp (seconds since 2001-01-01 UTC) to a datetime."""
    return SWIFT_REFERENCE_DATE + timedelta(seconds=float(value))


def datetime_to_swift_timestamp(value: datetime) -> float:
    if value.tzinfo is None:
        # If a naive timestamp slips in, assume UTC.
        value = value.replace(tzinfo=timezone.utc)
    return (value - SWIFT_REFERENCE_DATE).total_seconds()


def swift_now() -> float:
    return datetime_to_swift_timestamp(datetime.now(timezone.utc))
