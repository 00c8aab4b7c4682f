"""
Timestamp normalization helpers.

Every instant that reaches the store is a timezone-aware UTC datetime and is
serialized in one canonical form, e.g. ``2024-01-15T10:30:00.000Z``, so that
equality queries never depend on how the offset was written.
"""
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from ..exceptions import ValidationError


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime in the canonical millisecond UTC form."""
    value = ensure_utc(value)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(raw: Any) -> datetime:
    """
    Parse a raw timestamp into an aware UTC datetime.

    Accepts datetime objects, ISO-8601 and other dateutil-parsable strings, and
    POSIX epoch seconds.

    Raises:
        ValidationError: If the value cannot be interpreted as an instant
    """
    if isinstance(raw, datetime):
        return ensure_utc(raw)

    if isinstance(raw, bool) or raw is None:
        raise ValidationError(f"Invalid timestamp format: {raw!r}")

    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(raw, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValidationError(f"Invalid timestamp format: {e}", {"timestamp": raw})

    if isinstance(raw, str) and raw.strip():
        try:
            return ensure_utc(date_parser.isoparse(raw.strip()))
        except ValueError:
            pass
        try:
            return ensure_utc(date_parser.parse(raw.strip()))
        except (ValueError, OverflowError) as e:
            raise ValidationError(f"Invalid timestamp format: {e}", {"timestamp": raw})

    raise ValidationError(f"Invalid timestamp format: {raw!r}")


def normalize_timestamp(raw: Any) -> str:
    """Parse and format a raw timestamp in canonical form."""
    return format_timestamp(parse_timestamp(raw))
