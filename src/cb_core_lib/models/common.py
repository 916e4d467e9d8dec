"""Common helpers shared by the CareBridge models.

- utc_now(): timezone-aware "now" used as the default for every instant field
- ensure_utc(): normalise an instant to an aware UTC datetime
- parse_utc_timestamp(): ISO 8601 string parsing
- new_id(): prefixed client-side identifiers for messages and schedules
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC (documents written by
    older clients carry naive values).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def new_id(prefix: str) -> str:
    """Generate a client-side identifier such as 'M-3f2a9c0d1e4b'."""
    return f"{prefix}-{uuid4().hex[:12]}"


def parse_utc_timestamp(timestamp_str: str) -> datetime:
    """Parse UTC timestamp string into timezone-aware datetime object.

    Handles:
    - '2025-10-17T04:02:59+00:00' (timezone-aware with offset)
    - '2025-10-17T04:02:59Z' (Zulu time suffix)
    - '2025-10-17T04:02:59' (naive, assumed UTC)

    Args:
        timestamp_str: UTC timestamp string

    Returns:
        datetime: Timezone-aware datetime object in UTC
    """
    if timestamp_str.endswith('Z'):
        dt = datetime.fromisoformat(timestamp_str[:-1])
        return ensure_utc(dt) if dt.tzinfo is None else dt.astimezone(timezone.utc)
    return ensure_utc(datetime.fromisoformat(timestamp_str))


# Storage documents use camelCase keys; Python attributes stay snake_case.
camel_alias = to_camel
