"""Timestamp parsing and formatting for backend payloads."""

from datetime import UTC, datetime

DISTANT_PAST = datetime.min.replace(tzinfo=UTC)

# ISO-8601 first, then common Mongo/Python ``str(datetime)`` shapes.
_ZONED_PATTERNS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S.%f%z",
    "%Y-%m-%d %H:%M:%S%z",
)
_LOCAL_PATTERNS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
)


def parse_server_timestamp(value: str | None) -> datetime | None:
    """Parse a backend timestamp; naive values are taken as local time."""
    if not value:
        return None
    text = value.strip()
    for pattern in _ZONED_PATTERNS:
        try:
            return datetime.strptime(text, pattern)
        except ValueError:
            continue
    for pattern in _LOCAL_PATTERNS:
        try:
            return datetime.strptime(text, pattern).astimezone()
        except ValueError:
            continue
    return None


def format_iso_timestamp(value: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond fraction and a Z suffix."""
    if value.tzinfo is None:
        value = value.astimezone()
    utc_value = value.astimezone(UTC)
    return utc_value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
