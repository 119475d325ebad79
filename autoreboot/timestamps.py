"""
Wire format for reference timestamps.

The reference endpoint answers with ISO-8601 UTC strings carrying
millisecond precision and a trailing "Z", e.g. "2024-05-01T12:00:00.123Z".
"""

from datetime import datetime, timezone


def format_timestamp(epoch_seconds: float) -> str:
    """Render epoch seconds as an ISO-8601 UTC string with milliseconds."""
    dt = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f"{dt.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> float:
    """
    Parse an ISO-8601 timestamp into epoch seconds.

    Accepts a "Z" suffix or an explicit UTC offset; naive values are taken
    as UTC.

    Raises:
        ValueError: if the value is not a string or not ISO-8601
    """
    if not isinstance(text, str):
        raise ValueError(f"timestamp must be a string, got {type(text).__name__}")

    value = text.strip()
    if not value:
        raise ValueError("empty timestamp")
    if value[-1] in ('Z', 'z'):
        value = value[:-1] + '+00:00'

    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
