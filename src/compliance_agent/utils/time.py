"""Time utilities."""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def parse_date(value: str) -> date:
    """Parse an ISO-8601 calendar date, accepting full timestamps too."""
    if "T" in value or " " in value.strip():
        return parse_datetime(value).date()
    return date.fromisoformat(value)


def parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
