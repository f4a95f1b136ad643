from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value: str) -> datetime:
    """Parse an ISO date or datetime string into an aware UTC datetime.

    A bare date ("2024-01-15") means midnight UTC of that day. Offsets
    ("Z", "+02:00") are converted to UTC.
    """
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(value))


def end_of_day(value: datetime) -> datetime:
    """Last millisecond of the UTC day containing ``value``."""
    return as_utc(value).replace(hour=23, minute=59, second=59, microsecond=999000)
