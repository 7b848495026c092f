from datetime import datetime, timezone


def utcnow() -> datetime:
    """Horodatage UTC naïf, format stocké en base."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def unix_seconds(value: datetime = None) -> int:
    value = value or utcnow()
    return int(value.replace(tzinfo=timezone.utc).timestamp())
