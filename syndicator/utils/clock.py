# syndicator/utils/clock.py

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Текущее время в UTC без tzinfo (так время хранится в БД)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
