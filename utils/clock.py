# utils/clock.py
from datetime import datetime, timezone

__all__ = ["now_utc", "as_utc"]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    # Treat naive datetimes (SQLite, MySQL DATETIME) as UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
