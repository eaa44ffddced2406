"""
Small helpers shared by models and services.
"""
import re
from datetime import datetime, timezone
from typing import Optional

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,50}$")


def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime.

    All timestamp columns are stored without a time zone so the same value
    compares cleanly on PostgreSQL and SQLite.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_username(username) -> Optional[str]:
    """Return the trimmed username if it is valid, otherwise None."""
    if not username or not isinstance(username, str):
        return None
    trimmed = username.strip()
    if not USERNAME_PATTERN.match(trimmed):
        return None
    return trimmed
