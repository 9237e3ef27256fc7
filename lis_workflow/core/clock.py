"""
Server clock helpers

Timestamps are naive UTC so they compare cleanly after a round trip
through SQLite, which drops tzinfo.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def next_version_timestamp(previous: Optional[datetime]) -> datetime:
    """Return a timestamp strictly greater than ``previous``."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def to_token(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
