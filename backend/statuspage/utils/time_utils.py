"""Timestamp helpers.

All stored timestamps are naive UTC, matching the DateTime columns.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
