"""
Utility functions shared across the service.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Current instant as a naive UTC datetime.

    All timestamps are stored naive-UTC so SQLite and PostgreSQL
    round-trip the same value.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
