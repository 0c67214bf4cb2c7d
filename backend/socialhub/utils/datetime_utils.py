"""DateTime utilities for consistent UTC timestamp handling.

All timestamps are stored as offset-naive UTC so they compare cleanly with
``TIMESTAMP WITHOUT TIME ZONE`` columns on PostgreSQL and with SQLite.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC datetime without timezone info (offset-naive).

    Returns:
        Current UTC datetime without timezone info

    Example:
        >>> now = utc_now()
        >>> print(now.tzinfo)
        None
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_timestamp(seconds: float) -> datetime:
    """Convert a POSIX timestamp (e.g. a JWT ``exp`` claim) to naive UTC."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


# Lambda version for SQLAlchemy default/onupdate parameters
utc_now_lambda = lambda: datetime.now(timezone.utc).replace(tzinfo=None)
