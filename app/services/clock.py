"""Wall-clock helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def today() -> date:
    """Return the current UTC calendar date."""
    return utcnow().date()


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite.

    Parameters
    ----------
    value : datetime
        Datetime loaded from the database.

    Returns
    -------
    datetime
        Timezone-aware datetime.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
