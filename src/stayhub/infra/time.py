"""Time utilities for consistent timestamp handling."""

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def utc_yesterday() -> date:
    """Return yesterday's UTC calendar date.

    Bookings whose end_date is after this day still count as active, which
    keeps a stay visible on its own checkout day.
    """
    return utc_now().date() - timedelta(days=1)
