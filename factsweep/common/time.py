"""Common time utilities."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def elapsed_seconds(start: dt.datetime, now: dt.datetime) -> float:
    """Return the seconds elapsed between two aware timestamps."""
    return (now - start).total_seconds()
