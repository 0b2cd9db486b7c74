"""Shared utility functions for services and blueprints.

utcnow:          timezone-aware "now" used for every engine timestamp
as_utc:          normalise datetimes read back naive (SQLite) to UTC
parse_datetime:  ISO string → aware datetime (raises ValueError on bad input)
acting_user:     acting user id from the X-User request header
"""
import logging
from datetime import date, datetime, timezone

from flask import request

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return *value* as an aware UTC datetime; None passes through.

    SQLite drops tzinfo on DateTime(timezone=True) columns, so anything
    read back naive is taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value):
    """Parse an ISO date/datetime string into an aware UTC datetime.

    Returns None for empty input; raises ValueError for anything that
    cannot be parsed.  A bare date means midnight UTC of that day.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        raise ValueError(f"Invalid datetime: {value!r}") from None


def acting_user(default: str = "system") -> str:
    """Acting user id supplied by the fronting auth layer."""
    return (request.headers.get("X-User") or "").strip() or default
