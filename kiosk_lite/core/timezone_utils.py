"""Clock and timezone helpers for kiosk_lite."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Toronto"

# Freezes the clock for manual testing, e.g. KIOSK_TEST_TIME=2025-10-27T08:20:00-04:00
TEST_TIME_ENV = "KIOSK_TEST_TIME"


def now_utc() -> datetime.datetime:
    """Return the current UTC time, honouring KIOSK_TEST_TIME when set."""
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is None:
                return dt.replace(tzinfo=datetime.timezone.utc)
            return dt.astimezone(datetime.timezone.utc)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

    return datetime.datetime.now(datetime.timezone.utc)


def epoch_seconds() -> float:
    """Wall clock in epoch seconds; the default clock for the cache store."""
    return now_utc().timestamp()


@lru_cache(maxsize=16)
def resolve_timezone(tz_name: str | None, fallback: str = DEFAULT_TIMEZONE) -> zoneinfo.ZoneInfo:
    """Return a ZoneInfo for ``tz_name``, falling back when it is missing or invalid."""
    if tz_name:
        try:
            return zoneinfo.ZoneInfo(tz_name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.warning("Invalid timezone %r, falling back to %r", tz_name, fallback)
    return zoneinfo.ZoneInfo(fallback)


def to_local_iso(dt: datetime.datetime | datetime.date, tz: datetime.tzinfo) -> str:
    """Render a datetime (or all-day date) as ISO 8601 in ``tz``.

    Naive datetimes are interpreted as already being in ``tz``; dates become
    local midnight.
    """
    if not isinstance(dt, datetime.datetime):
        dt = datetime.datetime(dt.year, dt.month, dt.day)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(tz).isoformat()
