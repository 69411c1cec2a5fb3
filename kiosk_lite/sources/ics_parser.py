"""ICS parsing for the calendar resource."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from icalendar import Calendar

from kiosk_lite.core.timezone_utils import to_local_iso

from .models import Event

logger = logging.getLogger(__name__)

# Events starting further back than this are dropped
PAST_EVENT_CUTOFF = datetime.timedelta(days=30)


class IcsParseError(ValueError):
    """The feed body is not a parseable iCalendar document."""


def _as_local_datetime(value: Any, tz: datetime.tzinfo) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value.replace(tzinfo=tz) if value.tzinfo is None else value.astimezone(tz)
    return datetime.datetime(value.year, value.month, value.day, tzinfo=tz)


def _optional_text(component: Any, key: str) -> Optional[str]:
    value = component.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_events(
    ics_content: str,
    tz: datetime.tzinfo,
    now: Optional[datetime.datetime] = None,
) -> list[Event]:
    """Parse VEVENTs from an ICS document.

    Args:
        ics_content: Raw iCalendar text
        tz: Timezone used to render start/end times
        now: Reference time for the past-event cutoff (defaults to current time)

    Returns:
        Events sorted by start time. Recurrence rules are not expanded.

    Raises:
        IcsParseError: if the document cannot be parsed
    """
    try:
        calendar = Calendar.from_ical(ics_content)
    except ValueError as exc:
        raise IcsParseError(f"Invalid ICS content: {exc}") from exc

    reference = now or datetime.datetime.now(tz)
    cutoff = reference - PAST_EVENT_CUTOFF

    parsed: list[tuple[datetime.datetime, Event]] = []
    skipped = 0

    for index, component in enumerate(calendar.walk("VEVENT")):
        dtstart = component.get("DTSTART")
        if dtstart is None:
            skipped += 1
            continue

        start_value = dtstart.dt
        all_day = not isinstance(start_value, datetime.datetime)
        start_local = _as_local_datetime(start_value, tz)
        if start_local < cutoff:
            skipped += 1
            continue

        end_iso: Optional[str] = None
        dtend = component.get("DTEND")
        duration = component.get("DURATION")
        if dtend is not None:
            end_iso = to_local_iso(dtend.dt, tz)
        elif duration is not None:
            end_iso = (start_local + duration.dt).isoformat()

        event = Event(
            id=_optional_text(component, "UID") or f"event-{index}",
            title=_optional_text(component, "SUMMARY") or "Untitled Event",
            start=start_local.isoformat(),
            end=end_iso,
            all_day=True if all_day else None,
            location=_optional_text(component, "LOCATION"),
            source_url=_optional_text(component, "URL"),
        )
        parsed.append((start_local, event))

    parsed.sort(key=lambda pair: pair[0])
    logger.debug("Parsed %d events (%d skipped)", len(parsed), skipped)
    return [event for _, event in parsed]
