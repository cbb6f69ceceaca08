from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from icalendar import Calendar

from openpro_sync.core.errors import IcalParseError

logger = logging.getLogger(__name__)

_DESCRIPTION_LINE = re.compile(r"^\s*([^:]+?)\s*:\s*(.*?)\s*$")


@dataclass
class IcalEvent:
    """One VEVENT, reduced to what the import needs."""
    uid: str
    start: date
    end: date
    summary: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return (self.status or "").upper() == "CANCELLED"

    def description_fields(self) -> dict[str, str]:
        """`Label: value` lines of DESCRIPTION, keyed by label."""
        fields: dict[str, str] = {}
        for line in (self.description or "").splitlines():
            match = _DESCRIPTION_LINE.match(line)
            if match and match.group(2):
                fields[match.group(1)] = match.group(2)
        return fields


def _to_date(dt) -> Optional[date]:
    """datetime or date -> date (time part dropped)"""
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.date()
    if isinstance(dt, date):
        return dt
    return None


def _event_date(prop, uid: str) -> Optional[date]:
    try:
        return _to_date(prop.dt)
    except (ValueError, AttributeError) as e:
        # icalendar keeps unreadable values as broken properties
        raise IcalParseError(f"Invalid date in VEVENT {uid}: {e}") from e


def _text(component, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    text = str(value)
    return text or None


def parse_ical(text: str) -> list[IcalEvent]:
    """
    Parse a VCALENDAR document.

    Folded lines are unfolded by icalendar; DTSTART/DTEND accept both
    VALUE=DATE and date-time forms. Events without UID, DTSTART or DTEND
    are skipped.

    Raises:
        IcalParseError: the text is not a VCALENDAR document, or an event
            carries an unreadable DTSTART / DTEND
    """
    if not text or not text.strip():
        raise IcalParseError("Empty iCal document")

    try:
        cal = Calendar.from_ical(text)
    except (ValueError, IndexError, KeyError) as e:
        raise IcalParseError(f"Invalid iCal document: {e}") from e

    if cal.name != "VCALENDAR":
        raise IcalParseError(f"Expected VCALENDAR, got {cal.name}")

    events: list[IcalEvent] = []
    for component in cal.walk("VEVENT"):
        uid = _text(component, "UID")
        dtstart = component.get("DTSTART")
        dtend = component.get("DTEND")
        if not uid or dtstart is None or dtend is None:
            logger.debug(f"ICAL_PARSER: skipping incomplete VEVENT uid={uid}")
            continue

        start = _event_date(dtstart, uid)
        end = _event_date(dtend, uid)
        if start is None or end is None:
            continue

        status = _text(component, "STATUS")
        events.append(IcalEvent(
            uid=uid,
            start=start,
            end=end,
            summary=_text(component, "SUMMARY"),
            description=_text(component, "DESCRIPTION"),
            status=status.upper() if status else None,
        ))

    return events
