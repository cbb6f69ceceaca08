"""
iCal Generator

Store bookings -> VCALENDAR text.

- a feed never contains bookings of its own target platform
  (it would re-import them) nor cancelled bookings
- all-day events: DTSTART/DTEND as VALUE=DATE, DTEND exclusive (departure day)
- escaping and line folding are done by icalendar
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from icalendar import Calendar, Event

from openpro_sync.domain.models.local_booking import LocalBooking, BookingPlatform

PRODID = "-//openpro-sync//iCal export//FR"
UID_DOMAIN = "openpro-sync"


def _platform_value(platform: Union[BookingPlatform, str]) -> str:
    return platform.value if isinstance(platform, BookingPlatform) else str(platform)


def _utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def booking_uid(booking: LocalBooking) -> str:
    """Reference when there is one, otherwise derived from the internal id."""
    if booking.reference:
        return booking.reference
    return f"booking-{booking.id}@{UID_DOMAIN}"


def format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return f"{int(amount)}€"
    return f"{amount:.2f}€"


def build_description(booking: LocalBooking) -> str:
    lines = []
    if booking.client_name:
        lines.append(f"Client: {booking.client_name}")
    if booking.client_email:
        lines.append(f"Email: {booking.client_email}")
    if booking.client_phone:
        lines.append(f"Téléphone: {booking.client_phone}")
    if booking.persons:
        lines.append(f"Personnes: {booking.persons}")
    if booking.total_amount is not None:
        lines.append(f"Montant: {format_amount(booking.total_amount)}")
    return "\n".join(lines)


def is_exportable(booking: LocalBooking, target_platform: Union[BookingPlatform, str]) -> bool:
    if booking.platform == _platform_value(target_platform):
        return False
    return not booking.is_cancelled


def build_event(booking: LocalBooking) -> Event:
    event = Event()
    event.add("uid", booking_uid(booking))
    event.add("dtstart", booking.arrival_date)
    event.add("dtend", booking.departure_date)
    event.add("summary", booking.client_name or f"Réservation {booking.id}")

    description = build_description(booking)
    if description:
        event.add("description", description)

    event.add("status", "CONFIRMED")
    event.add("dtstamp", _utc(booking.updated_at or booking.created_at))
    if booking.created_at is not None:
        event.add("created", _utc(booking.created_at))
    if booking.updated_at is not None:
        event.add("last-modified", _utc(booking.updated_at))
    return event


def generate_ical(
    bookings: Iterable[LocalBooking],
    target_platform: Union[BookingPlatform, str],
    *,
    calendar_name: Optional[str] = None,
) -> str:
    """
    Args:
        bookings: candidate bookings (any platform, any status)
        target_platform: platform that will consume this feed
        calendar_name: optional X-WR-CALNAME

    Returns:
        the serialized VCALENDAR (CRLF line endings, folded at 75 octets)
    """
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    if calendar_name:
        cal.add("x-wr-calname", calendar_name)

    selected = [b for b in bookings if is_exportable(b, target_platform)]
    selected.sort(key=lambda b: (b.arrival_date, b.departure_date, booking_uid(b)))
    for booking in selected:
        cal.add_component(build_event(booking))

    return cal.to_ical().decode("utf-8")
