"""
Local Booking Service

Bookings created in this system (platform "Directe").
Deleting a booking invalidates the supplier iCal cache.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from openpro_sync.core.errors import ValidationError
from openpro_sync.domain.models.local_booking import LocalBooking, BookingPlatform, BookingStatus
from openpro_sync.repositories.accommodation_repository import AccommodationRepository
from openpro_sync.repositories.local_booking_repository import LocalBookingRepository
from openpro_sync.services.ical_cache_service import IcalCacheService

logger = logging.getLogger(__name__)

CREATABLE_STATUSES = {BookingStatus.QUOTE, BookingStatus.CONFIRMED, BookingStatus.PAID}


@dataclass
class NewLocalBooking:
    accommodation_id: str
    arrival_date: date
    departure_date: date
    client_last_name: Optional[str] = None
    client_first_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    persons: int = 2
    total_amount: Optional[float] = None
    reference: Optional[str] = None
    status: BookingStatus = BookingStatus.QUOTE


class LocalBookingService:
    def __init__(self, db: Session, *, supplier_id: int):
        self.db = db
        self.supplier_id = supplier_id
        self.accommodations = AccommodationRepository(db)
        self.bookings = LocalBookingRepository(db)
        self.cache = IcalCacheService(db)

    def create(self, data: NewLocalBooking) -> LocalBooking:
        """
        Raises:
            ValidationError: departure not after arrival, persons < 1,
                negative amount, non-creatable status
            NotFoundError: unknown accommodation
        """
        if data.departure_date <= data.arrival_date:
            raise ValidationError(
                f"Departure {data.departure_date} must be after arrival {data.arrival_date}"
            )
        if data.persons < 1:
            raise ValidationError(f"persons must be >= 1, got {data.persons}")
        if data.total_amount is not None and data.total_amount < 0:
            raise ValidationError(f"total_amount must be >= 0, got {data.total_amount}")
        if data.status not in CREATABLE_STATUSES:
            raise ValidationError(f"A booking cannot be created with status {data.status.value}")

        accommodation = self.accommodations.get_or_raise(data.accommodation_id)
        booking = self.bookings.create(
            supplier_id=self.supplier_id,
            accommodation_id=accommodation.id,
            arrival_date=data.arrival_date,
            departure_date=data.departure_date,
            platform=BookingPlatform.DIRECT.value,
            status=data.status.value,
            client_last_name=data.client_last_name,
            client_first_name=data.client_first_name,
            client_email=data.client_email,
            client_phone=data.client_phone,
            persons=data.persons,
            total_amount=data.total_amount,
            reference=data.reference,
        )
        self.cache.invalidate(self.supplier_id)
        logger.info(
            f"LOCAL_BOOKING: created {booking.id} accommodation={accommodation.id} "
            f"{booking.arrival_date}->{booking.departure_date}"
        )
        return booking

    def cancel(self, booking_id: str) -> LocalBooking:
        booking = self.bookings.get_or_raise(booking_id)
        if booking.is_cancelled:
            return booking
        self.bookings.set_status(booking, BookingStatus.CANCELLED)
        self.cache.invalidate(booking.supplier_id)
        logger.info(f"LOCAL_BOOKING: cancelled {booking.id}")
        return booking

    def delete(self, booking_id: str) -> None:
        """User-initiated removal; never used by the sync passes."""
        booking = self.bookings.get_or_raise(booking_id)
        supplier_id = booking.supplier_id
        self.bookings.delete(booking)
        self.cache.invalidate(supplier_id)
        logger.info(f"LOCAL_BOOKING: deleted {booking_id}")
