"""
LocalBooking: a booking row held in the store

- platform "Directe" for rows created locally; other platform tags are only
  written by the sync passes (OpenPro mirror, iCal imports)
- synced_at NULL means "not yet confirmed upstream"
- CANCELLED is absorbing for automated passes; PAST is derived from the
  departure date and never overrides CANCELLED
"""
from __future__ import annotations

from datetime import datetime, date
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Float,
    Date,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from openpro_sync.db.base import Base
from openpro_sync.domain.models._ids import new_id


class BookingPlatform(str, Enum):
    """Origin of a booking"""
    BOOKING_COM = "Booking.com"
    DIRECT = "Directe"
    OPENPRO = "OpenPro"
    XOTELIA = "Xotelia"
    UNKNOWN = "Unknown"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "BookingPlatform":
        """Map a free-form platform label (URL segment, config value) to a tag."""
        if not label:
            return cls.UNKNOWN
        for member in cls:
            if member.value.lower() == label.strip().lower():
                return member
        return cls.UNKNOWN


class BookingStatus(str, Enum):
    """Booking status"""
    QUOTE = "Quote"            # intent only, no deposit
    CONFIRMED = "Confirmed"    # deposit paid
    PAID = "Paid"              # fully paid
    CANCELLED = "Cancelled"    # absorbing
    PAST = "Past"              # departure date passed


class LocalBooking(Base):
    __tablename__ = "local_bookings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    supplier_id: Mapped[int] = mapped_column(Integer, nullable=False)
    accommodation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("accommodations.id"), nullable=False
    )

    arrival_date: Mapped[date] = mapped_column(Date, nullable=False)
    departure_date: Mapped[date] = mapped_column(Date, nullable=False)

    # client
    client_last_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    client_first_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    client_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    client_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    persons: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    total_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # OpenPro idDossier or iCal UID
    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    platform: Mapped[str] = mapped_column(
        String(32), nullable=False, default=BookingPlatform.DIRECT.value
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=BookingStatus.QUOTE.value
    )
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("departure_date > arrival_date", name="ck_local_bookings_dates"),
        CheckConstraint("persons > 0", name="ck_local_bookings_persons"),
        Index("idx_local_bookings_accommodation", "supplier_id", "accommodation_id"),
        Index("idx_local_bookings_dates", "arrival_date", "departure_date"),
        Index("idx_local_bookings_reference_platform", "reference", "platform"),
        Index("idx_local_bookings_synced_at", "synced_at"),
    )

    @property
    def client_name(self) -> Optional[str]:
        parts = [p for p in (self.client_first_name, self.client_last_name) if p]
        return " ".join(parts) if parts else None

    @property
    def is_cancelled(self) -> bool:
        return self.status == BookingStatus.CANCELLED.value

    def __repr__(self) -> str:
        return (
            f"<LocalBooking id={self.id} accommodation={self.accommodation_id} "
            f"{self.arrival_date}->{self.departure_date} "
            f"platform={self.platform} status={self.status}>"
        )
