# backend/openpro_sync/api/v1/schemas/booking.py

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from openpro_sync.domain.models.local_booking import BookingStatus
from openpro_sync.services.booking_reconciliation import BookingView


class LocalBookingCreate(BaseModel):
    accommodation_id: str
    arrival_date: date
    departure_date: date
    client_last_name: Optional[str] = None
    client_first_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    persons: int = Field(2, description="Number of guests (>= 1)")
    total_amount: Optional[float] = None
    reference: Optional[str] = None
    status: BookingStatus = BookingStatus.QUOTE


class LocalBookingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    supplier_id: int
    accommodation_id: str
    arrival_date: date
    departure_date: date
    client_last_name: Optional[str] = None
    client_first_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    persons: int
    total_amount: Optional[float] = None
    reference: Optional[str] = None
    platform: str
    status: str
    synced_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class BookingViewRead(BaseModel):
    """
    One row of the merged (store + OpenPro) booking view.
    """

    model_config = ConfigDict(from_attributes=True)

    booking_id: Optional[str] = Field(None, description="Internal id when a store row backs this row")
    accommodation_id: str
    arrival_date: date
    departure_date: date
    platform: str
    status: str
    reference: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    persons: Optional[int] = None
    total_amount: Optional[float] = None
    is_pending_sync: bool
    is_obsolete: bool
    source: str

    @classmethod
    def from_view(cls, v: BookingView) -> "BookingViewRead":
        return cls.model_validate(v)


class BookingListResponse(BaseModel):
    bookings: list[BookingViewRead]
    ambiguous_keys: list[str] = Field(
        default_factory=list,
        description="accommodation/arrival/departure keys shared by several local bookings",
    )
