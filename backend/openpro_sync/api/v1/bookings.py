"""
Bookings API

Merged booking view (store + OpenPro), local booking create / cancel / delete
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from openpro_sync.adapters.openpro_client import OpenProClient
from openpro_sync.api.deps import get_client
from openpro_sync.api.v1.schemas.booking import (
    BookingListResponse,
    BookingViewRead,
    LocalBookingCreate,
    LocalBookingRead,
)
from openpro_sync.core.config import settings
from openpro_sync.db.session import get_db
from openpro_sync.services.booking_reconciliation import BookingReconciliationService
from openpro_sync.services.local_booking_service import LocalBookingService, NewLocalBooking

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    *,
    db: Session = Depends(get_db),
    client: OpenProClient = Depends(get_client),
    accommodation_id: Optional[str] = None,
) -> BookingListResponse:
    service = BookingReconciliationService(db, client, supplier_id=settings.SUPPLIER_ID)
    if accommodation_id:
        result = await service.load_bookings_for_accommodation(accommodation_id)
    else:
        result = await service.load_all_bookings()
    db.commit()

    return BookingListResponse(
        bookings=[BookingViewRead.from_view(v) for v in result.views],
        ambiguous_keys=[f"{a}/{arr.isoformat()}/{dep.isoformat()}" for a, arr, dep in result.ambiguous_keys],
    )


@router.post("", response_model=LocalBookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    *,
    db: Session = Depends(get_db),
    data: LocalBookingCreate,
) -> LocalBookingRead:
    service = LocalBookingService(db, supplier_id=settings.SUPPLIER_ID)
    booking = service.create(NewLocalBooking(**data.model_dump()))
    db.commit()
    db.refresh(booking)
    return LocalBookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=LocalBookingRead)
def cancel_booking(
    *,
    db: Session = Depends(get_db),
    booking_id: str,
) -> LocalBookingRead:
    service = LocalBookingService(db, supplier_id=settings.SUPPLIER_ID)
    booking = service.cancel(booking_id)
    db.commit()
    db.refresh(booking)
    return LocalBookingRead.model_validate(booking)


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(
    *,
    db: Session = Depends(get_db),
    booking_id: str,
) -> None:
    service = LocalBookingService(db, supplier_id=settings.SUPPLIER_ID)
    service.delete(booking_id)
    db.commit()
