"""
LocalBooking Repository

Rows are never deleted by the sync passes, only status-transitioned or
inserted. delete() exists for explicit, user-initiated removal.
"""
from __future__ import annotations

from datetime import datetime, date
from typing import Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from openpro_sync.core.errors import NotFoundError
from openpro_sync.domain.models.local_booking import LocalBooking, BookingStatus


class LocalBookingRepository:
    def __init__(self, db: Session):
        self.db = db

    # --- read ---

    def get(self, booking_id: str) -> Optional[LocalBooking]:
        return self.db.get(LocalBooking, booking_id)

    def get_or_raise(self, booking_id: str) -> LocalBooking:
        booking = self.get(booking_id)
        if booking is None:
            raise NotFoundError("LocalBooking", booking_id)
        return booking

    def list_all(self, *, supplier_id: Optional[int] = None) -> Sequence[LocalBooking]:
        stmt = select(LocalBooking)
        if supplier_id is not None:
            stmt = stmt.where(LocalBooking.supplier_id == supplier_id)
        stmt = stmt.order_by(LocalBooking.accommodation_id, LocalBooking.arrival_date, LocalBooking.created_at)
        return self.db.execute(stmt).scalars().all()

    def list_for_accommodation(
        self,
        accommodation_id: str,
        *,
        supplier_id: Optional[int] = None,
        platform: Optional[str] = None,
    ) -> Sequence[LocalBooking]:
        stmt = select(LocalBooking).where(LocalBooking.accommodation_id == accommodation_id)
        if supplier_id is not None:
            stmt = stmt.where(LocalBooking.supplier_id == supplier_id)
        if platform is not None:
            stmt = stmt.where(LocalBooking.platform == platform)
        stmt = stmt.order_by(LocalBooking.arrival_date, LocalBooking.created_at)
        return self.db.execute(stmt).scalars().all()

    def list_by_platform(self, platform: str) -> Sequence[LocalBooking]:
        stmt = (
            select(LocalBooking)
            .where(LocalBooking.platform == platform)
            .order_by(LocalBooking.arrival_date, LocalBooking.created_at)
        )
        return self.db.execute(stmt).scalars().all()

    def find_by_reference(
        self,
        *,
        platform: str,
        reference: str,
        accommodation_id: Optional[str] = None,
    ) -> Optional[LocalBooking]:
        stmt = select(LocalBooking).where(
            LocalBooking.platform == platform,
            LocalBooking.reference == reference,
        )
        if accommodation_id is not None:
            stmt = stmt.where(LocalBooking.accommodation_id == accommodation_id)
        return self.db.execute(stmt.order_by(LocalBooking.created_at)).scalars().first()

    # --- write ---

    def create(
        self,
        *,
        supplier_id: int,
        accommodation_id: str,
        arrival_date: date,
        departure_date: date,
        platform: str,
        status: str,
        client_last_name: Optional[str] = None,
        client_first_name: Optional[str] = None,
        client_email: Optional[str] = None,
        client_phone: Optional[str] = None,
        persons: int = 2,
        total_amount: Optional[float] = None,
        reference: Optional[str] = None,
        synced_at: Optional[datetime] = None,
    ) -> LocalBooking:
        booking = LocalBooking(
            supplier_id=supplier_id,
            accommodation_id=accommodation_id,
            arrival_date=arrival_date,
            departure_date=departure_date,
            platform=platform,
            status=status,
            client_last_name=client_last_name,
            client_first_name=client_first_name,
            client_email=client_email,
            client_phone=client_phone,
            persons=persons,
            total_amount=total_amount,
            reference=reference,
            synced_at=synced_at,
        )
        self.db.add(booking)
        self.db.flush()
        return booking

    def set_status(self, booking: LocalBooking, status: BookingStatus) -> LocalBooking:
        booking.status = status.value
        booking.updated_at = datetime.utcnow()
        self.db.flush()
        return booking

    def update_dates(self, booking: LocalBooking, arrival_date: date, departure_date: date) -> LocalBooking:
        booking.arrival_date = arrival_date
        booking.departure_date = departure_date
        booking.updated_at = datetime.utcnow()
        self.db.flush()
        return booking

    def mark_synced(self, booking_ids: Iterable[str], *, at: Optional[datetime] = None) -> int:
        """Set synced_at on rows where it is still NULL."""
        ids = list(booking_ids)
        if not ids:
            return 0
        self.db.flush()
        result = self.db.execute(
            update(LocalBooking)
            .where(LocalBooking.id.in_(ids), LocalBooking.synced_at.is_(None))
            .values(synced_at=at or datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()
        return result.rowcount

    def mark_past(self, today: date) -> int:
        """Departure before today -> PAST, except CANCELLED (absorbing) and rows already PAST."""
        self.db.flush()
        result = self.db.execute(
            update(LocalBooking)
            .where(
                LocalBooking.departure_date < today,
                LocalBooking.status.not_in([BookingStatus.CANCELLED.value, BookingStatus.PAST.value]),
            )
            .values(status=BookingStatus.PAST.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        self.db.flush()
        return result.rowcount

    def delete(self, booking: LocalBooking) -> None:
        self.db.delete(booking)
        self.db.flush()
