"""
Accommodation: a bookable unit within the supplier's property

- id: internal, store-generated, stable
- external ids per platform live in accommodation_external_ids
  and are filled in lazily as upstream links are discovered
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from openpro_sync.db.base import Base
from openpro_sync.domain.models._ids import new_id
from openpro_sync.domain.models.local_booking import BookingPlatform


class Accommodation(Base):
    __tablename__ = "accommodations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    external_id_rows: Mapped[list["AccommodationExternalId"]] = relationship(
        back_populates="accommodation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def external_ids(self) -> dict[str, str]:
        """platform -> external id"""
        return {row.platform: row.external_id for row in self.external_id_rows}

    @property
    def openpro_id(self) -> Optional[int]:
        """OpenPro accommodation id, when present and numeric."""
        raw = self.external_ids.get(BookingPlatform.OPENPRO.value)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def __repr__(self) -> str:
        return f"<Accommodation id={self.id} name={self.name!r} ids={self.external_ids}>"


class AccommodationExternalId(Base):
    __tablename__ = "accommodation_external_ids"
    __table_args__ = (
        UniqueConstraint("accommodation_id", "platform", name="uq_accommodation_external_ids_platform"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    accommodation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("accommodations.id"), nullable=False, index=True
    )
    # BookingPlatform value ("OpenPro", "Booking.com", ...)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow
    )

    accommodation: Mapped[Accommodation] = relationship(back_populates="external_id_rows")

    def __repr__(self) -> str:
        return f"<AccommodationExternalId {self.accommodation_id} {self.platform}={self.external_id}>"
