"""
RatePlan / AccommodationRatePlanLink

Every other table references a rate plan by its internal id, never by the
OpenPro id: the plan may be created locally before it exists upstream.
external_id is written at most once, by provisioning, while it is still NULL.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import String, Integer, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from openpro_sync.db.base import Base
from openpro_sync.domain.models._ids import new_id


class RatePlan(Base):
    __tablename__ = "rate_plans"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)

    # OpenPro idTypeTarif, NULL until provisioned
    external_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, unique=True)

    # multilingual: [{"langue": "fr", "texte": "..."}] or a plain string
    label: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    description: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    display_order: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<RatePlan id={self.id} external_id={self.external_id}>"


class AccommodationRatePlanLink(Base):
    """
    "this rate plan applies to this accommodation"

    rate_plan_external_id is a denormalized copy of RatePlan.external_id
    for fast lookups; it is refreshed on write-back.
    """

    __tablename__ = "accommodation_rate_plan_links"
    __table_args__ = (
        UniqueConstraint("accommodation_id", "rate_plan_id", name="uq_accommodation_rate_plan_links_pair"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    accommodation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("accommodations.id"), nullable=False, index=True
    )
    rate_plan_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("rate_plans.id"), nullable=False, index=True
    )
    rate_plan_external_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<AccommodationRatePlanLink accommodation={self.accommodation_id} "
            f"rate_plan={self.rate_plan_id} external={self.rate_plan_external_id}>"
        )
