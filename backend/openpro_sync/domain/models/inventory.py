"""
Per-date inventory

- PricingPoint: (accommodation, rate plan, day) -> price / stay rules
- StockPoint: (accommodation, day) -> available units

A missing row means "no data", not zero.
"""
from __future__ import annotations

from datetime import datetime, date
from typing import Optional

from sqlalchemy import String, Integer, Float, Boolean, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from openpro_sync.db.base import Base
from openpro_sync.domain.models._ids import new_id


class PricingPoint(Base):
    __tablename__ = "pricing_points"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    accommodation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("accommodations.id"), nullable=False
    )
    rate_plan_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("rate_plans.id"), nullable=False
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)

    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    min_stay: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_stay: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    arrival_allowed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    departure_allowed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_pricing_points_key", "accommodation_id", "rate_plan_id", "day", unique=True),
        Index("idx_pricing_points_accommodation_day", "accommodation_id", "day"),
    )

    def __repr__(self) -> str:
        return f"<PricingPoint {self.accommodation_id} {self.rate_plan_id} {self.day} price={self.price}>"


class StockPoint(Base):
    __tablename__ = "stock_points"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    accommodation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("accommodations.id"), nullable=False
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_stock_points_key", "accommodation_id", "day", unique=True),
    )

    def __repr__(self) -> str:
        return f"<StockPoint {self.accommodation_id} {self.day} stock={self.stock}>"
