"""
Inventory Repository

Per-date pricing points and stock points.
Upserts are read-then-write without a transaction wrapper; two concurrent
writers on the same key can race.
"""
from __future__ import annotations

from datetime import date
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from openpro_sync.domain.models.inventory import PricingPoint, StockPoint

PRICING_FIELDS = ("price", "min_stay", "max_stay", "arrival_allowed", "departure_allowed")


class InventoryRepository:
    def __init__(self, db: Session):
        self.db = db

    # --- pricing ---

    def get_pricing(self, accommodation_id: str, rate_plan_id: str, day: date) -> Optional[PricingPoint]:
        stmt = select(PricingPoint).where(
            PricingPoint.accommodation_id == accommodation_id,
            PricingPoint.rate_plan_id == rate_plan_id,
            PricingPoint.day == day,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def upsert_pricing(
        self,
        accommodation_id: str,
        rate_plan_id: str,
        day: date,
        **values,
    ) -> PricingPoint:
        """
        Only the fields passed in values are written; the others keep their
        stored value (or stay NULL on insert).
        """
        unknown = set(values) - set(PRICING_FIELDS)
        if unknown:
            raise TypeError(f"Unknown pricing fields: {sorted(unknown)}")

        point = self.get_pricing(accommodation_id, rate_plan_id, day)
        if point is None:
            point = PricingPoint(
                accommodation_id=accommodation_id,
                rate_plan_id=rate_plan_id,
                day=day,
                **values,
            )
            self.db.add(point)
        else:
            for key, value in values.items():
                setattr(point, key, value)
        self.db.flush()
        return point

    def list_pricing(
        self,
        accommodation_id: str,
        start: date,
        end: date,
        *,
        rate_plan_id: Optional[str] = None,
    ) -> Sequence[PricingPoint]:
        """Pricing points with start <= day <= end, ordered by day."""
        stmt = select(PricingPoint).where(
            PricingPoint.accommodation_id == accommodation_id,
            PricingPoint.day >= start,
            PricingPoint.day <= end,
        )
        if rate_plan_id:
            stmt = stmt.where(PricingPoint.rate_plan_id == rate_plan_id)
        stmt = stmt.order_by(PricingPoint.day, PricingPoint.rate_plan_id)
        return self.db.execute(stmt).scalars().all()

    # --- stock ---

    def upsert_stock(self, accommodation_id: str, day: date, stock: int) -> StockPoint:
        stmt = select(StockPoint).where(
            StockPoint.accommodation_id == accommodation_id,
            StockPoint.day == day,
        )
        point = self.db.execute(stmt).scalar_one_or_none()
        if point is None:
            point = StockPoint(accommodation_id=accommodation_id, day=day, stock=stock)
            self.db.add(point)
        else:
            point.stock = stock
        self.db.flush()
        return point

    def list_stock(self, accommodation_id: str, start: date, end: date) -> Sequence[StockPoint]:
        stmt = (
            select(StockPoint)
            .where(
                StockPoint.accommodation_id == accommodation_id,
                StockPoint.day >= start,
                StockPoint.day <= end,
            )
            .order_by(StockPoint.day)
        )
        return self.db.execute(stmt).scalars().all()
