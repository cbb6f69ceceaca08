"""
RatePlan Repository

Rate plans and their accommodation links.
External ids are written back with compare-and-set so that a duplicate or
concurrent provisioning run never overwrites an id that is already there.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from openpro_sync.core.errors import NotFoundError
from openpro_sync.domain.models.inventory import PricingPoint
from openpro_sync.domain.models.rate_plan import RatePlan, AccommodationRatePlanLink


class RatePlanRepository:
    def __init__(self, session: Session):
        self.session = session

    # --- rate plans ---

    def get(self, rate_plan_id: str) -> Optional[RatePlan]:
        return self.session.get(RatePlan, rate_plan_id)

    def get_or_raise(self, rate_plan_id: str) -> RatePlan:
        plan = self.get(rate_plan_id)
        if plan is None:
            raise NotFoundError("RatePlan", rate_plan_id)
        return plan

    def list_all(self) -> Sequence[RatePlan]:
        stmt = select(RatePlan).order_by(RatePlan.display_order, RatePlan.external_id, RatePlan.id)
        return self.session.execute(stmt).scalars().all()

    def list_unprovisioned(self) -> Sequence[RatePlan]:
        """Rate plans that do not exist upstream yet."""
        stmt = (
            select(RatePlan)
            .where(RatePlan.external_id.is_(None))
            .order_by(RatePlan.display_order, RatePlan.id)
        )
        return self.session.execute(stmt).scalars().all()

    def create(
        self,
        *,
        label: Any = None,
        description: Any = None,
        display_order: Optional[int] = None,
        external_id: Optional[int] = None,
    ) -> RatePlan:
        plan = RatePlan(
            label=label,
            description=description,
            display_order=display_order,
            external_id=external_id,
        )
        self.session.add(plan)
        self.session.flush()
        return plan

    def set_external_id_if_null(self, rate_plan_id: str, external_id: int) -> bool:
        """
        Write the OpenPro id back only while the column is still NULL.

        Returns:
            True if this call assigned the id, False if it was already set
        """
        self.session.flush()
        result = self.session.execute(
            update(RatePlan)
            .where(RatePlan.id == rate_plan_id, RatePlan.external_id.is_(None))
            .values(external_id=external_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False

        self.session.execute(
            update(AccommodationRatePlanLink)
            .where(AccommodationRatePlanLink.rate_plan_id == rate_plan_id)
            .values(rate_plan_external_id=external_id)
            .execution_options(synchronize_session=False)
        )
        self.session.flush()
        self.session.expire_all()
        return True

    def delete(self, rate_plan_id: str) -> bool:
        """Delete a plan with its links and pricing points."""
        self.session.execute(delete(PricingPoint).where(PricingPoint.rate_plan_id == rate_plan_id))
        self.session.execute(
            delete(AccommodationRatePlanLink).where(AccommodationRatePlanLink.rate_plan_id == rate_plan_id)
        )
        result = self.session.execute(delete(RatePlan).where(RatePlan.id == rate_plan_id))
        self.session.flush()
        return result.rowcount > 0

    # --- links ---

    def get_link(self, accommodation_id: str, rate_plan_id: str) -> Optional[AccommodationRatePlanLink]:
        stmt = select(AccommodationRatePlanLink).where(
            AccommodationRatePlanLink.accommodation_id == accommodation_id,
            AccommodationRatePlanLink.rate_plan_id == rate_plan_id,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def link(self, accommodation_id: str, rate_plan_id: str) -> AccommodationRatePlanLink:
        """Idempotent: returns the existing link when there is one."""
        existing = self.get_link(accommodation_id, rate_plan_id)
        if existing is not None:
            return existing

        plan = self.get_or_raise(rate_plan_id)
        link = AccommodationRatePlanLink(
            accommodation_id=accommodation_id,
            rate_plan_id=rate_plan_id,
            rate_plan_external_id=plan.external_id,
        )
        self.session.add(link)
        self.session.flush()
        return link

    def unlink(self, accommodation_id: str, rate_plan_id: str) -> None:
        """Remove the link and the pricing points that depended on it."""
        self.session.execute(
            delete(PricingPoint).where(
                PricingPoint.accommodation_id == accommodation_id,
                PricingPoint.rate_plan_id == rate_plan_id,
            )
        )
        self.session.execute(
            delete(AccommodationRatePlanLink).where(
                AccommodationRatePlanLink.accommodation_id == accommodation_id,
                AccommodationRatePlanLink.rate_plan_id == rate_plan_id,
            )
        )
        self.session.flush()

    def list_links(self, accommodation_id: Optional[str] = None) -> Sequence[AccommodationRatePlanLink]:
        stmt = select(AccommodationRatePlanLink)
        if accommodation_id:
            stmt = stmt.where(AccommodationRatePlanLink.accommodation_id == accommodation_id)
        stmt = stmt.order_by(AccommodationRatePlanLink.accommodation_id, AccommodationRatePlanLink.created_at)
        return self.session.execute(stmt).scalars().all()

    def list_for_accommodation(self, accommodation_id: str) -> Sequence[RatePlan]:
        stmt = (
            select(RatePlan)
            .join(AccommodationRatePlanLink, AccommodationRatePlanLink.rate_plan_id == RatePlan.id)
            .where(AccommodationRatePlanLink.accommodation_id == accommodation_id)
            .order_by(RatePlan.display_order, RatePlan.external_id, RatePlan.id)
        )
        return self.session.execute(stmt).scalars().all()
