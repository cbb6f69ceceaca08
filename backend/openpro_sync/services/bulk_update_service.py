"""
Bulk Update Service

Calendar edits (price / minimum stay / arrival allowed on many dates at once)
-> store pricing points -> OpenPro tarif periods.

Requests reference rate plans by internal id. A rate plan that has not been
provisioned upstream yet cannot be priced: that is an ordering problem and
is raised as ConflictError, never skipped.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from openpro_sync.adapters.openpro_client import OpenProClient
from openpro_sync.core.errors import ConflictError, ValidationError, check_cancelled
from openpro_sync.domain.models.rate_plan import RatePlan
from openpro_sync.repositories.accommodation_repository import AccommodationRepository
from openpro_sync.repositories.inventory_repository import InventoryRepository, PRICING_FIELDS
from openpro_sync.repositories.rate_plan_repository import RatePlanRepository
from openpro_sync.services.accommodation_data_service import build_rates_payload
from openpro_sync.services.period_compactor import DailyValues

logger = logging.getLogger(__name__)

@dataclass
class BulkDateUpdate:
    day: date
    rate_plan_id: Optional[str] = None
    price: Optional[float] = None
    min_stay: Optional[int] = None
    arrival_allowed: Optional[bool] = None

    def edited_values(self) -> dict[str, Any]:
        values = {
            "price": self.price,
            "min_stay": self.min_stay,
            "arrival_allowed": self.arrival_allowed,
        }
        return {k: v for k, v in values.items() if v is not None}


@dataclass
class BulkAccommodationUpdate:
    accommodation_id: str
    dates: list[BulkDateUpdate] = field(default_factory=list)


@dataclass
class BulkUpdateResult:
    saved_points: int = 0
    pushed_accommodations: list[str] = field(default_factory=list)
    not_pushed_accommodations: list[str] = field(default_factory=list)   # no OpenPro id
    periods_sent: int = 0


class BulkUpdateService:
    def __init__(self, db: Session, client: OpenProClient, *, supplier_id: int):
        self.db = db
        self.client = client
        self.supplier_id = supplier_id
        self.accommodations = AccommodationRepository(db)
        self.rate_plans = RatePlanRepository(db)
        self.inventory = InventoryRepository(db)

    def _resolve_plan(self, accommodation_id: str, rate_plan_id: str) -> RatePlan:
        plan = self.rate_plans.get_or_raise(rate_plan_id)
        if plan.external_id is None:
            raise ConflictError(
                f"Rate plan {plan.id} is not provisioned in OpenPro yet, it cannot be priced"
            )
        if self.rate_plans.get_link(accommodation_id, plan.id) is None:
            raise ConflictError(
                f"Rate plan {plan.id} is not linked to accommodation {accommodation_id}"
            )
        return plan

    async def apply(
        self,
        updates: Sequence[BulkAccommodationUpdate],
        *,
        push: bool = True,
        cancel: Optional[asyncio.Event] = None,
    ) -> BulkUpdateResult:
        """
        Save every edited date, then push each accommodation's edited
        rate plans upstream. Fails on the first error.

        Raises:
            NotFoundError: unknown accommodation / rate plan
            ValidationError: edit without rate plan, negative price, stay < 1
            ConflictError: rate plan not provisioned or not linked
            UpstreamError: OpenPro rejected the push
        """
        result = BulkUpdateResult()
        touched: dict[str, dict[str, set[date]]] = {}

        for update in updates:
            check_cancelled(cancel)
            accommodation = self.accommodations.get_or_raise(update.accommodation_id)
            per_plan: dict[str, set[date]] = defaultdict(set)

            for item in sorted(update.dates, key=lambda d: d.day):
                values = item.edited_values()
                if not values:
                    continue
                if not item.rate_plan_id:
                    raise ValidationError(f"Edit on {item.day} has no rate plan")
                if item.price is not None and item.price < 0:
                    raise ValidationError(f"Price must be >= 0 on {item.day}")
                if item.min_stay is not None and item.min_stay < 1:
                    raise ValidationError(f"Minimum stay must be >= 1 on {item.day}")

                plan = self._resolve_plan(accommodation.id, item.rate_plan_id)
                self.inventory.upsert_pricing(accommodation.id, plan.id, item.day, **values)
                per_plan[plan.id].add(item.day)
                result.saved_points += 1

            if per_plan:
                touched[accommodation.id] = per_plan

        if not push:
            return result

        for accommodation_id, per_plan in touched.items():
            check_cancelled(cancel)
            accommodation = self.accommodations.get_or_raise(accommodation_id)
            if accommodation.openpro_id is None:
                logger.info(f"BULK_UPDATE: accommodation {accommodation_id} has no OpenPro id, saved locally only")
                result.not_pushed_accommodations.append(accommodation_id)
                continue

            tarifs: list[dict[str, Any]] = []
            for rate_plan_id, days in per_plan.items():
                plan = self.rate_plans.get_or_raise(rate_plan_id)
                # push the full stored state of each edited day
                stored = [
                    DailyValues(day=p.day, values={f: getattr(p, f) for f in PRICING_FIELDS})
                    for p in self.inventory.list_pricing(
                        accommodation_id, min(days), max(days), rate_plan_id=rate_plan_id
                    )
                    if p.day in days
                ]
                tarifs.extend(build_rates_payload(plan.external_id, stored)["tarifs"])

            if not tarifs:
                continue
            await self.client.set_rates(self.supplier_id, accommodation.openpro_id, {"tarifs": tarifs})
            result.pushed_accommodations.append(accommodation_id)
            result.periods_sent += len(tarifs)
            logger.info(
                f"BULK_UPDATE: accommodation {accommodation_id} -> {len(tarifs)} period(s) pushed"
            )

        return result
