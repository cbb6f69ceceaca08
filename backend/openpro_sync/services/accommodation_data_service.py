"""
Accommodation Data Service

Per-date pricing / stock held in the store (the source of truth), and the
full export of that data to OpenPro as compacted periods.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from openpro_sync.adapters.openpro_client import OpenProClient
from openpro_sync.adapters.openpro_payloads import (
    UpstreamRate,
    UpstreamStockDay,
    build_stock_payload,
    build_tarif_modif,
    normalize_rates,
    normalize_stock,
)
from openpro_sync.core.errors import (
    ConflictError,
    OperationCancelledError,
    ValidationError,
    check_cancelled,
)
from openpro_sync.repositories.accommodation_repository import AccommodationRepository
from openpro_sync.repositories.inventory_repository import InventoryRepository, PRICING_FIELDS
from openpro_sync.repositories.rate_plan_repository import RatePlanRepository
from openpro_sync.services.period_compactor import DailyValues, compact_periods
from openpro_sync.services.sync_warnings import SyncWarnings

logger = logging.getLogger(__name__)


@dataclass
class AccommodationExportResult:
    accommodation_id: str
    exported_rate_plans: list[str] = field(default_factory=list)
    skipped_rate_plans: list[str] = field(default_factory=list)
    failed_rate_plans: list[str] = field(default_factory=list)
    periods_sent: int = 0
    stock_periods_sent: int = 0
    stock_failed: bool = False


def build_rates_payload(rate_plan_external_id: int, days: Sequence[DailyValues]) -> dict[str, Any]:
    """Stored days of one rate plan -> RequeteTarifModif body (compacted periods)."""
    return {
        "tarifs": [
            build_tarif_modif(
                rate_plan_external_id=rate_plan_external_id,
                start=p.start,
                end=p.end,
                values=p.values,
            )
            for p in compact_periods(days, PRICING_FIELDS)
        ]
    }


class AccommodationDataService:
    def __init__(
        self,
        db: Session,
        client: OpenProClient,
        *,
        supplier_id: int,
        horizon_days: int = 365,
    ):
        self.db = db
        self.client = client
        self.supplier_id = supplier_id
        self.horizon_days = horizon_days
        self.accommodations = AccommodationRepository(db)
        self.rate_plans = RatePlanRepository(db)
        self.inventory = InventoryRepository(db)

    # ==========================================================
    # Store side
    # ==========================================================

    def save_pricing(self, accommodation_id: str, rate_plan_id: str, day: date, **values: Any):
        """
        Upsert one pricing point. Only the given fields are written.

        Raises:
            NotFoundError: unknown accommodation or rate plan
            ValidationError: negative price or stay below 1
        """
        self.accommodations.get_or_raise(accommodation_id)
        self.rate_plans.get_or_raise(rate_plan_id)

        price = values.get("price")
        if price is not None and price < 0:
            raise ValidationError(f"Price must be >= 0, got {price}")
        for key in ("min_stay", "max_stay"):
            if values.get(key) is not None and values[key] < 1:
                raise ValidationError(f"{key} must be >= 1, got {values[key]}")

        return self.inventory.upsert_pricing(accommodation_id, rate_plan_id, day, **values)

    def save_stock(self, accommodation_id: str, day: date, stock: int):
        self.accommodations.get_or_raise(accommodation_id)
        if stock < 0:
            raise ValidationError(f"Stock must be >= 0, got {stock}")
        return self.inventory.upsert_stock(accommodation_id, day, stock)

    def load_accommodation_data(self, accommodation_id: str, start: date, end: date) -> dict[str, Any]:
        """
        Returns:
            {
              "pricing": {rate_plan_id: [DailyValues, ...]},   # sorted by day
              "stock": [DailyValues(day, {"stock": n}), ...],
            }
        """
        if end < start:
            raise ValidationError(f"Range end {end} is before start {start}")
        self.accommodations.get_or_raise(accommodation_id)

        pricing: dict[str, list[DailyValues]] = {}
        for point in self.inventory.list_pricing(accommodation_id, start, end):
            pricing.setdefault(point.rate_plan_id, []).append(
                DailyValues(day=point.day, values={f: getattr(point, f) for f in PRICING_FIELDS})
            )
        for days in pricing.values():
            days.sort(key=lambda d: d.day)

        stock = [
            DailyValues(day=point.day, values={"stock": point.stock})
            for point in self.inventory.list_stock(accommodation_id, start, end)
        ]
        return {"pricing": pricing, "stock": stock}

    async def load_upstream_data(
        self, accommodation_id: str, start: date, end: date
    ) -> tuple[list[UpstreamRate], list[UpstreamStockDay]]:
        """
        What OpenPro currently holds for the range, read-only. Used to check
        an export against the store; nothing is written back.

        Raises:
            ValidationError: end before start
            NotFoundError: unknown accommodation
            ConflictError: the accommodation has no OpenPro id
            UpstreamError: OpenPro call failed
        """
        if end < start:
            raise ValidationError(f"Range end {end} is before start {start}")
        accommodation = self.accommodations.get_or_raise(accommodation_id)
        if accommodation.openpro_id is None:
            raise ConflictError(f"Accommodation {accommodation.id} has no OpenPro id")

        rates = normalize_rates(await self.client.get_rates(
            self.supplier_id, accommodation.openpro_id, start=start.isoformat(), end=end.isoformat()
        ))
        stock = normalize_stock(await self.client.get_stock(
            self.supplier_id, accommodation.openpro_id, start=start.isoformat(), end=end.isoformat()
        ))
        return rates, stock

    # ==========================================================
    # Export
    # ==========================================================

    def _warn(self, warnings: Optional[SyncWarnings], type: str, message: str, **ids) -> None:
        if warnings is not None:
            warnings.add(type, message, **ids)

    async def export_accommodation_data(
        self,
        accommodation_id: str,
        *,
        today: Optional[date] = None,
        warnings: Optional[SyncWarnings] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AccommodationExportResult:
        """
        Push today .. today + horizon to OpenPro: one set_rates call per linked
        rate plan, then one set_stock call. A failing rate plan is recorded
        and the others are still exported.

        Raises:
            NotFoundError: unknown accommodation
            ConflictError: the accommodation has no OpenPro id
        """
        accommodation = self.accommodations.get_or_raise(accommodation_id)
        openpro_id = accommodation.openpro_id
        if openpro_id is None:
            raise ConflictError(f"Accommodation {accommodation.id} has no OpenPro id")

        start = today or date.today()
        end = start + timedelta(days=self.horizon_days)
        data = self.load_accommodation_data(accommodation.id, start, end)
        result = AccommodationExportResult(accommodation_id=accommodation.id)

        for plan in self.rate_plans.list_for_accommodation(accommodation.id):
            check_cancelled(cancel)
            days = data["pricing"].get(plan.id, [])
            if not days:
                continue

            if plan.external_id is None:
                result.skipped_rate_plans.append(plan.id)
                self._warn(
                    warnings,
                    "rate_plan_not_provisioned",
                    f"Rate plan {plan.id} has no OpenPro id, pricing of accommodation {accommodation.id} not exported",
                    accommodation_id=accommodation.id,
                    rate_plan_id=plan.id,
                )
                continue

            payload = build_rates_payload(plan.external_id, days)
            try:
                await self.client.set_rates(self.supplier_id, openpro_id, payload)
            except OperationCancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"EXPORT: Failed rate plan {plan.external_id} for accommodation {accommodation.id}: {e}"
                )
                result.failed_rate_plans.append(plan.id)
                self._warn(
                    warnings,
                    "export_rates_failed",
                    f"Export of rate plan {plan.external_id} failed for accommodation {accommodation.id}: {e}",
                    accommodation_id=accommodation.id,
                    rate_plan_id=plan.id,
                )
                continue

            result.exported_rate_plans.append(plan.id)
            result.periods_sent += len(payload["tarifs"])
            logger.info(
                f"EXPORT: rate plan {plan.external_id} -> accommodation {openpro_id}, {len(payload['tarifs'])} period(s)"
            )

        check_cancelled(cancel)
        if data["stock"]:
            stock_periods = compact_periods(data["stock"], ("stock",))
            payload = build_stock_payload((p.start, p.end, p.values.get("stock", 0)) for p in stock_periods)
            try:
                await self.client.set_stock(self.supplier_id, openpro_id, payload)
                result.stock_periods_sent = len(stock_periods)
            except OperationCancelledError:
                raise
            except Exception as e:
                logger.error(f"EXPORT: Failed stock for accommodation {accommodation.id}: {e}")
                result.stock_failed = True
                self._warn(
                    warnings,
                    "export_stock_failed",
                    f"Stock export failed for accommodation {accommodation.id}: {e}",
                    accommodation_id=accommodation.id,
                )

        return result
