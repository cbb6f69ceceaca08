"""
Startup Sync Service

Reconciles the store against OpenPro, once at process start and then on the
scheduler interval. Five sequential passes:

1. verify accommodations    (missing upstream -> warning, never created)
2. provision rate plans     (create upstream, write the id back only while NULL)
3. provision links          (create missing accommodation <-> rate plan links)
4. sync OpenPro bookings    (insert / cancel absent / derive Past)
5. export pricing and stock (compacted periods, per accommodation)

A pass that raises is logged and recorded as a warning; the next pass still
runs. Per-item failures inside a pass are warnings too. Only a cancel
request stops the run.

Each pass commits its own work so that a later failure (and its rollback)
never discards ids already written back.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from openpro_sync.adapters.openpro_client import OpenProClient
from openpro_sync.adapters.openpro_payloads import (
    booking_records,
    booking_reference,
    build_rate_plan_payload,
    normalize_accommodations,
    normalize_booking,
    normalize_created_rate_plan_id,
    normalize_rate_plan_links,
)
from openpro_sync.core.errors import OperationCancelledError, check_cancelled
from openpro_sync.domain.models.local_booking import BookingPlatform, BookingStatus
from openpro_sync.repositories.accommodation_repository import AccommodationRepository
from openpro_sync.repositories.local_booking_repository import LocalBookingRepository
from openpro_sync.repositories.rate_plan_repository import RatePlanRepository
from openpro_sync.services.accommodation_data_service import AccommodationDataService
from openpro_sync.services.ical_cache_service import IcalCacheService
from openpro_sync.services.sync_warnings import SyncWarnings

logger = logging.getLogger(__name__)

# upstream bookings handled by the booking pass
NATIVE_PLATFORMS = {BookingPlatform.OPENPRO, BookingPlatform.UNKNOWN}


@dataclass
class BookingSyncResult:
    inserted: int = 0
    kept_cancelled: int = 0
    cancelled_upstream: int = 0
    cancelled_absent: int = 0
    marked_past: int = 0
    skipped_unknown_accommodation: int = 0
    skipped_unparseable: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.cancelled_upstream or self.cancelled_absent or self.marked_past)


@dataclass
class StartupSyncReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    passes: dict[str, str] = field(default_factory=dict)      # pass name -> "ok" | "failed"
    provisioned_rate_plans: list[str] = field(default_factory=list)
    created_links: list[tuple[str, str]] = field(default_factory=list)
    bookings: Optional[BookingSyncResult] = None
    exported_accommodations: list[str] = field(default_factory=list)
    warnings: int = 0

    @property
    def failed_passes(self) -> list[str]:
        return [name for name, state in self.passes.items() if state != "ok"]


class StartupSyncService:
    def __init__(
        self,
        db: Session,
        client: OpenProClient,
        *,
        supplier_id: int,
        warnings: SyncWarnings,
        horizon_days: int = 365,
    ):
        self.db = db
        self.client = client
        self.supplier_id = supplier_id
        self.warnings = warnings
        self.accommodations = AccommodationRepository(db)
        self.rate_plans = RatePlanRepository(db)
        self.bookings = LocalBookingRepository(db)
        self.cache = IcalCacheService(db)
        self.data_service = AccommodationDataService(
            db, client, supplier_id=supplier_id, horizon_days=horizon_days
        )

    # ==========================================================
    # Runner
    # ==========================================================

    async def run(
        self,
        *,
        cancel: Optional[asyncio.Event] = None,
        today: Optional[date] = None,
    ) -> StartupSyncReport:
        today = today or date.today()
        report = StartupSyncReport(started_at=datetime.utcnow())
        warnings_before = len(self.warnings)

        passes: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            ("verify_accommodations", lambda: self.verify_accommodations(cancel=cancel)),
            ("provision_rate_plans", lambda: self._provision_rate_plans_into(report, cancel)),
            ("provision_links", lambda: self._provision_links_into(report, cancel)),
            ("sync_bookings", lambda: self._sync_bookings_into(report, today, cancel)),
            ("export_data", lambda: self._export_into(report, today, cancel)),
        ]

        logger.info("STARTUP_SYNC: " + "=" * 50)
        logger.info(f"STARTUP_SYNC: started for supplier {self.supplier_id}")

        for name, run_pass in passes:
            check_cancelled(cancel)
            try:
                await run_pass()
                self.db.commit()
                report.passes[name] = "ok"
            except OperationCancelledError:
                self.db.rollback()
                logger.warning(f"STARTUP_SYNC: cancelled during {name}")
                raise
            except Exception as e:
                self.db.rollback()
                logger.exception(f"STARTUP_SYNC: pass {name} failed: {e}")
                self.warnings.add("sync_pass_failed", f"Pass {name} failed: {e}")
                report.passes[name] = "failed"

        report.finished_at = datetime.utcnow()
        report.warnings = len(self.warnings) - warnings_before
        logger.info(
            f"STARTUP_SYNC: finished, passes={report.passes}, new warnings={report.warnings}"
        )
        logger.info("STARTUP_SYNC: " + "=" * 50)
        return report

    async def _provision_rate_plans_into(self, report, cancel) -> None:
        report.provisioned_rate_plans = await self.provision_rate_plans(cancel=cancel)

    async def _provision_links_into(self, report, cancel) -> None:
        report.created_links = await self.provision_links(cancel=cancel)

    async def _sync_bookings_into(self, report, today, cancel) -> None:
        report.bookings = await self.sync_bookings(today=today, cancel=cancel)

    async def _export_into(self, report, today, cancel) -> None:
        report.exported_accommodations = await self.export_all(today=today, cancel=cancel)

    # ==========================================================
    # 1. Accommodations
    # ==========================================================

    async def verify_accommodations(self, *, cancel: Optional[asyncio.Event] = None) -> list[str]:
        """
        Returns:
            ids of local accommodations whose OpenPro id is missing upstream
        """
        local = [
            a for a in self.accommodations.list_all()
            if BookingPlatform.OPENPRO.value in a.external_ids
        ]
        if not local:
            return []

        upstream_ids = {
            a.external_id for a in normalize_accommodations(
                await self.client.list_accommodations(self.supplier_id)
            )
        }

        missing: list[str] = []
        for accommodation in local:
            check_cancelled(cancel)
            raw_id = accommodation.external_ids[BookingPlatform.OPENPRO.value]
            openpro_id = accommodation.openpro_id
            if openpro_id is None:
                self.warnings.add(
                    "accommodation_invalid_openpro_id",
                    f"Accommodation {accommodation.name} has a non-numeric OpenPro id: {raw_id}",
                    accommodation_id=accommodation.id,
                )
                missing.append(accommodation.id)
            elif openpro_id not in upstream_ids:
                self.warnings.add(
                    "accommodation_missing_in_openpro",
                    f"Accommodation {accommodation.name} (ID OpenPro: {openpro_id}) does not exist in OpenPro",
                    accommodation_id=accommodation.id,
                )
                missing.append(accommodation.id)

        logger.info(f"STARTUP_SYNC: verified {len(local)} accommodation(s), {len(missing)} missing upstream")
        return missing

    # ==========================================================
    # 2. Rate plans
    # ==========================================================

    async def provision_rate_plans(self, *, cancel: Optional[asyncio.Event] = None) -> list[str]:
        """
        Create every rate plan whose external id is still NULL.

        Returns:
            ids of the rate plans this run provisioned
        """
        provisioned: list[str] = []
        for plan in self.rate_plans.list_unprovisioned():
            check_cancelled(cancel)
            plan_id = plan.id
            payload = build_rate_plan_payload(
                label=plan.label, description=plan.description, display_order=plan.display_order
            )
            try:
                response = await self.client.create_rate_plan(self.supplier_id, payload)
            except OperationCancelledError:
                raise
            except Exception as e:
                self.warnings.add(
                    "rate_plan_provisioning_failed",
                    f"Could not create rate plan {plan_id} in OpenPro: {e}",
                    rate_plan_id=plan_id,
                )
                continue

            external_id = normalize_created_rate_plan_id(response)
            if external_id is None:
                self.warnings.add(
                    "rate_plan_provisioning_failed",
                    f"OpenPro returned no id for rate plan {plan_id}",
                    rate_plan_id=plan_id,
                )
                continue

            if self.rate_plans.set_external_id_if_null(plan_id, external_id):
                # the write-back must survive a rollback of a later pass
                self.db.commit()
                provisioned.append(plan_id)
                logger.info(f"STARTUP_SYNC: rate plan {plan_id} -> OpenPro {external_id}")
            else:
                logger.warning(
                    f"STARTUP_SYNC: rate plan {plan_id} already had an OpenPro id, "
                    f"{external_id} not written back"
                )
        return provisioned

    # ==========================================================
    # 3. Links
    # ==========================================================

    async def provision_links(self, *, cancel: Optional[asyncio.Event] = None) -> list[tuple[str, str]]:
        """
        Returns:
            (accommodation_id, rate_plan_id) pairs created upstream by this run
        """
        created: list[tuple[str, str]] = []
        for accommodation in self.accommodations.list_all():
            check_cancelled(cancel)
            openpro_id = accommodation.openpro_id
            links = self.rate_plans.list_links(accommodation.id)
            if openpro_id is None or not links:
                continue

            try:
                upstream_linked = normalize_rate_plan_links(
                    await self.client.list_rate_plan_links(self.supplier_id, openpro_id)
                )
            except OperationCancelledError:
                raise
            except Exception as e:
                self.warnings.add(
                    "link_listing_failed",
                    f"Could not list rate plan links of accommodation {accommodation.id}: {e}",
                    accommodation_id=accommodation.id,
                )
                continue

            for link in links:
                check_cancelled(cancel)
                plan = self.rate_plans.get(link.rate_plan_id)
                if plan is None:
                    continue
                if plan.external_id is None:
                    self.warnings.add(
                        "link_rate_plan_not_provisioned",
                        f"Rate plan {plan.id} has no OpenPro id, link to accommodation {accommodation.id} skipped",
                        accommodation_id=accommodation.id,
                        rate_plan_id=plan.id,
                    )
                    continue
                if plan.external_id in upstream_linked:
                    continue

                try:
                    await self.client.create_rate_plan_link(self.supplier_id, openpro_id, plan.external_id)
                except OperationCancelledError:
                    raise
                except Exception as e:
                    self.warnings.add(
                        "link_provisioning_failed",
                        f"Could not link rate plan {plan.external_id} to accommodation {openpro_id}: {e}",
                        accommodation_id=accommodation.id,
                        rate_plan_id=plan.id,
                    )
                    continue

                created.append((accommodation.id, plan.id))
                logger.info(f"STARTUP_SYNC: linked rate plan {plan.external_id} to accommodation {openpro_id}")
        return created

    # ==========================================================
    # 4. Bookings
    # ==========================================================

    async def sync_bookings(
        self,
        *,
        today: Optional[date] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> BookingSyncResult:
        """
        - upstream booking absent from the store -> inserted
          (Cancelled if the dossier is cancelled upstream)
        - present and Cancelled -> left Cancelled
        - present, dates differ -> store dates kept
        - store OpenPro booking absent upstream -> Cancelled; presence is
          keyed on the raw dossier id, readable or not
        - any booking with departure < today -> Past, unless Cancelled
        - any change invalidates the cached supplier feed
        """
        today = today or date.today()
        result = BookingSyncResult()
        tag = BookingPlatform.OPENPRO.value

        records = booking_records(await self.client.list_bookings(self.supplier_id))

        seen_refs: set[str] = set()
        upstream = []
        for record in records:
            reference = booking_reference(record)
            if reference is not None:
                seen_refs.add(reference)
            item = normalize_booking(record)
            if item is None:
                result.skipped_unparseable += 1
                self.warnings.add(
                    "booking_unparseable",
                    f"OpenPro booking {reference} could not be read (stay dates missing or malformed), "
                    f"left as is",
                )
                continue
            if item.platform in NATIVE_PLATFORMS and item.reference:
                upstream.append(item)
        now = datetime.utcnow()

        for item in upstream:
            check_cancelled(cancel)
            existing = self.bookings.find_by_reference(platform=tag, reference=item.reference)

            if existing is None:
                accommodation = None
                if item.accommodation_external_id is not None:
                    accommodation = self.accommodations.find_by_external_id(
                        platform=tag, external_id=item.accommodation_external_id
                    )
                if accommodation is None:
                    self.warnings.add(
                        "booking_accommodation_unknown",
                        f"OpenPro booking {item.reference} references unknown accommodation "
                        f"{item.accommodation_external_id}, skipped",
                    )
                    result.skipped_unknown_accommodation += 1
                    continue
                if item.departure_date <= item.arrival_date:
                    self.warnings.add(
                        "booking_invalid_dates",
                        f"OpenPro booking {item.reference} has invalid stay "
                        f"{item.arrival_date}->{item.departure_date}, skipped",
                        accommodation_id=accommodation.id,
                    )
                    continue

                self.bookings.create(
                    supplier_id=self.supplier_id,
                    accommodation_id=accommodation.id,
                    arrival_date=item.arrival_date,
                    departure_date=item.departure_date,
                    platform=tag,
                    status=(BookingStatus.CANCELLED if item.cancelled else BookingStatus.CONFIRMED).value,
                    client_last_name=item.client_last_name,
                    client_first_name=item.client_first_name,
                    client_email=item.client_email,
                    client_phone=item.client_phone,
                    persons=item.persons if item.persons and item.persons > 0 else 2,
                    total_amount=item.total_amount,
                    reference=item.reference,
                    synced_at=now,
                )
                result.inserted += 1
                continue

            if existing.is_cancelled:
                result.kept_cancelled += 1
                continue

            # store dates win; only cancellation flows down
            if item.cancelled:
                self.bookings.set_status(existing, BookingStatus.CANCELLED)
                result.cancelled_upstream += 1
            if existing.synced_at is None:
                self.bookings.mark_synced([existing.id], at=now)

        for booking in self.bookings.list_by_platform(tag):
            check_cancelled(cancel)
            if booking.is_cancelled or booking.reference in seen_refs:
                continue
            self.bookings.set_status(booking, BookingStatus.CANCELLED)
            result.cancelled_absent += 1
            logger.info(f"STARTUP_SYNC: booking {booking.reference} absent from OpenPro, cancelled")

        result.marked_past = self.bookings.mark_past(today)
        if result.changed:
            self.cache.invalidate(self.supplier_id)

        logger.info(
            f"STARTUP_SYNC: bookings inserted={result.inserted} kept_cancelled={result.kept_cancelled} "
            f"cancelled_upstream={result.cancelled_upstream} cancelled_absent={result.cancelled_absent} "
            f"past={result.marked_past} unparseable={result.skipped_unparseable}"
        )
        return result

    # ==========================================================
    # 5. Export
    # ==========================================================

    async def export_all(
        self,
        *,
        today: Optional[date] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> list[str]:
        exported: list[str] = []
        for accommodation in self.accommodations.list_all():
            check_cancelled(cancel)
            if accommodation.openpro_id is None:
                continue
            try:
                await self.data_service.export_accommodation_data(
                    accommodation.id, today=today, warnings=self.warnings, cancel=cancel
                )
            except OperationCancelledError:
                raise
            except Exception as e:
                logger.error(f"STARTUP_SYNC: export failed for accommodation {accommodation.id}: {e}")
                self.warnings.add(
                    "export_failed",
                    f"Export failed for accommodation {accommodation.id}: {e}",
                    accommodation_id=accommodation.id,
                )
                continue
            exported.append(accommodation.id)
        return exported
