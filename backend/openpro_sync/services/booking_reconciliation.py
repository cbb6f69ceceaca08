"""
Booking Reconciliation

Merges store bookings with upstream (OpenPro) bookings into one view.

Precedence:
1. upstream Direct booking matching a local Direct row on
   (accommodation, arrival, departure) -> upstream version, not pending,
   not obsolete; the local row gets synced_at if it was NULL
2. upstream Direct booking without a local match -> obsolete
3. local Direct row without an upstream match -> pending iff synced_at is NULL
4. upstream non-Direct bookings pass through; local non-Direct rows are shown
   unless the same (platform, reference) came from upstream

Two local rows sharing the same (accommodation, arrival, departure) cannot be
told apart by this key. Such keys are reported in ambiguous_keys and
left unmerged.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from openpro_sync.adapters.openpro_client import OpenProClient
from openpro_sync.adapters.openpro_payloads import UpstreamBooking, normalize_bookings
from openpro_sync.domain.models.local_booking import LocalBooking, BookingPlatform, BookingStatus
from openpro_sync.repositories.accommodation_repository import AccommodationRepository
from openpro_sync.repositories.local_booking_repository import LocalBookingRepository

logger = logging.getLogger(__name__)

MatchKey = tuple[str, date, date]


@dataclass
class BookingView:
    """One row of the merged booking view."""
    accommodation_id: str
    arrival_date: date
    departure_date: date
    platform: str
    status: str
    booking_id: Optional[str] = None       # internal id when a store row backs this view
    reference: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    persons: Optional[int] = None
    total_amount: Optional[float] = None
    is_pending_sync: bool = False
    is_obsolete: bool = False
    source: str = "local"                  # "local" | "upstream"


@dataclass
class ReconciliationResult:
    views: list[BookingView] = field(default_factory=list)
    newly_synced_ids: list[str] = field(default_factory=list)
    ambiguous_keys: list[MatchKey] = field(default_factory=list)


# =====================================================================
# Pure merge
# =====================================================================

def _local_view(booking: LocalBooking, *, is_pending_sync: bool) -> BookingView:
    return BookingView(
        booking_id=booking.id,
        accommodation_id=booking.accommodation_id,
        arrival_date=booking.arrival_date,
        departure_date=booking.departure_date,
        platform=booking.platform,
        status=booking.status,
        reference=booking.reference,
        client_name=booking.client_name,
        client_email=booking.client_email,
        client_phone=booking.client_phone,
        persons=booking.persons,
        total_amount=booking.total_amount,
        is_pending_sync=is_pending_sync,
        is_obsolete=False,
        source="local",
    )


def _upstream_view(
    accommodation_id: str,
    upstream: UpstreamBooking,
    *,
    local: Optional[LocalBooking] = None,
    is_obsolete: bool = False,
) -> BookingView:
    if upstream.cancelled:
        status = BookingStatus.CANCELLED.value
    elif local is not None:
        status = local.status
    else:
        status = BookingStatus.CONFIRMED.value

    return BookingView(
        booking_id=local.id if local is not None else None,
        accommodation_id=accommodation_id,
        arrival_date=upstream.arrival_date,
        departure_date=upstream.departure_date,
        platform=upstream.platform.value,
        status=status,
        reference=upstream.reference or (local.reference if local is not None else None),
        client_name=upstream.client_name or (local.client_name if local is not None else None),
        client_email=upstream.client_email or (local.client_email if local is not None else None),
        client_phone=upstream.client_phone or (local.client_phone if local is not None else None),
        persons=upstream.persons if upstream.persons is not None else (local.persons if local is not None else None),
        total_amount=(
            upstream.total_amount
            if upstream.total_amount is not None
            else (local.total_amount if local is not None else None)
        ),
        is_pending_sync=False,
        is_obsolete=is_obsolete,
        source="upstream",
    )


def reconcile(
    accommodation_id: str,
    local_bookings: Iterable[LocalBooking],
    upstream_bookings: Iterable[UpstreamBooking],
) -> ReconciliationResult:
    """
    Merge one accommodation's store rows with its upstream bookings.

    Pure: nothing is written. The ids in newly_synced_ids are the local rows
    whose synced_at the caller must stamp.
    """
    result = ReconciliationResult()

    local_direct: dict[MatchKey, list[LocalBooking]] = defaultdict(list)
    local_other: list[LocalBooking] = []
    for booking in local_bookings:
        if booking.accommodation_id != accommodation_id:
            continue
        if booking.platform == BookingPlatform.DIRECT.value:
            key = (accommodation_id, booking.arrival_date, booking.departure_date)
            local_direct[key].append(booking)
        else:
            local_other.append(booking)

    ambiguous = {key for key, rows in local_direct.items() if len(rows) > 1}
    for key in sorted(ambiguous):
        logger.warning(
            f"RECONCILIATION: {len(local_direct[key])} local bookings share "
            f"accommodation={key[0]} {key[1]}->{key[2]}, left unmerged"
        )
    result.ambiguous_keys = sorted(ambiguous)

    matched_keys: set[MatchKey] = set()
    upstream_refs: set[tuple[str, str]] = set()

    for upstream in upstream_bookings:
        if upstream.platform != BookingPlatform.DIRECT:
            # rule 4: non-Direct upstream bookings pass through
            if upstream.reference:
                upstream_refs.add((upstream.platform.value, upstream.reference))
            result.views.append(_upstream_view(accommodation_id, upstream))
            continue

        key = (accommodation_id, upstream.arrival_date, upstream.departure_date)
        rows = local_direct.get(key, [])

        if key in ambiguous:
            result.views.append(_upstream_view(accommodation_id, upstream))
            continue

        if rows:
            # rule 1
            local = rows[0]
            matched_keys.add(key)
            if local.synced_at is None:
                result.newly_synced_ids.append(local.id)
            result.views.append(_upstream_view(accommodation_id, upstream, local=local))
        else:
            # rule 2
            result.views.append(_upstream_view(accommodation_id, upstream, is_obsolete=True))

    # rule 3
    for key, rows in local_direct.items():
        if key in matched_keys:
            continue
        for booking in rows:
            result.views.append(_local_view(booking, is_pending_sync=booking.synced_at is None))

    for booking in local_other:
        if booking.reference and (booking.platform, booking.reference) in upstream_refs:
            continue
        result.views.append(_local_view(booking, is_pending_sync=False))

    result.views.sort(key=lambda v: (v.arrival_date, v.departure_date, v.platform, v.booking_id or ""))
    return result


# =====================================================================
# Service (I/O around reconcile)
# =====================================================================

class BookingReconciliationService:
    def __init__(self, db: Session, client: OpenProClient, *, supplier_id: int):
        self.db = db
        self.client = client
        self.supplier_id = supplier_id
        self.accommodations = AccommodationRepository(db)
        self.bookings = LocalBookingRepository(db)

    async def _fetch_upstream(self) -> list[UpstreamBooking]:
        raw = await self.client.list_bookings(self.supplier_id)
        return normalize_bookings(raw)

    def _apply(self, result: ReconciliationResult) -> None:
        if result.newly_synced_ids:
            count = self.bookings.mark_synced(result.newly_synced_ids, at=datetime.utcnow())
            logger.info(f"RECONCILIATION: marked {count} booking(s) as synced")

    async def load_bookings_for_accommodation(self, accommodation_id: str) -> ReconciliationResult:
        accommodation = self.accommodations.get_or_raise(accommodation_id)
        local = self.bookings.list_for_accommodation(accommodation.id, supplier_id=self.supplier_id)

        upstream: Sequence[UpstreamBooking] = []
        if accommodation.openpro_id is not None:
            upstream = [
                b for b in await self._fetch_upstream()
                if b.accommodation_external_id == accommodation.openpro_id
            ]

        result = reconcile(accommodation.id, local, upstream)
        self._apply(result)
        return result

    async def load_all_bookings(self) -> ReconciliationResult:
        """Every accommodation of the supplier, with a single upstream call."""
        accommodations = self.accommodations.list_all()
        upstream_all = await self._fetch_upstream() if any(a.openpro_id is not None for a in accommodations) else []

        by_external: dict[int, list[UpstreamBooking]] = defaultdict(list)
        for booking in upstream_all:
            if booking.accommodation_external_id is not None:
                by_external[booking.accommodation_external_id].append(booking)

        merged = ReconciliationResult()
        for accommodation in accommodations:
            local = self.bookings.list_for_accommodation(accommodation.id, supplier_id=self.supplier_id)
            upstream = by_external.get(accommodation.openpro_id, []) if accommodation.openpro_id is not None else []
            partial = reconcile(accommodation.id, local, upstream)
            merged.views.extend(partial.views)
            merged.newly_synced_ids.extend(partial.newly_synced_ids)
            merged.ambiguous_keys.extend(partial.ambiguous_keys)

        self._apply(merged)
        return merged
