"""
iCal Service

Per-accommodation, per-platform calendar synchronization
- export: store bookings -> feed for one target platform
- import: remote feed -> store mutations (insert / date update / cancel)
- config CRUD (import URL, generated export URL)
- supplier-wide feed, cached with history
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Sequence, Union

import httpx
from sqlalchemy.orm import Session

from openpro_sync.core.errors import (
    NotFoundError,
    UpstreamError,
    ValidationError,
    OperationCancelledError,
    check_cancelled,
)
from openpro_sync.domain.models.ical import IcalSyncConfig
from openpro_sync.domain.models.local_booking import BookingPlatform, BookingStatus, LocalBooking
from openpro_sync.repositories.accommodation_repository import AccommodationRepository
from openpro_sync.repositories.ical_repository import IcalSyncConfigRepository
from openpro_sync.repositories.local_booking_repository import LocalBookingRepository
from openpro_sync.services.ical_cache_service import IcalCacheService, build_base_key
from openpro_sync.services.ical_generator import generate_ical
from openpro_sync.services.ical_parser import IcalEvent, parse_ical
from openpro_sync.services.sync_warnings import SyncWarnings

logger = logging.getLogger(__name__)


@dataclass
class IcalImportResult:
    """Import summary for one (accommodation, platform) feed"""
    accommodation_id: str
    platform: str
    events: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    cancelled: int = 0
    removed: int = 0           # absent from the feed -> cancelled
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.cancelled or self.removed)


@dataclass
class IcalSyncSummary:
    results: list[IcalImportResult] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)     # "accommodation_id/platform" -> message


def _platform_value(platform: Union[BookingPlatform, str]) -> str:
    if isinstance(platform, BookingPlatform):
        return platform.value
    resolved = BookingPlatform.from_label(platform)
    if resolved is BookingPlatform.UNKNOWN and platform.strip().lower() != "unknown":
        raise ValidationError(f"Unknown platform: {platform}")
    return resolved.value


def _amount(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    cleaned = text.replace("€", "").replace(" ", "").replace(",", ".")
    try:
        return float(cleaned)
    except ValueError:
        return None


def _client_from_event(event: IcalEvent) -> dict:
    """Client fields an imported booking can carry, read from SUMMARY / DESCRIPTION."""
    fields = event.description_fields()
    name = fields.get("Client") or event.summary
    first_name, last_name = None, None
    if name and not name.startswith("Réservation "):
        parts = name.split(" ", 1)
        if len(parts) == 2:
            first_name, last_name = parts
        else:
            last_name = parts[0]

    persons = None
    if fields.get("Personnes", "").isdigit():
        persons = int(fields["Personnes"])

    return {
        "client_first_name": first_name,
        "client_last_name": last_name,
        "client_email": fields.get("Email"),
        "client_phone": fields.get("Téléphone"),
        "persons": persons if persons and persons > 0 else 2,
        "total_amount": _amount(fields.get("Montant")),
    }


class IcalService:
    def __init__(
        self,
        db: Session,
        *,
        supplier_id: int,
        public_base_url: str = "",
        timeout: float = 10.0,
    ):
        self.db = db
        self.supplier_id = supplier_id
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout = timeout
        self.accommodations = AccommodationRepository(db)
        self.bookings = LocalBookingRepository(db)
        self.configs = IcalSyncConfigRepository(db)
        self.cache = IcalCacheService(db)

    # ==========================================================
    # Fetch
    # ==========================================================

    async def fetch_ical(self, url: str) -> str:
        """
        Raises:
            UpstreamError: timeout, transport error or non-2xx status
        """
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, timeout=self.timeout, follow_redirects=True)
                response.raise_for_status()
                return response.text
        except httpx.TimeoutException as e:
            logger.error(f"ICAL_SERVICE: Timeout fetching iCal: {url}")
            raise UpstreamError(f"Timeout fetching iCal feed: {url}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"ICAL_SERVICE: Failed to fetch iCal: {url}, status={e.response.status_code}")
            raise UpstreamError(
                f"iCal feed returned HTTP {e.response.status_code}: {url}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"ICAL_SERVICE: Failed to fetch iCal: {url}, error: {e}")
            raise UpstreamError(f"Failed to fetch iCal feed: {url}") from e

    # ==========================================================
    # Export
    # ==========================================================

    def export_url_for(self, accommodation_id: str, platform: str) -> str:
        return f"{self.public_base_url}/api/v1/ical/export/{accommodation_id}/{platform}"

    def export_feed(self, accommodation_id: str, platform: Union[BookingPlatform, str]) -> str:
        """Feed for `platform`: every booking of the accommodation except that platform's own and cancelled ones."""
        accommodation = self.accommodations.get_or_raise(accommodation_id)
        target = _platform_value(platform)
        bookings = self.bookings.list_for_accommodation(accommodation.id)
        return generate_ical(bookings, target, calendar_name=f"{accommodation.name} ({target})")

    def supplier_feed(
        self,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        accommodation_id: Optional[str] = None,
        refresh: bool = False,
    ) -> str:
        """
        All non-cancelled bookings of the supplier, optionally filtered by
        arrival range and accommodation. Served from the cache unless
        refresh is set or nothing is cached yet.
        """
        base_key = build_base_key(
            self.supplier_id, start=start, end=end, accommodation_id=accommodation_id
        )
        if not refresh:
            cached = self.cache.get(base_key)
            if cached is not None:
                return cached

        bookings: Iterable[LocalBooking] = self.bookings.list_all(supplier_id=self.supplier_id)
        selected = [
            b for b in bookings
            if (accommodation_id is None or b.accommodation_id == accommodation_id)
            and (start is None or b.arrival_date >= start)
            and (end is None or b.arrival_date <= end)
        ]
        content = generate_ical(selected, BookingPlatform.UNKNOWN, calendar_name=f"Supplier {self.supplier_id}")
        self.cache.update(base_key, content)
        return content

    # ==========================================================
    # Import
    # ==========================================================

    def apply_events(
        self,
        accommodation_id: str,
        platform: Union[BookingPlatform, str],
        events: Sequence[IcalEvent],
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> IcalImportResult:
        """
        Apply one parsed feed to the store.

        - CANCELLED event -> matching booking (by UID) cancelled
        - other event -> dates updated if they differ, else a new Confirmed
          booking tagged with the feed platform
        - bookings of that platform whose UID is absent from the feed -> cancelled

        Cancelled bookings are never reactivated or moved.
        """
        accommodation = self.accommodations.get_or_raise(accommodation_id)
        tag = _platform_value(platform)
        result = IcalImportResult(accommodation_id=accommodation.id, platform=tag, events=len(events))
        seen_uids: set[str] = set()

        for event in events:
            check_cancelled(cancel)
            seen_uids.add(event.uid)
            existing = self.bookings.find_by_reference(
                platform=tag, reference=event.uid, accommodation_id=accommodation.id
            )

            if event.is_cancelled:
                if existing is not None and not existing.is_cancelled:
                    self.bookings.set_status(existing, BookingStatus.CANCELLED)
                    result.cancelled += 1
                else:
                    result.unchanged += 1
                continue

            if existing is not None:
                if existing.is_cancelled:
                    result.unchanged += 1
                elif (existing.arrival_date, existing.departure_date) != (event.start, event.end):
                    if event.end <= event.start:
                        result.skipped += 1
                        continue
                    self.bookings.update_dates(existing, event.start, event.end)
                    result.updated += 1
                else:
                    result.unchanged += 1
                continue

            if event.end <= event.start:
                logger.warning(
                    f"ICAL_SERVICE: skipping event uid={event.uid} with empty stay {event.start}->{event.end}"
                )
                result.skipped += 1
                continue

            self.bookings.create(
                supplier_id=self.supplier_id,
                accommodation_id=accommodation.id,
                arrival_date=event.start,
                departure_date=event.end,
                platform=tag,
                status=BookingStatus.CONFIRMED.value,
                reference=event.uid,
                **_client_from_event(event),
            )
            result.created += 1

        for booking in self.bookings.list_for_accommodation(accommodation.id, platform=tag):
            check_cancelled(cancel)
            if booking.is_cancelled or booking.reference in seen_uids:
                continue
            self.bookings.set_status(booking, BookingStatus.CANCELLED)
            result.removed += 1

        if result.changed:
            self.cache.invalidate(self.supplier_id)

        logger.info(
            f"ICAL_SERVICE: Imported accommodation={accommodation.id} platform={tag} "
            f"events={result.events} created={result.created} updated={result.updated} "
            f"cancelled={result.cancelled} removed={result.removed}"
        )
        return result

    async def import_feed(
        self,
        accommodation_id: str,
        platform: Union[BookingPlatform, str],
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> IcalImportResult:
        """
        Raises:
            NotFoundError: no config with an import URL
            UpstreamError: the feed could not be fetched
            IcalParseError: the feed is not a VCALENDAR document
        """
        tag = _platform_value(platform)
        config = self.configs.get(accommodation_id, tag)
        if config is None or not config.import_url:
            raise NotFoundError("IcalSyncConfig", f"{accommodation_id}/{tag}")

        text = await self.fetch_ical(config.import_url)
        # a malformed feed raises here, before anything is cancelled
        events = parse_ical(text)
        result = self.apply_events(accommodation_id, tag, events, cancel=cancel)
        self.configs.touch_synced(config)
        return result

    async def sync_all_imports(
        self,
        *,
        warnings: Optional[SyncWarnings] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> IcalSyncSummary:
        """Import every configured feed; one feed's failure does not stop the others."""
        summary = IcalSyncSummary()
        for config in self.configs.list_with_import_url():
            check_cancelled(cancel)
            label = f"{config.accommodation_id}/{config.platform}"
            try:
                result = await self.import_feed(config.accommodation_id, config.platform, cancel=cancel)
                summary.results.append(result)
            except OperationCancelledError:
                raise
            except Exception as e:
                logger.error(f"ICAL_SERVICE: Import failed for {label}: {e}")
                summary.errors[label] = str(e)
                if warnings is not None:
                    warnings.add(
                        "ical_import_failed",
                        f"iCal import failed for {label}: {e}",
                        accommodation_id=config.accommodation_id,
                    )
        return summary

    # ==========================================================
    # Config CRUD
    # ==========================================================

    def save_config(
        self,
        accommodation_id: str,
        platform: Union[BookingPlatform, str],
        *,
        import_url: Optional[str] = None,
    ) -> IcalSyncConfig:
        accommodation = self.accommodations.get_or_raise(accommodation_id)
        tag = _platform_value(platform)
        if import_url is not None and not import_url.startswith(("http://", "https://")):
            raise ValidationError(f"Import URL must be http(s): {import_url}")
        return self.configs.upsert(
            accommodation_id=accommodation.id,
            platform=tag,
            import_url=import_url or None,
            export_url=self.export_url_for(accommodation.id, tag),
        )

    def get_config(self, accommodation_id: str, platform: Union[BookingPlatform, str]) -> Optional[IcalSyncConfig]:
        return self.configs.get(accommodation_id, _platform_value(platform))

    def list_configs(self, accommodation_id: str) -> Sequence[IcalSyncConfig]:
        self.accommodations.get_or_raise(accommodation_id)
        return self.configs.list_for_accommodation(accommodation_id)

    def delete_config(self, accommodation_id: str, platform: Union[BookingPlatform, str]) -> bool:
        return self.configs.delete(accommodation_id, _platform_value(platform))
