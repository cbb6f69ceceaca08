"""
OpenPro payload normalization

OpenPro responses drift: the same field shows up under several names
(listeStock / stock / jours, valeur / dispo, tarifPax / prixPax, "fin " with
a trailing space, ...). Each upstream entity type gets exactly one
normalizer here that maps every known variant onto a canonical dataclass.
Services never read raw OpenPro dicts.

The outbound builders (rate plan, tarif periods, stock periods) live here too
so that the wire shape is defined in one module.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional

from openpro_sync.domain.models.local_booking import BookingPlatform

logger = logging.getLogger(__name__)

CANCELLED_STATUSES = {"annule", "annulé", "annulee", "annulée", "cancelled", "canceled"}

# dureeMax sent when a period has no stored maximum stay
DEFAULT_MAX_STAY = 30

# first matching marker wins
TRANSACTION_MARKERS: list[tuple[tuple[str, ...], BookingPlatform]] = [
    (("transactionBookingCom", "transactionBooking"), BookingPlatform.BOOKING_COM),
    (("transactionXotelia",), BookingPlatform.XOTELIA),
    (("transactionOpenPro",), BookingPlatform.OPENPRO),
    (("transactionResaLocale", "transactionDirecte"), BookingPlatform.DIRECT),
]


# =====================================================================
# Canonical shapes
# =====================================================================

@dataclass
class UpstreamAccommodation:
    external_id: int
    name: Optional[str] = None


@dataclass
class UpstreamRate:
    rate_plan_external_id: int
    start: date
    end: date
    price: Optional[float] = None
    min_stay: Optional[int] = None
    max_stay: Optional[int] = None
    arrival_allowed: Optional[bool] = None
    departure_allowed: Optional[bool] = None


@dataclass
class UpstreamStockDay:
    day: date
    stock: int


@dataclass
class UpstreamBooking:
    reference: Optional[str]
    accommodation_external_id: Optional[int]
    arrival_date: date
    departure_date: date
    platform: BookingPlatform
    cancelled: bool = False
    client_first_name: Optional[str] = None
    client_last_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    persons: Optional[int] = None
    total_amount: Optional[float] = None

    @property
    def client_name(self) -> Optional[str]:
        parts = [p for p in (self.client_first_name, self.client_last_name) if p]
        return " ".join(parts) if parts else None


# =====================================================================
# Small readers
# =====================================================================

def _first(record: Any, *keys: str) -> Any:
    """First present, non-None value among keys (also tries the key with a trailing space)."""
    if not isinstance(record, dict):
        return None
    for key in keys:
        for candidate in (key, f"{key} "):
            value = record.get(candidate)
            if value is not None:
                return value
    return None


def _list(payload: Any, *keys: str) -> list:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    for key in keys:
        value = payload.get(key)
        if isinstance(value, list):
            return value
    data = payload.get("data")
    if isinstance(data, (dict, list)) and data is not payload:
        return _list(data, *keys)
    return []


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "oui", "yes")
    return None


def _to_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _nested_id(record: Any, key_container: str, key: str) -> Optional[int]:
    inner = record.get(key_container) if isinstance(record, dict) else None
    return _to_int(_first(inner, key)) if isinstance(inner, dict) else None


# =====================================================================
# Inbound normalizers
# =====================================================================

def normalize_accommodations(payload: Any) -> list[UpstreamAccommodation]:
    result: list[UpstreamAccommodation] = []
    for record in _list(payload, "listeHebergement", "hebergements", "accommodations"):
        external_id = _nested_id(record, "cleHebergement", "idHebergement")
        if external_id is None:
            external_id = _to_int(_first(record, "idHebergement", "accommodationId", "id"))
        if external_id is None:
            logger.debug(f"OPENPRO_PAYLOADS: accommodation without id skipped: {record!r}")
            continue
        result.append(UpstreamAccommodation(
            external_id=external_id,
            name=_first(record, "nom", "name"),
        ))
    return result


def normalize_created_rate_plan_id(payload: Any) -> Optional[int]:
    """Id returned by a create call, whatever envelope it came in."""
    if not isinstance(payload, dict):
        return _to_int(payload)
    external_id = _nested_id(payload, "cleTypeTarif", "idTypeTarif")
    if external_id is None:
        external_id = _to_int(_first(payload, "idTypeTarif", "rateTypeId", "id"))
    if external_id is None and isinstance(payload.get("data"), dict):
        return normalize_created_rate_plan_id(payload["data"])
    return external_id


def normalize_rate_plan_links(payload: Any) -> set[int]:
    """OpenPro rate plan ids linked to one accommodation."""
    linked: set[int] = set()
    for record in _list(payload, "liaisons", "accommodationRateTypeLinks", "listeTypeTarif"):
        external_id = _nested_id(record, "cleTypeTarif", "idTypeTarif")
        if external_id is None:
            external_id = _to_int(_first(record, "idTypeTarif", "rateTypeId"))
        if external_id is not None:
            linked.add(external_id)
    return linked


def _extract_price(record: dict) -> Optional[float]:
    for container_key in ("tarifPax", "prixPax"):
        container = record.get(container_key)
        if not isinstance(container, dict):
            continue
        occupations = _first(container, "listeTarifPaxOccupation", "listeTarifPax")
        if isinstance(occupations, list):
            for occupation in occupations:
                price = _to_float(_first(occupation, "prix", "price"))
                if price is not None:
                    return price
    return _to_float(_first(record, "prixNuitee", "prix", "price"))


def normalize_rates(payload: Any) -> list[UpstreamRate]:
    result: list[UpstreamRate] = []
    for record in _list(payload, "tarifs", "listeTarif", "periods", "rates"):
        if not isinstance(record, dict):
            continue
        rate_plan_id = _nested_id(record, "typeTarif", "idTypeTarif")
        if rate_plan_id is None:
            rate_plan_id = _nested_id(record, "cleTypeTarif", "idTypeTarif")
        if rate_plan_id is None:
            rate_plan_id = _to_int(_first(record, "idTypeTarif", "rateTypeId"))

        start = _to_date(_first(record, "debut", "dateDebut", "startDate"))
        end = _to_date(_first(record, "fin", "dateFin", "endDate"))
        if rate_plan_id is None or start is None or end is None or end < start:
            continue

        result.append(UpstreamRate(
            rate_plan_external_id=rate_plan_id,
            start=start,
            end=end,
            price=_extract_price(record),
            min_stay=_to_int(_first(record, "dureeMin", "minDuration")),
            max_stay=_to_int(_first(record, "dureeMax", "maxDuration")),
            arrival_allowed=_to_bool(_first(record, "arriveeAutorisee", "arrivalAllowed")),
            departure_allowed=_to_bool(_first(record, "departAutorise", "departureAllowed")),
        ))
    return result


def normalize_stock(payload: Any) -> list[UpstreamStockDay]:
    result: list[UpstreamStockDay] = []
    for record in _list(payload, "listeStock", "stock", "jours"):
        day = _to_date(_first(record, "date", "jour"))
        value = _to_int(_first(record, "valeur", "dispo", "stock"))
        if day is None or value is None:
            continue
        result.append(UpstreamStockDay(day=day, stock=value))
    result.sort(key=lambda s: s.day)
    return result


def detect_platform(record: Any) -> BookingPlatform:
    """
    Platform of an upstream booking from its transaction markers.
    Priority: Booking.com > Xotelia > OpenPro > Direct > Unknown.
    """
    if not isinstance(record, dict):
        return BookingPlatform.UNKNOWN

    markers: set[str] = set()
    transaction = record.get("transaction")
    if isinstance(transaction, dict):
        markers.update(k for k, v in transaction.items() if v)
    for entry in record.get("listeTransaction") or record.get("transactions") or []:
        if isinstance(entry, dict):
            markers.update(k for k, v in entry.items() if v)

    for keys, platform in TRANSACTION_MARKERS:
        if any(k in markers for k in keys):
            return platform
    return BookingPlatform.UNKNOWN


def booking_reference(record: Any) -> Optional[str]:
    """Dossier id of a raw OpenPro record, readable even when the rest is not."""
    if not isinstance(record, dict):
        return None
    reference = _nested_id(record, "cleDossier", "idDossier")
    if reference is None:
        reference = _to_int(_first(record, "idDossier"))
    return str(reference) if reference is not None else None


def booking_records(payload: Any) -> list:
    return _list(payload, "listeDossier", "dossiers", "bookings")


def normalize_booking(record: Any) -> Optional[UpstreamBooking]:
    """
    One OpenPro dossier -> UpstreamBooking.
    Dates and accommodation come from the first hebergement of the dossier.
    Returns None when the stay dates are missing.
    """
    if not isinstance(record, dict):
        return None

    stays = record.get("listeHebergement")
    if isinstance(stays, list) and stays:
        stay = stays[0] if isinstance(stays[0], dict) else {}
    else:
        stay = record.get("hebergement") if isinstance(record.get("hebergement"), dict) else {}

    sejour = stay.get("sejour") if isinstance(stay.get("sejour"), dict) else {}
    arrival = _to_date(_first(sejour, "debut") or _first(stay, "dateArrivee") or _first(record, "dateArrivee"))
    departure = _to_date(_first(sejour, "fin") or _first(stay, "dateDepart") or _first(record, "dateDepart"))
    if arrival is None or departure is None:
        return None

    accommodation_id = _nested_id(stay, "cleHebergement", "idHebergement")
    if accommodation_id is None:
        accommodation_id = _to_int(_first(stay, "idHebergement") or _first(record, "idHebergement"))

    contact = record.get("contact") or record.get("client") or {}
    pax = stay.get("pax") if isinstance(stay.get("pax"), dict) else {}
    paiement = record.get("paiement") if isinstance(record.get("paiement"), dict) else {}

    statut = str(_first(record, "statut", "status") or "").strip().lower()

    return UpstreamBooking(
        reference=booking_reference(record),
        accommodation_external_id=accommodation_id,
        arrival_date=arrival,
        departure_date=departure,
        platform=detect_platform(record),
        cancelled=statut in CANCELLED_STATUSES,
        client_first_name=_first(contact, "prenom", "firstName"),
        client_last_name=_first(contact, "nom", "lastName"),
        client_email=_first(contact, "email"),
        client_phone=_first(contact, "telephone1", "telephone", "phone"),
        persons=_to_int(_first(pax, "nbPers") or _first(stay, "nbPersonnes")),
        total_amount=_to_float(
            _first(stay, "montant") if _first(stay, "montant") is not None else _first(paiement, "montantTotal")
        ),
    )


def normalize_bookings(payload: Any) -> list[UpstreamBooking]:
    result: list[UpstreamBooking] = []
    for record in booking_records(payload):
        booking = normalize_booking(record)
        if booking is None:
            logger.warning(f"OPENPRO_PAYLOADS: dossier without stay dates skipped: {booking_reference(record)}")
            continue
        result.append(booking)
    return result


# =====================================================================
# Outbound builders
# =====================================================================

def build_rate_plan_payload(*, label: Any, description: Any, display_order: Optional[int]) -> dict[str, Any]:
    payload: dict[str, Any] = {"libelle": label, "description": description}
    if display_order is not None:
        payload["ordre"] = display_order
    return payload


def build_tarif_modif(
    *,
    rate_plan_external_id: int,
    start: date,
    end: date,
    values: dict[str, Any],
    default_max_stay: int = DEFAULT_MAX_STAY,
) -> dict[str, Any]:
    """
    One compacted pricing period -> OpenPro TarifModif.
    Missing values fall back to: dureeMin 1, dureeMax DEFAULT_MAX_STAY,
    arrival/departure allowed.
    """
    price = values.get("price")
    return {
        "idTypeTarif": rate_plan_external_id,
        "debut": start.isoformat(),
        "fin": end.isoformat(),
        "ouvert": True,
        "dureeMin": values.get("min_stay") or 1,
        "dureeMax": values.get("max_stay") or default_max_stay,
        "arriveeAutorisee": values.get("arrival_allowed", True),
        "departAutorise": values.get("departure_allowed", True),
        "tarifPax": {
            "listeTarifPaxOccupation": [{"nbPers": 2, "prix": price}] if price is not None else [],
        },
    }


def build_stock_payload(periods: Iterable[tuple[date, date, int]]) -> dict[str, Any]:
    return {
        "stock": [
            {"debut": start.isoformat(), "fin": end.isoformat(), "dispo": value}
            for start, end, value in periods
        ]
    }
