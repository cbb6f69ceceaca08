from datetime import date

from openpro_sync.adapters.openpro_payloads import (
    DEFAULT_MAX_STAY,
    booking_records,
    booking_reference,
    build_stock_payload,
    build_tarif_modif,
    detect_platform,
    normalize_booking,
    normalize_bookings,
    normalize_created_rate_plan_id,
    normalize_rate_plan_links,
    normalize_rates,
    normalize_stock,
)
from openpro_sync.domain.models.local_booking import BookingPlatform


def test_detect_platform_priority():
    record = {"listeTransaction": [{"transactionOpenPro": {"id": 1}}, {"transactionBookingCom": {"id": 2}}]}
    assert detect_platform(record) is BookingPlatform.BOOKING_COM
    assert detect_platform({"transaction": {"transactionXotelia": {"id": 1}}}) is BookingPlatform.XOTELIA
    assert detect_platform({"transaction": {"transactionResaLocale": {"id": 1}}}) is BookingPlatform.DIRECT
    assert detect_platform({"transaction": {"transactionOpenPro": None}}) is BookingPlatform.UNKNOWN
    assert detect_platform({}) is BookingPlatform.UNKNOWN


def test_normalize_booking_reads_nested_dossier():
    booking = normalize_booking({
        "cleDossier": {"idDossier": 42},
        "statut": "Annulé",
        "contact": {"nom": "Martin", "prenom": "Lea", "email": "lea@example.com"},
        "listeHebergement": [{
            "cleHebergement": {"idHebergement": 101},
            "sejour": {"debut": "2025-06-01", "fin ": "2025-06-05"},
            "pax": {"nbPers": 3},
            "montant": "450.5",
        }],
        "transaction": {"transactionOpenPro": {"id": 42}},
    })

    assert booking.reference == "42"
    assert booking.accommodation_external_id == 101
    assert (booking.arrival_date, booking.departure_date) == (date(2025, 6, 1), date(2025, 6, 5))
    assert booking.cancelled is True
    assert booking.platform is BookingPlatform.OPENPRO
    assert booking.client_name == "Lea Martin"
    assert booking.persons == 3
    assert booking.total_amount == 450.5


def test_normalize_bookings_skips_dossiers_without_dates():
    payload = {"data": {"listeDossier": [
        {"idDossier": 1},
        {"idDossier": 2, "dateArrivee": "2025-06-01", "dateDepart": "2025-06-02"},
    ]}}

    bookings = normalize_bookings(payload)

    assert [b.reference for b in bookings] == ["2"]


def test_booking_reference_survives_unreadable_dossiers():
    payload = {"listeDossier": [
        {"cleDossier": {"idDossier": 900}, "listeHebergement": [{"sejour": {"debut": "01/07/2025"}}]},
        {"idDossier": "901"},
        {"statut": "confirme"},
    ]}

    assert [booking_reference(r) for r in booking_records(payload)] == ["900", "901", None]
    assert normalize_bookings(payload) == []


def test_normalize_rates_accepts_field_variants():
    payload = {"listeTarif": [
        {
            "typeTarif": {"idTypeTarif": 7},
            "debut": "2025-06-01",
            "fin ": "2025-06-10",
            "tarifPax": {"listeTarifPaxOccupation": [{"nbPers": 2, "prix": 99}]},
            "dureeMin": 2,
            "arriveeAutorisee": "oui",
        },
        {"idTypeTarif": 8, "dateDebut": "2025-07-01", "dateFin": "2025-07-02", "prixNuitee": "75"},
        {"idTypeTarif": 9, "debut": "2025-07-05", "fin": "2025-07-01"},
    ]}

    rates = normalize_rates(payload)

    assert [(r.rate_plan_external_id, r.price) for r in rates] == [(7, 99.0), (8, 75.0)]
    assert rates[0].end == date(2025, 6, 10)
    assert rates[0].min_stay == 2
    assert rates[0].arrival_allowed is True


def test_normalize_stock_sorted_by_day():
    stock = normalize_stock({"jours": [
        {"jour": "2025-06-02", "dispo": 1},
        {"date": "2025-06-01", "valeur": "2"},
        {"date": "bad", "valeur": 3},
    ]})

    assert [(s.day, s.stock) for s in stock] == [(date(2025, 6, 1), 2), (date(2025, 6, 2), 1)]


def test_created_rate_plan_id_envelopes():
    assert normalize_created_rate_plan_id({"cleTypeTarif": {"idTypeTarif": 12}}) == 12
    assert normalize_created_rate_plan_id({"data": {"idTypeTarif": "13"}}) == 13
    assert normalize_created_rate_plan_id({"ok": True}) is None


def test_rate_plan_links():
    payload = {"liaisons": [{"idTypeTarif": 1}, {"cleTypeTarif": {"idTypeTarif": 2}}, {"other": 3}]}
    assert normalize_rate_plan_links(payload) == {1, 2}


def test_build_tarif_modif_defaults():
    tarif = build_tarif_modif(
        rate_plan_external_id=501,
        start=date(2025, 6, 1),
        end=date(2025, 6, 3),
        values={"price": 100.0},
    )

    assert tarif == {
        "idTypeTarif": 501,
        "debut": "2025-06-01",
        "fin": "2025-06-03",
        "ouvert": True,
        "dureeMin": 1,
        "dureeMax": DEFAULT_MAX_STAY,
        "arriveeAutorisee": True,
        "departAutorise": True,
        "tarifPax": {"listeTarifPaxOccupation": [{"nbPers": 2, "prix": 100.0}]},
    }


def test_build_stock_payload():
    payload = build_stock_payload([(date(2025, 6, 1), date(2025, 6, 2), 3)])
    assert payload == {"stock": [{"debut": "2025-06-01", "fin": "2025-06-02", "dispo": 3}]}
