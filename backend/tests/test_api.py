from datetime import date

import pytest
from fastapi.testclient import TestClient

from openpro_sync.api.deps import get_client
from openpro_sync.db.session import get_db
from openpro_sync.main import create_app
from openpro_sync.services.ical_service import IcalService
from openpro_sync.services.sync_warnings import SyncWarnings

API = "/api/v1"


@pytest.fixture
def api(session_factory, client):
    warnings = SyncWarnings()
    app = create_app(warnings)

    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_client] = lambda: client
    test_client = TestClient(app)
    test_client.warnings = warnings
    return test_client


def _create_accommodation(api, **external_ids):
    response = api.post(f"{API}/accommodations", json={"name": "Gîte", "external_ids": external_ids})
    assert response.status_code == 201
    return response.json()


def test_accommodation_gets_opaque_id(api):
    body = _create_accommodation(api, OpenPro="101")

    assert len(body["id"]) == 32
    assert body["external_ids"] == {"OpenPro": "101"}
    assert [a["id"] for a in api.get(f"{API}/accommodations").json()] == [body["id"]]


def test_booking_lifecycle(api):
    acc = _create_accommodation(api)

    created = api.post(f"{API}/bookings", json={
        "accommodation_id": acc["id"],
        "arrival_date": "2025-06-01",
        "departure_date": "2025-06-05",
        "client_first_name": "Jean",
        "client_last_name": "Dupont",
    })
    assert created.status_code == 201
    booking = created.json()
    assert booking["platform"] == "Directe"
    assert booking["status"] == "Quote"

    listed = api.get(f"{API}/bookings", params={"accommodation_id": acc["id"]}).json()
    assert [(b["booking_id"], b["is_pending_sync"]) for b in listed["bookings"]] == [(booking["id"], True)]

    cancelled = api.post(f"{API}/bookings/{booking['id']}/cancel")
    assert cancelled.json()["status"] == "Cancelled"

    assert api.delete(f"{API}/bookings/{booking['id']}").status_code == 204
    assert api.post(f"{API}/bookings/{booking['id']}/cancel").status_code == 404


def test_invalid_booking_is_400(api):
    acc = _create_accommodation(api)

    response = api.post(f"{API}/bookings", json={
        "accommodation_id": acc["id"],
        "arrival_date": "2025-06-05",
        "departure_date": "2025-06-01",
    })

    assert response.status_code == 400


def test_upstream_failure_is_502(api, client):
    acc = _create_accommodation(api, OpenPro="101")
    client.failures.add("list_bookings")

    response = api.get(f"{API}/bookings", params={"accommodation_id": acc["id"]})

    assert response.status_code == 502


def test_bulk_update_of_unprovisioned_plan_is_409(api):
    acc = _create_accommodation(api, OpenPro="101")
    plan = api.post(f"{API}/rate-plans", json={"label": "Draft"}).json()
    assert plan["external_id"] is None
    assert api.put(f"{API}/accommodations/{acc['id']}/rate-plans/{plan['id']}").status_code == 204

    response = api.post(f"{API}/rates/bulk-update", json={"accommodations": [{
        "accommodation_id": acc["id"],
        "dates": [{"date": "2025-06-01", "rate_plan_id": plan["id"], "price": 100}],
    }]})

    assert response.status_code == 409


def test_pricing_and_data_round_trip(api):
    acc = _create_accommodation(api)
    plan = api.post(f"{API}/rate-plans", json={"label": "Standard"}).json()
    api.put(f"{API}/accommodations/{acc['id']}/rate-plans/{plan['id']}")

    assert api.put(f"{API}/accommodations/{acc['id']}/pricing", json=[
        {"rate_plan_id": plan["id"], "day": "2025-06-01", "price": 120, "min_stay": 2},
    ]).status_code == 204
    assert api.put(f"{API}/accommodations/{acc['id']}/stock", json=[
        {"day": "2025-06-01", "stock": 3},
    ]).status_code == 204

    data = api.get(
        f"{API}/accommodations/{acc['id']}/data", params={"debut": "2025-06-01", "fin": "2025-06-30"}
    ).json()

    [point] = data["pricing"][plan["id"]]
    assert point["day"] == "2025-06-01"
    assert point["values"]["price"] == 120
    assert point["values"]["min_stay"] == 2
    assert data["stock"] == [{"day": "2025-06-01", "values": {"stock": 3}}]


def test_ical_export_and_config(api):
    acc = _create_accommodation(api)
    api.post(f"{API}/bookings", json={
        "accommodation_id": acc["id"],
        "arrival_date": "2025-06-01",
        "departure_date": "2025-06-05",
        "reference": "booking-uid-1",
        "status": "Confirmed",
    })

    feed = api.get(f"{API}/ical/export/{acc['id']}/Booking.com")
    assert feed.status_code == 200
    assert feed.headers["content-type"].startswith("text/calendar")
    assert "UID:booking-uid-1" in feed.text.replace("\r\n ", "")

    saved = api.put(
        f"{API}/ical/configs/{acc['id']}/Xotelia",
        json={"import_url": "https://feeds.example.com/x.ics"},
    )
    assert saved.status_code == 200
    assert saved.json()["export_url"].endswith(f"/api/v1/ical/export/{acc['id']}/Xotelia")
    assert api.get(f"{API}/ical/configs/{acc['id']}/Booking.com").status_code == 404


def test_unknown_platform_is_400(api):
    acc = _create_accommodation(api)

    assert api.get(f"{API}/ical/export/{acc['id']}/Airbnb").status_code == 400


def test_import_with_broken_event_date_is_400(api, monkeypatch):
    acc = _create_accommodation(api)
    api.put(f"{API}/ical/configs/{acc['id']}/Xotelia", json={"import_url": "https://feeds.example.com/x.ics"})

    async def fake_fetch(self, url):
        return (
            "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nPRODID:-//test//EN\r\n"
            "BEGIN:VEVENT\r\nUID:x\r\nDTSTART;VALUE=DATE:2025XX01\r\nDTEND;VALUE=DATE:20250603\r\nEND:VEVENT\r\n"
            "END:VCALENDAR\r\n"
        )

    monkeypatch.setattr(IcalService, "fetch_ical", fake_fetch)

    assert api.post(f"{API}/ical/import/{acc['id']}/Xotelia").status_code == 400


def test_rename_accommodation(api):
    acc = _create_accommodation(api)

    renamed = api.patch(f"{API}/accommodations/{acc['id']}", json={"name": "  Roulotte "})

    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Roulotte"
    assert api.patch(f"{API}/accommodations/{acc['id']}", json={"name": " "}).status_code == 400
    assert api.patch(f"{API}/accommodations/missing", json={"name": "X"}).status_code == 404


def test_delete_rate_plan_drops_links_and_pricing(api):
    acc = _create_accommodation(api)
    plan = api.post(f"{API}/rate-plans", json={"label": "Standard"}).json()
    api.put(f"{API}/accommodations/{acc['id']}/rate-plans/{plan['id']}")
    api.put(f"{API}/accommodations/{acc['id']}/pricing", json=[
        {"rate_plan_id": plan["id"], "day": "2025-06-01", "price": 80},
    ])

    assert api.delete(f"{API}/rate-plans/{plan['id']}").status_code == 204

    assert api.get(f"{API}/rate-plans").json() == []
    data = api.get(
        f"{API}/accommodations/{acc['id']}/data", params={"debut": "2025-06-01", "fin": "2025-06-30"}
    ).json()
    assert data["pricing"] == {}
    assert api.delete(f"{API}/rate-plans/{plan['id']}").status_code == 404


def test_upstream_data_reads_openpro(api, client):
    acc = _create_accommodation(api, OpenPro="101")
    client.rates[101] = [{
        "idTypeTarif": 501,
        "debut": "2025-06-01",
        "fin": "2025-06-03",
        "dureeMin": 2,
        "tarifPax": {"listeTarifPaxOccupation": [{"nbPers": 2, "prix": 90}]},
    }]
    client.stock[101] = [{"date": "2025-06-02", "dispo": 1}, {"date": "2025-06-01", "dispo": 0}]

    body = api.get(
        f"{API}/accommodations/{acc['id']}/upstream-data", params={"debut": "2025-06-01", "fin": "2025-06-30"}
    ).json()

    [rate] = body["rates"]
    assert (rate["rate_plan_external_id"], rate["start"], rate["end"]) == (501, "2025-06-01", "2025-06-03")
    assert rate["price"] == 90
    assert rate["min_stay"] == 2
    assert body["stock"] == [{"day": "2025-06-01", "stock": 0}, {"day": "2025-06-02", "stock": 1}]
    assert client.calls_to("set_rates") == []


def test_upstream_data_needs_an_openpro_id(api):
    acc = _create_accommodation(api)

    assert api.get(f"{API}/accommodations/{acc['id']}/upstream-data").status_code == 409


def test_admin_warnings(api):
    assert api.get(f"{API}/admin/startup-warnings").json() == {"count": 0, "warnings": []}

    api.warnings.add("export_failed", "Export failed for accommodation x", accommodation_id="x")
    body = api.get(f"{API}/admin/startup-warnings").json()
    assert body["count"] == 1
    assert body["warnings"][0]["type"] == "export_failed"

    assert api.delete(f"{API}/admin/startup-warnings").status_code == 204
    assert api.get(f"{API}/admin/startup-warnings").json()["count"] == 0


def test_run_now_reports_passes(api, client):
    _create_accommodation(api, OpenPro="101")
    client.add_accommodation(101)

    body = api.post(f"{API}/admin/sync/run-now").json()

    assert body["failed_passes"] == []
    assert set(body["passes"]) == {
        "verify_accommodations",
        "provision_rate_plans",
        "provision_links",
        "sync_bookings",
        "export_data",
    }


def test_scheduler_status_when_stopped(api):
    assert api.get(f"{API}/admin/scheduler/status").json() == {
        "running": False,
        "interval_minutes": None,
        "next_run": None,
    }
