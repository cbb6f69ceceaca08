import asyncio
from datetime import date, timedelta

import pytest

from openpro_sync.core.errors import ConflictError, NotFoundError, ValidationError
from openpro_sync.repositories.inventory_repository import InventoryRepository
from openpro_sync.repositories.rate_plan_repository import RatePlanRepository
from openpro_sync.services.accommodation_data_service import AccommodationDataService, build_rates_payload
from openpro_sync.services.bulk_update_service import (
    BulkAccommodationUpdate,
    BulkDateUpdate,
    BulkUpdateService,
)

from conftest import SUPPLIER_ID

JUNE_1 = date(2025, 6, 1)


def _june(day: int) -> date:
    return date(2025, 6, day)


@pytest.fixture
def data_service(db, client):
    return AccommodationDataService(db, client, supplier_id=SUPPLIER_ID, horizon_days=60)


@pytest.fixture
def bulk(db, client):
    return BulkUpdateService(db, client, supplier_id=SUPPLIER_ID)


# =====================================================================
# Store side
# =====================================================================

def test_upsert_pricing_only_touches_given_fields(db, accommodation, rate_plan):
    repo = InventoryRepository(db)
    repo.upsert_pricing(accommodation.id, rate_plan.id, JUNE_1, price=90, min_stay=2)
    repo.upsert_pricing(accommodation.id, rate_plan.id, JUNE_1, price=95)

    point = repo.get_pricing(accommodation.id, rate_plan.id, JUNE_1)
    assert (point.price, point.min_stay) == (95, 2)
    with pytest.raises(TypeError):
        repo.upsert_pricing(accommodation.id, rate_plan.id, JUNE_1, colour="red")


def test_save_pricing_validates(data_service, accommodation, rate_plan):
    with pytest.raises(ValidationError):
        data_service.save_pricing(accommodation.id, rate_plan.id, JUNE_1, price=-1)
    with pytest.raises(ValidationError):
        data_service.save_pricing(accommodation.id, rate_plan.id, JUNE_1, min_stay=0)
    with pytest.raises(NotFoundError):
        data_service.save_pricing(accommodation.id, "missing", JUNE_1, price=10)
    with pytest.raises(ValidationError):
        data_service.save_stock(accommodation.id, JUNE_1, -2)


def test_load_accommodation_data_groups_by_rate_plan(db, data_service, accommodation, rate_plan):
    for day in (3, 1, 2):
        data_service.save_pricing(accommodation.id, rate_plan.id, _june(day), price=100 + day)
    data_service.save_stock(accommodation.id, _june(1), 2)

    data = data_service.load_accommodation_data(accommodation.id, _june(1), _june(2))

    assert [d.day for d in data["pricing"][rate_plan.id]] == [_june(1), _june(2)]
    assert data["pricing"][rate_plan.id][0].values["price"] == 101
    assert [(d.day, d.values["stock"]) for d in data["stock"]] == [(_june(1), 2)]
    with pytest.raises(ValidationError):
        data_service.load_accommodation_data(accommodation.id, _june(2), _june(1))


# =====================================================================
# Bulk update
# =====================================================================

def _update(accommodation_id, plan_id, prices: dict[int, float]) -> BulkAccommodationUpdate:
    return BulkAccommodationUpdate(
        accommodation_id=accommodation_id,
        dates=[BulkDateUpdate(day=_june(d), rate_plan_id=plan_id, price=p) for d, p in prices.items()],
    )


def test_bulk_update_saves_and_pushes_compacted_periods(db, bulk, client, accommodation, rate_plan):
    result = asyncio.run(bulk.apply([_update(accommodation.id, rate_plan.id, {1: 100, 2: 100, 3: 100, 4: 120})]))

    assert result.saved_points == 4
    assert result.pushed_accommodations == [accommodation.id]
    [(supplier_id, openpro_id, payload)] = client.calls_to("set_rates")
    assert (supplier_id, openpro_id) == (SUPPLIER_ID, 101)
    assert [(t["debut"], t["fin"], t["tarifPax"]["listeTarifPaxOccupation"][0]["prix"]) for t in payload["tarifs"]] == [
        ("2025-06-01", "2025-06-03", 100),
        ("2025-06-04", "2025-06-04", 120),
    ]
    assert all(t["idTypeTarif"] == 501 and t["dureeMax"] == 30 for t in payload["tarifs"])


def test_bulk_update_pushes_stored_state_of_edited_days(db, bulk, client, accommodation, rate_plan):
    InventoryRepository(db).upsert_pricing(accommodation.id, rate_plan.id, _june(1), price=80, min_stay=3)

    asyncio.run(bulk.apply([
        BulkAccommodationUpdate(
            accommodation_id=accommodation.id,
            dates=[BulkDateUpdate(day=_june(1), rate_plan_id=rate_plan.id, arrival_allowed=False)],
        )
    ]))

    [tarif] = client.calls_to("set_rates")[0][2]["tarifs"]
    assert tarif["dureeMin"] == 3
    assert tarif["arriveeAutorisee"] is False
    assert tarif["tarifPax"]["listeTarifPaxOccupation"] == [{"nbPers": 2, "prix": 80}]


def test_bulk_update_of_unprovisioned_plan_is_a_conflict(db, bulk, client, accommodation):
    repo = RatePlanRepository(db)
    plan = repo.create(label="Draft")
    repo.link(accommodation.id, plan.id)

    with pytest.raises(ConflictError):
        asyncio.run(bulk.apply([_update(accommodation.id, plan.id, {1: 50})]))
    assert client.calls_to("set_rates") == []


def test_bulk_update_of_unlinked_plan_is_a_conflict(db, bulk, local_only_accommodation, rate_plan):
    with pytest.raises(ConflictError):
        asyncio.run(bulk.apply([_update(local_only_accommodation.id, rate_plan.id, {1: 50})]))


def test_bulk_update_without_openpro_id_is_saved_locally(db, bulk, client, local_only_accommodation, rate_plan):
    RatePlanRepository(db).link(local_only_accommodation.id, rate_plan.id)

    result = asyncio.run(bulk.apply([_update(local_only_accommodation.id, rate_plan.id, {1: 50})]))

    assert result.not_pushed_accommodations == [local_only_accommodation.id]
    assert client.calls_to("set_rates") == []
    assert InventoryRepository(db).get_pricing(local_only_accommodation.id, rate_plan.id, _june(1)).price == 50


def test_bulk_update_rejects_bad_values(bulk, accommodation, rate_plan):
    with pytest.raises(ValidationError):
        asyncio.run(bulk.apply([_update(accommodation.id, rate_plan.id, {1: -5})]))
    with pytest.raises(ValidationError):
        asyncio.run(bulk.apply([
            BulkAccommodationUpdate(accommodation_id=accommodation.id, dates=[BulkDateUpdate(day=_june(1), price=10)])
        ]))


# =====================================================================
# Export
# =====================================================================

def test_export_matches_bulk_periods(db, data_service, bulk, client, accommodation, rate_plan):
    for day, price in {1: 100, 2: 100, 3: 100, 4: 120}.items():
        data_service.save_pricing(accommodation.id, rate_plan.id, _june(day), price=price)
    for day in range(1, 6):
        data_service.save_stock(accommodation.id, _june(day), 1 if day < 4 else 0)

    result = asyncio.run(data_service.export_accommodation_data(accommodation.id, today=JUNE_1))

    assert result.exported_rate_plans == [rate_plan.id]
    assert result.periods_sent == 2
    [(_, _, rates)] = client.calls_to("set_rates")
    assert [(t["debut"], t["fin"], t["dureeMax"]) for t in rates["tarifs"]] == [
        ("2025-06-01", "2025-06-03", 30),
        ("2025-06-04", "2025-06-04", 30),
    ]
    stored = data_service.load_accommodation_data(accommodation.id, JUNE_1, _june(30))["pricing"][rate_plan.id]
    assert rates == build_rates_payload(501, stored)

    asyncio.run(bulk.apply([_update(accommodation.id, rate_plan.id, {1: 100, 2: 100, 3: 100, 4: 120})]))
    [_, (_, _, bulk_rates)] = client.calls_to("set_rates")
    assert bulk_rates == rates
    [(_, _, stock)] = client.calls_to("set_stock")
    assert stock == {"stock": [
        {"debut": "2025-06-01", "fin": "2025-06-03", "dispo": 1},
        {"debut": "2025-06-04", "fin": "2025-06-05", "dispo": 0},
    ]}


def test_export_ignores_data_outside_the_horizon(data_service, client, accommodation, rate_plan):
    data_service.save_pricing(accommodation.id, rate_plan.id, JUNE_1 - timedelta(days=1), price=10)
    data_service.save_pricing(accommodation.id, rate_plan.id, JUNE_1 + timedelta(days=61), price=10)

    result = asyncio.run(data_service.export_accommodation_data(accommodation.id, today=JUNE_1))

    assert result.exported_rate_plans == []
    assert client.calls_to("set_rates") == []


def test_export_skips_unprovisioned_plan_with_warning(db, data_service, client, warnings, accommodation, rate_plan):
    repo = RatePlanRepository(db)
    draft = repo.create(label="Draft")
    repo.link(accommodation.id, draft.id)
    data_service.save_pricing(accommodation.id, draft.id, JUNE_1, price=70)
    data_service.save_pricing(accommodation.id, rate_plan.id, JUNE_1, price=90)

    result = asyncio.run(data_service.export_accommodation_data(accommodation.id, today=JUNE_1, warnings=warnings))

    assert result.skipped_rate_plans == [draft.id]
    assert result.exported_rate_plans == [rate_plan.id]
    assert [w.type for w in warnings.list()] == ["rate_plan_not_provisioned"]


def test_export_rate_failure_is_isolated(data_service, client, warnings, accommodation, rate_plan):
    data_service.save_pricing(accommodation.id, rate_plan.id, JUNE_1, price=90)
    data_service.save_stock(accommodation.id, JUNE_1, 1)
    client.failures.add("set_rates")

    result = asyncio.run(data_service.export_accommodation_data(accommodation.id, today=JUNE_1, warnings=warnings))

    assert result.failed_rate_plans == [rate_plan.id]
    assert result.stock_periods_sent == 1
    assert [w.type for w in warnings.list()] == ["export_rates_failed"]


def test_export_requires_openpro_id(data_service, local_only_accommodation):
    with pytest.raises(ConflictError):
        asyncio.run(data_service.export_accommodation_data(local_only_accommodation.id, today=JUNE_1))
