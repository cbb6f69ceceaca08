# backend/tests/conftest.py
from __future__ import annotations

import os

# before any openpro_sync import: the settings object reads these once
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["STARTUP_SYNC_ENABLED"] = "false"

from copy import deepcopy
from datetime import date
from typing import Any, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import openpro_sync.domain.models  # noqa: F401
from openpro_sync.core.errors import UpstreamError
from openpro_sync.db.base import Base
from openpro_sync.domain.models.local_booking import BookingPlatform
from openpro_sync.repositories.accommodation_repository import AccommodationRepository
from openpro_sync.repositories.rate_plan_repository import RatePlanRepository
from openpro_sync.services.sync_warnings import SyncWarnings

SUPPLIER_ID = 47186


class FakeOpenProClient:
    """
    In-memory stand-in for OpenProClient.

    Returns raw OpenPro-shaped JSON like the real client. Any method name put
    in `failures` raises UpstreamError; `calls` records (method, args).
    """

    def __init__(self) -> None:
        self.accommodations: dict[int, dict] = {}
        self.rate_plans: dict[int, dict] = {}
        self.links: dict[int, set[int]] = {}
        self.bookings: list[dict] = []
        self.rates: dict[int, list[dict]] = {}
        self.stock: dict[int, list[dict]] = {}
        self.failures: set[str] = set()
        self.calls: list[tuple[str, tuple]] = []
        self._next_rate_plan_id = 1000

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.failures:
            raise UpstreamError(f"{name} failed", status_code=500)

    def calls_to(self, name: str) -> list[tuple]:
        return [args for method, args in self.calls if method == name]

    # --- setup helpers ---

    def add_accommodation(self, external_id: int, name: str = "Gîte") -> None:
        self.accommodations[external_id] = {
            "cleHebergement": {"idHebergement": external_id},
            "nom": name,
        }

    def add_booking(
        self,
        *,
        reference: int,
        accommodation_external_id: int,
        arrival: date,
        departure: date,
        transaction: Optional[str] = "transactionOpenPro",
        statut: str = "confirme",
        nom: str = "Dupont",
        prenom: str = "Jean",
    ) -> None:
        record: dict[str, Any] = {
            "cleDossier": {"idDossier": reference},
            "statut": statut,
            "contact": {"nom": nom, "prenom": prenom, "email": f"{prenom.lower()}@example.com"},
            "listeHebergement": [
                {
                    "cleHebergement": {"idHebergement": accommodation_external_id},
                    "sejour": {"debut": arrival.isoformat(), "fin": departure.isoformat()},
                    "pax": {"nbPers": 2},
                    "montant": 300,
                }
            ],
        }
        if transaction:
            record["transaction"] = {transaction: {"id": reference}}
        self.bookings.append(record)

    # --- client surface ---

    async def list_accommodations(self, supplier_id: int) -> Any:
        self._call("list_accommodations", supplier_id)
        return {"listeHebergement": list(self.accommodations.values())}

    async def get_accommodation(self, supplier_id: int, accommodation_id: int) -> Any:
        self._call("get_accommodation", supplier_id, accommodation_id)
        return self.accommodations.get(accommodation_id, {})

    async def list_rate_plans(self, supplier_id: int) -> Any:
        self._call("list_rate_plans", supplier_id)
        return {"typeTarifs": list(self.rate_plans.values())}

    async def create_rate_plan(self, supplier_id: int, payload: dict[str, Any]) -> Any:
        self._call("create_rate_plan", supplier_id, deepcopy(payload))
        rate_plan_id = self._next_rate_plan_id
        self._next_rate_plan_id += 1
        self.rate_plans[rate_plan_id] = {"cleTypeTarif": {"idTypeTarif": rate_plan_id}, **payload}
        return {"cleTypeTarif": {"idTypeTarif": rate_plan_id}}

    async def update_rate_plan(self, supplier_id: int, rate_plan_id: int, payload: dict[str, Any]) -> Any:
        self._call("update_rate_plan", supplier_id, rate_plan_id, deepcopy(payload))
        self.rate_plans.setdefault(rate_plan_id, {}).update(payload)
        return {}

    async def list_rate_plan_links(self, supplier_id: int, accommodation_id: int) -> Any:
        self._call("list_rate_plan_links", supplier_id, accommodation_id)
        return {
            "liaisons": [
                {"idTypeTarif": rate_plan_id}
                for rate_plan_id in sorted(self.links.get(accommodation_id, set()))
            ]
        }

    async def create_rate_plan_link(self, supplier_id: int, accommodation_id: int, rate_plan_id: int) -> Any:
        self._call("create_rate_plan_link", supplier_id, accommodation_id, rate_plan_id)
        self.links.setdefault(accommodation_id, set()).add(rate_plan_id)
        return {}

    async def get_rates(self, supplier_id: int, accommodation_id: int, *, start: str, end: str) -> Any:
        self._call("get_rates", supplier_id, accommodation_id, start, end)
        return {"tarifs": self.rates.get(accommodation_id, [])}

    async def set_rates(self, supplier_id: int, accommodation_id: int, payload: dict[str, Any]) -> Any:
        self._call("set_rates", supplier_id, accommodation_id, deepcopy(payload))
        self.rates.setdefault(accommodation_id, []).extend(payload.get("tarifs", []))
        return {}

    async def get_stock(self, supplier_id: int, accommodation_id: int, *, start: str, end: str) -> Any:
        self._call("get_stock", supplier_id, accommodation_id, start, end)
        return {"stock": self.stock.get(accommodation_id, [])}

    async def set_stock(self, supplier_id: int, accommodation_id: int, payload: dict[str, Any]) -> Any:
        self._call("set_stock", supplier_id, accommodation_id, deepcopy(payload))
        self.stock[accommodation_id] = list(payload.get("stock", []))
        return {}

    async def list_bookings(self, supplier_id: int) -> Any:
        self._call("list_bookings", supplier_id)
        return {"listeDossier": deepcopy(self.bookings)}


# =====================================================================
# Fixtures
# =====================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return FakeOpenProClient()


@pytest.fixture
def warnings():
    return SyncWarnings()


@pytest.fixture
def accommodation(db):
    """Accommodation known to OpenPro as 101."""
    acc = AccommodationRepository(db).create(
        name="Gîte des Chênes",
        external_ids={BookingPlatform.OPENPRO.value: 101},
    )
    db.commit()
    return acc


@pytest.fixture
def local_only_accommodation(db):
    acc = AccommodationRepository(db).create(name="Cabane")
    db.commit()
    return acc


@pytest.fixture
def rate_plan(db, accommodation):
    """Provisioned (OpenPro 501) and linked to `accommodation`."""
    repo = RatePlanRepository(db)
    plan = repo.create(label="Standard", external_id=501)
    repo.link(accommodation.id, plan.id)
    db.commit()
    return plan
