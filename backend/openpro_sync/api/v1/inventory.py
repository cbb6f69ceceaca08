"""
Inventory API

Accommodations, rate plans and their links, per-date pricing / stock,
bulk calendar edits and the manual export to OpenPro
"""
import logging
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from openpro_sync.adapters.openpro_client import OpenProClient
from openpro_sync.api.deps import get_client
from openpro_sync.api.v1.schemas.inventory import (
    AccommodationCreate,
    AccommodationDataRead,
    AccommodationRead,
    AccommodationUpdate,
    BulkUpdateRequest,
    BulkUpdateResponse,
    DailyValuesRead,
    ExportResultRead,
    ExternalIdUpdate,
    PricingPointWrite,
    RatePlanCreate,
    RatePlanRead,
    StockPointWrite,
    UpstreamDataRead,
    UpstreamRateRead,
    UpstreamStockRead,
)
from openpro_sync.core.config import settings
from openpro_sync.core.errors import NotFoundError, ValidationError
from openpro_sync.db.session import get_db
from openpro_sync.domain.models.accommodation import Accommodation
from openpro_sync.domain.models.local_booking import BookingPlatform
from openpro_sync.repositories.accommodation_repository import AccommodationRepository
from openpro_sync.repositories.rate_plan_repository import RatePlanRepository
from openpro_sync.services.accommodation_data_service import AccommodationDataService
from openpro_sync.services.bulk_update_service import (
    BulkAccommodationUpdate,
    BulkDateUpdate,
    BulkUpdateService,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Inventory"])


def _to_read_model(accommodation: Accommodation) -> AccommodationRead:
    return AccommodationRead(
        id=accommodation.id,
        name=accommodation.name,
        external_ids=accommodation.external_ids,
    )


def _data_service(db: Session, client: OpenProClient) -> AccommodationDataService:
    return AccommodationDataService(
        db,
        client,
        supplier_id=settings.SUPPLIER_ID,
        horizon_days=settings.EXPORT_HORIZON_DAYS,
    )


# --- accommodations ---


@router.get("/accommodations", response_model=List[AccommodationRead])
def list_accommodations(*, db: Session = Depends(get_db)) -> List[AccommodationRead]:
    return [_to_read_model(a) for a in AccommodationRepository(db).list_all()]


@router.post("/accommodations", response_model=AccommodationRead, status_code=status.HTTP_201_CREATED)
def create_accommodation(
    *,
    db: Session = Depends(get_db),
    data: AccommodationCreate,
) -> AccommodationRead:
    accommodation = AccommodationRepository(db).create(name=data.name, external_ids=data.external_ids)
    db.commit()
    return _to_read_model(accommodation)


@router.patch("/accommodations/{accommodation_id}", response_model=AccommodationRead)
def rename_accommodation(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    data: AccommodationUpdate,
) -> AccommodationRead:
    accommodation = AccommodationRepository(db).rename(accommodation_id, data.name)
    db.commit()
    return _to_read_model(accommodation)


@router.put("/accommodations/{accommodation_id}/external-ids/{platform}", response_model=AccommodationRead)
def set_external_id(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    platform: str,
    data: ExternalIdUpdate,
) -> AccommodationRead:
    repo = AccommodationRepository(db)
    repo.get_or_raise(accommodation_id)
    resolved = BookingPlatform.from_label(platform)
    if resolved is BookingPlatform.UNKNOWN:
        raise ValidationError(f"Unknown platform: {platform}")
    tag = resolved.value
    repo.set_external_id(accommodation_id, platform=tag, external_id=data.external_id)
    db.commit()
    return _to_read_model(repo.get_or_raise(accommodation_id))


# --- rate plans ---


@router.get("/rate-plans", response_model=List[RatePlanRead])
def list_rate_plans(
    *,
    db: Session = Depends(get_db),
    accommodation_id: Optional[str] = None,
) -> List[RatePlanRead]:
    repo = RatePlanRepository(db)
    plans = repo.list_for_accommodation(accommodation_id) if accommodation_id else repo.list_all()
    return [RatePlanRead.model_validate(p) for p in plans]


@router.post("/rate-plans", response_model=RatePlanRead, status_code=status.HTTP_201_CREATED)
def create_rate_plan(
    *,
    db: Session = Depends(get_db),
    data: RatePlanCreate,
) -> RatePlanRead:
    # created locally only; the startup sync provisions it upstream
    plan = RatePlanRepository(db).create(
        label=data.label, description=data.description, display_order=data.display_order
    )
    db.commit()
    db.refresh(plan)
    return RatePlanRead.model_validate(plan)


@router.delete("/rate-plans/{rate_plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rate_plan(
    *,
    db: Session = Depends(get_db),
    rate_plan_id: str,
) -> None:
    # store only: links and pricing points go with it, OpenPro keeps its copy
    if not RatePlanRepository(db).delete(rate_plan_id):
        raise NotFoundError("RatePlan", rate_plan_id)
    db.commit()
    logger.info(f"INVENTORY_API: rate plan {rate_plan_id} deleted")


@router.put("/accommodations/{accommodation_id}/rate-plans/{rate_plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def link_rate_plan(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    rate_plan_id: str,
) -> None:
    AccommodationRepository(db).get_or_raise(accommodation_id)
    RatePlanRepository(db).link(accommodation_id, rate_plan_id)
    db.commit()


@router.delete("/accommodations/{accommodation_id}/rate-plans/{rate_plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def unlink_rate_plan(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    rate_plan_id: str,
) -> None:
    RatePlanRepository(db).unlink(accommodation_id, rate_plan_id)
    db.commit()


# --- pricing / stock ---


@router.get("/accommodations/{accommodation_id}/data", response_model=AccommodationDataRead)
def get_accommodation_data(
    *,
    db: Session = Depends(get_db),
    client: OpenProClient = Depends(get_client),
    accommodation_id: str,
    debut: Optional[date] = None,
    fin: Optional[date] = None,
) -> AccommodationDataRead:
    start = debut or date.today()
    end = fin or start + timedelta(days=30)
    data = _data_service(db, client).load_accommodation_data(accommodation_id, start, end)
    return AccommodationDataRead(
        accommodation_id=accommodation_id,
        pricing={
            plan_id: [DailyValuesRead(day=d.day, values=dict(d.values)) for d in days]
            for plan_id, days in data["pricing"].items()
        },
        stock=[DailyValuesRead(day=d.day, values=dict(d.values)) for d in data["stock"]],
    )


@router.get("/accommodations/{accommodation_id}/upstream-data", response_model=UpstreamDataRead)
async def get_upstream_data(
    *,
    db: Session = Depends(get_db),
    client: OpenProClient = Depends(get_client),
    accommodation_id: str,
    debut: Optional[date] = None,
    fin: Optional[date] = None,
) -> UpstreamDataRead:
    start = debut or date.today()
    end = fin or start + timedelta(days=30)
    rates, stock = await _data_service(db, client).load_upstream_data(accommodation_id, start, end)
    return UpstreamDataRead(
        accommodation_id=accommodation_id,
        rates=[UpstreamRateRead.model_validate(r) for r in rates],
        stock=[UpstreamStockRead.model_validate(s) for s in stock],
    )


@router.put("/accommodations/{accommodation_id}/pricing", status_code=status.HTTP_204_NO_CONTENT)
def save_pricing(
    *,
    db: Session = Depends(get_db),
    client: OpenProClient = Depends(get_client),
    accommodation_id: str,
    points: List[PricingPointWrite],
) -> None:
    service = _data_service(db, client)
    for point in points:
        values = point.model_dump(exclude={"rate_plan_id", "day"}, exclude_none=True)
        service.save_pricing(accommodation_id, point.rate_plan_id, point.day, **values)
    db.commit()


@router.put("/accommodations/{accommodation_id}/stock", status_code=status.HTTP_204_NO_CONTENT)
def save_stock(
    *,
    db: Session = Depends(get_db),
    client: OpenProClient = Depends(get_client),
    accommodation_id: str,
    points: List[StockPointWrite],
) -> None:
    service = _data_service(db, client)
    for point in points:
        service.save_stock(accommodation_id, point.day, point.stock)
    db.commit()


@router.post("/accommodations/{accommodation_id}/export", response_model=ExportResultRead)
async def export_accommodation(
    *,
    db: Session = Depends(get_db),
    client: OpenProClient = Depends(get_client),
    accommodation_id: str,
) -> ExportResultRead:
    result = await _data_service(db, client).export_accommodation_data(accommodation_id)
    return ExportResultRead.model_validate(result)


@router.post("/rates/bulk-update", response_model=BulkUpdateResponse)
async def bulk_update(
    *,
    db: Session = Depends(get_db),
    client: OpenProClient = Depends(get_client),
    data: BulkUpdateRequest,
) -> BulkUpdateResponse:
    updates = [
        BulkAccommodationUpdate(
            accommodation_id=acc.accommodation_id,
            dates=[
                BulkDateUpdate(
                    day=d.day,
                    rate_plan_id=d.rate_plan_id,
                    price=d.price,
                    min_stay=d.min_stay,
                    arrival_allowed=d.arrival_allowed,
                )
                for d in acc.dates
            ],
        )
        for acc in data.accommodations
    ]
    result = await BulkUpdateService(db, client, supplier_id=settings.SUPPLIER_ID).apply(updates)
    db.commit()
    return BulkUpdateResponse(
        saved_points=result.saved_points,
        pushed_accommodations=result.pushed_accommodations,
        not_pushed_accommodations=result.not_pushed_accommodations,
        periods_sent=result.periods_sent,
    )
