"""
iCal API

Per-platform export feeds, import configuration, manual import,
supplier-wide cached feed
"""
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from openpro_sync.api.deps import get_sync_warnings
from openpro_sync.api.v1.schemas.ical import (
    CacheVersionRead,
    IcalConfigRead,
    IcalConfigUpdate,
    IcalImportResultRead,
    IcalSyncAllResponse,
)
from openpro_sync.core.config import settings
from openpro_sync.core.errors import NotFoundError
from openpro_sync.db.session import get_db
from openpro_sync.services.ical_cache_service import build_base_key
from openpro_sync.services.ical_service import IcalService
from openpro_sync.services.sync_warnings import SyncWarnings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ical", tags=["iCal"])

ICAL_MEDIA_TYPE = "text/calendar; charset=utf-8"


def _service(db: Session) -> IcalService:
    return IcalService(
        db,
        supplier_id=settings.SUPPLIER_ID,
        public_base_url=settings.PUBLIC_BASE_URL,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


# ========== Feeds ==========

@router.get("/export/{accommodation_id}/{platform}")
def export_feed(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    platform: str,
) -> Response:
    content = _service(db).export_feed(accommodation_id, platform)
    return Response(content=content, media_type=ICAL_MEDIA_TYPE)


@router.get("/supplier")
def supplier_feed(
    *,
    db: Session = Depends(get_db),
    debut: Optional[date] = None,
    fin: Optional[date] = None,
    hebergement: Optional[str] = None,
    refresh: bool = False,
) -> Response:
    content = _service(db).supplier_feed(
        start=debut, end=fin, accommodation_id=hebergement, refresh=refresh
    )
    db.commit()
    return Response(content=content, media_type=ICAL_MEDIA_TYPE)


@router.get("/supplier/history", response_model=List[CacheVersionRead])
def supplier_feed_history(
    *,
    db: Session = Depends(get_db),
    debut: Optional[date] = None,
    fin: Optional[date] = None,
    hebergement: Optional[str] = None,
) -> List[CacheVersionRead]:
    service = _service(db)
    base_key = build_base_key(settings.SUPPLIER_ID, start=debut, end=fin, accommodation_id=hebergement)
    return [CacheVersionRead.model_validate(v) for v in service.cache.history(base_key)]


# ========== Configs ==========

@router.get("/configs/{accommodation_id}", response_model=List[IcalConfigRead])
def list_configs(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
) -> List[IcalConfigRead]:
    return [IcalConfigRead.model_validate(c) for c in _service(db).list_configs(accommodation_id)]


@router.get("/configs/{accommodation_id}/{platform}", response_model=IcalConfigRead)
def get_config(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    platform: str,
) -> IcalConfigRead:
    config = _service(db).get_config(accommodation_id, platform)
    if config is None:
        raise NotFoundError("IcalSyncConfig", f"{accommodation_id}/{platform}")
    return IcalConfigRead.model_validate(config)


@router.put("/configs/{accommodation_id}/{platform}", response_model=IcalConfigRead)
def save_config(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    platform: str,
    data: IcalConfigUpdate,
) -> IcalConfigRead:
    config = _service(db).save_config(accommodation_id, platform, import_url=data.import_url)
    db.commit()
    db.refresh(config)
    return IcalConfigRead.model_validate(config)


@router.delete("/configs/{accommodation_id}/{platform}", status_code=status.HTTP_204_NO_CONTENT)
def delete_config(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    platform: str,
) -> None:
    if not _service(db).delete_config(accommodation_id, platform):
        raise NotFoundError("IcalSyncConfig", f"{accommodation_id}/{platform}")
    db.commit()


# ========== Import ==========

@router.post("/import/{accommodation_id}/{platform}", response_model=IcalImportResultRead)
async def import_feed(
    *,
    db: Session = Depends(get_db),
    accommodation_id: str,
    platform: str,
) -> IcalImportResultRead:
    result = await _service(db).import_feed(accommodation_id, platform)
    db.commit()
    return IcalImportResultRead.model_validate(result)


@router.post("/sync-all", response_model=IcalSyncAllResponse)
async def sync_all(
    *,
    db: Session = Depends(get_db),
    warnings: SyncWarnings = Depends(get_sync_warnings),
) -> IcalSyncAllResponse:
    summary = await _service(db).sync_all_imports(warnings=warnings)
    db.commit()
    return IcalSyncAllResponse(
        results=[IcalImportResultRead.model_validate(r) for r in summary.results],
        errors=summary.errors,
    )
