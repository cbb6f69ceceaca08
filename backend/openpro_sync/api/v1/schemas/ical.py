# backend/openpro_sync/api/v1/schemas/ical.py

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class IcalConfigUpdate(BaseModel):
    import_url: Optional[str] = None


class IcalConfigRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    accommodation_id: str
    platform: str
    import_url: Optional[str] = None
    export_url: Optional[str] = None
    last_synced_at: Optional[datetime] = None


class IcalImportResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    accommodation_id: str
    platform: str
    events: int
    created: int
    updated: int
    unchanged: int
    cancelled: int
    removed: int
    skipped: int


class IcalSyncAllResponse(BaseModel):
    results: list[IcalImportResultRead]
    errors: dict[str, str]


class CacheVersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: str
    size: int
