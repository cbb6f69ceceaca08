# backend/openpro_sync/api/v1/schemas/admin.py

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SyncWarningRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    message: str
    accommodation_id: Optional[str] = None
    rate_plan_id: Optional[str] = None
    created_at: datetime


class SyncWarningsResponse(BaseModel):
    count: int
    warnings: list[SyncWarningRead]


class SyncRunResponse(BaseModel):
    passes: dict[str, str]
    failed_passes: list[str]
    warnings: int
    started_at: datetime
    finished_at: Optional[datetime] = None


class SchedulerStatusResponse(BaseModel):
    running: bool
    interval_minutes: Optional[int]
    next_run: Optional[str]
