# backend/openpro_sync/api/v1/schemas/inventory.py

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AccommodationCreate(BaseModel):
    name: str
    external_ids: dict[str, str] = Field(default_factory=dict, description="platform -> external id")


class AccommodationUpdate(BaseModel):
    name: str


class ExternalIdUpdate(BaseModel):
    external_id: str


class AccommodationRead(BaseModel):
    id: str
    name: str
    external_ids: dict[str, str]


class RatePlanCreate(BaseModel):
    label: Any = None
    description: Any = None
    display_order: Optional[int] = None


class RatePlanRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    external_id: Optional[int] = None
    label: Any = None
    description: Any = None
    display_order: Optional[int] = None


class PricingPointWrite(BaseModel):
    rate_plan_id: str
    day: date
    price: Optional[float] = None
    min_stay: Optional[int] = None
    max_stay: Optional[int] = None
    arrival_allowed: Optional[bool] = None
    departure_allowed: Optional[bool] = None


class StockPointWrite(BaseModel):
    day: date
    stock: int


class DailyValuesRead(BaseModel):
    day: date
    values: dict[str, Any]


class AccommodationDataRead(BaseModel):
    accommodation_id: str
    pricing: dict[str, list[DailyValuesRead]]
    stock: list[DailyValuesRead]


class UpstreamRateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rate_plan_external_id: int
    start: date
    end: date
    price: Optional[float] = None
    min_stay: Optional[int] = None
    max_stay: Optional[int] = None
    arrival_allowed: Optional[bool] = None
    departure_allowed: Optional[bool] = None


class UpstreamStockRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    stock: int


class UpstreamDataRead(BaseModel):
    accommodation_id: str
    rates: list[UpstreamRateRead]
    stock: list[UpstreamStockRead]


class BulkDateUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day: date = Field(..., alias="date")
    rate_plan_id: Optional[str] = None
    price: Optional[float] = None
    min_stay: Optional[int] = None
    arrival_allowed: Optional[bool] = None


class BulkAccommodationUpdateIn(BaseModel):
    accommodation_id: str
    dates: list[BulkDateUpdateIn]


class BulkUpdateRequest(BaseModel):
    accommodations: list[BulkAccommodationUpdateIn]


class BulkUpdateResponse(BaseModel):
    saved_points: int
    pushed_accommodations: list[str]
    not_pushed_accommodations: list[str]
    periods_sent: int


class ExportResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    accommodation_id: str
    exported_rate_plans: list[str]
    skipped_rate_plans: list[str]
    failed_rate_plans: list[str]
    periods_sent: int
    stock_periods_sent: int
    stock_failed: bool
