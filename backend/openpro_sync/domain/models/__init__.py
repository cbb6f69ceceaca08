# backend/openpro_sync/domain/models/__init__.py

from openpro_sync.db.base import Base

from .local_booking import LocalBooking, BookingPlatform, BookingStatus
from .accommodation import Accommodation, AccommodationExternalId
from .rate_plan import RatePlan, AccommodationRatePlanLink
from .inventory import PricingPoint, StockPoint
from .ical import IcalSyncConfig, IcalCacheEntry

__all__ = [
    "Base",
    "LocalBooking",
    "BookingPlatform",
    "BookingStatus",
    "Accommodation",
    "AccommodationExternalId",
    "RatePlan",
    "AccommodationRatePlanLink",
    "PricingPoint",
    "StockPoint",
    "IcalSyncConfig",
    "IcalCacheEntry",
]
