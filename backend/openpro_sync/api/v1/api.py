# backend/openpro_sync/api/v1/api.py

from fastapi import APIRouter

from openpro_sync.api.v1 import (
    admin,
    bookings,
    ical,
    inventory,
)

api_router = APIRouter()

api_router.include_router(bookings.router)
api_router.include_router(ical.router)
api_router.include_router(inventory.router)
api_router.include_router(admin.router)
