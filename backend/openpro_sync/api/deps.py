# backend/openpro_sync/api/deps.py

from fastapi import Request

from openpro_sync.adapters.openpro_client import OpenProClient, get_openpro_client
from openpro_sync.services.sync_warnings import SyncWarnings


def get_client() -> OpenProClient:
    return get_openpro_client()


def get_sync_warnings(request: Request) -> SyncWarnings:
    """The application-wide accumulator created in main.create_app."""
    return request.app.state.sync_warnings
