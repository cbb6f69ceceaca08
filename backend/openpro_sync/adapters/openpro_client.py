from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

import httpx

from openpro_sync.core.config import settings
from openpro_sync.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class OpenProClient:
    """
    Async wrapper around the OpenPro "tarif multi" REST API.

    - returns the decoded JSON body as-is; field-name drift is handled by
      openpro_sync.adapters.openpro_payloads
    - every transport or HTTP status failure is raised as UpstreamError
    - no retries: callers decide whether a failure is fatal or a warning
    """

    def __init__(self, base_url: str, api_key: str | None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"OsApiKey {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(),
                )
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"OPENPRO_CLIENT: Timeout {method} {path}")
            raise UpstreamError(f"OpenPro timeout on {method} {path}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"OPENPRO_CLIENT: {method} {path} -> HTTP {status}")
            raise UpstreamError(
                f"OpenPro {method} {path} failed with HTTP {status}",
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"OPENPRO_CLIENT: {method} {path} failed: {e}")
            raise UpstreamError(f"OpenPro {method} {path} failed: {e}") from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"OpenPro {method} {path} returned invalid JSON") from e

    # --- accommodations ---

    async def list_accommodations(self, supplier_id: int) -> Any:
        return await self._request("GET", f"/fournisseur/{supplier_id}/hebergements")

    async def get_accommodation(self, supplier_id: int, accommodation_id: int) -> Any:
        return await self._request(
            "GET", f"/fournisseur/{supplier_id}/hebergements/{accommodation_id}"
        )

    # --- rate plans (types de tarif) ---

    async def list_rate_plans(self, supplier_id: int) -> Any:
        return await self._request("GET", f"/fournisseur/{supplier_id}/typetarifs")

    async def create_rate_plan(self, supplier_id: int, payload: dict[str, Any]) -> Any:
        return await self._request(
            "POST", f"/fournisseur/{supplier_id}/typetarifs", json=payload
        )

    async def update_rate_plan(
        self, supplier_id: int, rate_plan_id: int, payload: dict[str, Any]
    ) -> Any:
        return await self._request(
            "PUT", f"/fournisseur/{supplier_id}/typetarifs/{rate_plan_id}", json=payload
        )

    # --- accommodation <-> rate plan links ---

    async def list_rate_plan_links(self, supplier_id: int, accommodation_id: int) -> Any:
        return await self._request(
            "GET", f"/fournisseur/{supplier_id}/hebergements/{accommodation_id}/typetarifs"
        )

    async def create_rate_plan_link(
        self, supplier_id: int, accommodation_id: int, rate_plan_id: int
    ) -> Any:
        return await self._request(
            "POST",
            f"/fournisseur/{supplier_id}/hebergements/{accommodation_id}/typetarifs/{rate_plan_id}",
        )

    # --- rates / stock ---

    async def get_rates(
        self, supplier_id: int, accommodation_id: int, *, start: str, end: str
    ) -> Any:
        return await self._request(
            "GET",
            f"/fournisseur/{supplier_id}/hebergements/{accommodation_id}/typetarifs/tarif",
            params={"debut": start, "fin": end},
        )

    async def set_rates(
        self, supplier_id: int, accommodation_id: int, payload: dict[str, Any]
    ) -> Any:
        return await self._request(
            "POST",
            f"/fournisseur/{supplier_id}/hebergements/{accommodation_id}/typetarifs/tarif",
            json=payload,
        )

    async def get_stock(
        self, supplier_id: int, accommodation_id: int, *, start: str, end: str
    ) -> Any:
        return await self._request(
            "GET",
            f"/fournisseur/{supplier_id}/hebergements/{accommodation_id}/stock",
            params={"debut": start, "fin": end},
        )

    async def set_stock(
        self, supplier_id: int, accommodation_id: int, payload: dict[str, Any]
    ) -> Any:
        return await self._request(
            "POST",
            f"/fournisseur/{supplier_id}/hebergements/{accommodation_id}/stock",
            json=payload,
        )

    # --- bookings (dossiers) ---

    async def list_bookings(self, supplier_id: int) -> Any:
        return await self._request("GET", f"/fournisseur/{supplier_id}/dossiers")


@lru_cache()
def get_openpro_client() -> OpenProClient:
    return OpenProClient(
        base_url=settings.OPENPRO_BASE_URL,
        api_key=settings.OPENPRO_API_KEY or None,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
