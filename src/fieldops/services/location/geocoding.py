"""Reverse geocoding clients (lat/lon -> address label).

Public geocoding services are rate-limited and may be slow; callers bound
every lookup with a short timeout and treat any failure as "no address".
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ...config import settings

logger = logging.getLogger(__name__)


class ReverseGeocoder(ABC):
    """Contract for reverse geocoding implementations."""

    @abstractmethod
    async def reverse(self, latitude: float, longitude: float) -> str | None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class _HttpReverseGeocoder(ReverseGeocoder):
    def __init__(self, *, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None, headers: dict[str, str] | None = None) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout if timeout is not None else settings.geocode_timeout_seconds),
            headers={"Accept": "application/json", **(headers or {})},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class GoogleReverseGeocoder(_HttpReverseGeocoder):
    """Google Geocoding API; the first result's ``formatted_address`` is the label."""

    def __init__(
        self,
        api_key: str | None = None,
        url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key or settings.google_api_key
        self.url = url or settings.geocode_url

    async def reverse(self, latitude: float, longitude: float) -> str | None:
        if not self.api_key:
            logger.debug("Google geocoding skipped: no API key configured")
            return None
        response = await self._client.get(self.url, params={"latlng": f"{latitude},{longitude}", "key": self.api_key})
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            logger.debug(f"Google geocoding returned status {data.get('status')!r}")
            return None
        return results[0].get("formatted_address") or None


class NominatimReverseGeocoder(_HttpReverseGeocoder):
    """Reverse geocoder using OpenStreetMap Nominatim.

    Nominatim's usage policy requires a descriptive User-Agent.
    """

    def __init__(
        self,
        url: str | None = None,
        user_agent: str | None = None,
        *,
        zoom: int = 18,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": user_agent or settings.nominatim_user_agent},
        )
        self.url = url or settings.nominatim_url
        self.zoom = zoom

    async def reverse(self, latitude: float, longitude: float) -> str | None:
        params = {
            "format": "jsonv2",
            "lat": f"{latitude:.8f}",
            "lon": f"{longitude:.8f}",
            "zoom": str(self.zoom),
        }
        response = await self._client.get(self.url, params=params)
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        return str(data.get("display_name") or "") or None


def build_geocoder(provider: str | None = None) -> ReverseGeocoder | None:
    """Geocoder for the configured provider, or ``None`` when geocoding is disabled."""

    provider = provider or settings.geocode_provider
    if provider == "google":
        return GoogleReverseGeocoder()
    if provider == "nominatim":
        return NominatimReverseGeocoder()
    return None
