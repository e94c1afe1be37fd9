"""Location acquisition: permission negotiation, one GPS fix, best-effort address."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from ...config import settings
from ...errors import HardwareUnavailable, LocationError, LocationPermissionRefused, PermissionDenied
from ...models.domain import LocationFix
from ..geospatial import validate_coordinates
from .geocoding import ReverseGeocoder

logger = logging.getLogger(__name__)


class PermissionStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


@dataclass(frozen=True, slots=True)
class PermissionState:
    status: PermissionStatus
    can_ask_again: bool = True

    @property
    def granted(self) -> bool:
        return self.status is PermissionStatus.GRANTED


class Accuracy(str, Enum):
    BALANCED = "balanced"


class PermissionBackend(ABC):
    """Foreground location permission as exposed by the host platform."""

    @abstractmethod
    async def current(self) -> PermissionState:
        raise NotImplementedError

    @abstractmethod
    async def request(self) -> PermissionState:
        raise NotImplementedError


class PositionSource(ABC):
    """Produces a single (latitude, longitude) reading."""

    @abstractmethod
    async def read(self, accuracy: Accuracy) -> tuple[float, float]:
        raise NotImplementedError


class ConfiguredPermissionBackend(PermissionBackend):
    """Permission state taken from configuration.

    ``grantable`` decides the outcome of a request while the state is
    undetermined; a denied state is permanent.
    """

    def __init__(self, status: PermissionStatus | str | None = None, grantable: bool | None = None) -> None:
        self._status = PermissionStatus(status or settings.location_permission)
        self._grantable = settings.location_permission_grantable if grantable is None else grantable

    async def current(self) -> PermissionState:
        return PermissionState(self._status, can_ask_again=self._status is PermissionStatus.UNDETERMINED)

    async def request(self) -> PermissionState:
        if self._status is PermissionStatus.UNDETERMINED:
            self._status = PermissionStatus.GRANTED if self._grantable else PermissionStatus.DENIED
        return await self.current()


class StaticPositionSource(PositionSource):
    """Fixed device position, e.g. a kiosk or a configured development device."""

    def __init__(self, latitude: float | None = None, longitude: float | None = None) -> None:
        self.latitude = latitude if latitude is not None else settings.device_latitude
        self.longitude = longitude if longitude is not None else settings.device_longitude

    async def read(self, accuracy: Accuracy) -> tuple[float, float]:
        if self.latitude is None or self.longitude is None:
            raise HardwareUnavailable("No position source is configured on this device.")
        return self.latitude, self.longitude


class LocationProvider:
    """Point-in-time location fixes for the field workflows."""

    def __init__(
        self,
        permissions: PermissionBackend,
        positions: PositionSource,
        geocoder: ReverseGeocoder | None = None,
        *,
        geocode_timeout: float | None = None,
    ) -> None:
        self._permissions = permissions
        self._positions = positions
        self._geocoder = geocoder
        self.geocode_timeout = geocode_timeout if geocode_timeout is not None else settings.geocode_timeout_seconds

    async def request_when_needed(self) -> bool:
        """Ask for permission only if it is not granted and the platform still allows asking."""

        state = await self._permissions.current()
        if state.granted:
            return True
        if state.can_ask_again:
            return (await self._permissions.request()).granted
        logger.warning(
            "Location permissions are permanently denied; they must be enabled from settings to continue"
        )
        return False

    async def acquire_fix(self) -> LocationFix:
        """Return a fresh fix; raises PermissionDenied or HardwareUnavailable."""

        if not await self.request_when_needed():
            raise PermissionDenied("Location permission was not granted.")

        try:
            latitude, longitude = await self._positions.read(Accuracy.BALANCED)
        except LocationError:
            raise
        except Exception as exc:
            raise HardwareUnavailable(f"Unable to obtain a GPS fix: {exc}") from exc
        if not validate_coordinates(latitude, longitude):
            raise HardwareUnavailable(f"Position source returned an invalid fix ({latitude}, {longitude}).")

        address = await self.reverse_geocode(latitude, longitude)
        return LocationFix(latitude=latitude, longitude=longitude, address=address)

    async def acquire_fix_lenient(self) -> LocationFix | None:
        """Like :meth:`acquire_fix` but never raises location errors."""

        try:
            return await self.acquire_fix()
        except LocationError as exc:
            logger.warning(f"Location unavailable, continuing without a fix: {exc}")
            return None

    async def ensure_startup_permission(self) -> None:
        """Cold-start precondition: raise LocationPermissionRefused if permission cannot be obtained."""

        state = await self._permissions.current()
        if state.granted:
            return
        state = await self._permissions.request()
        if not state.granted:
            logger.error("Location permission denied by user at startup")
            raise LocationPermissionRefused("Location permission is required to use this application.")

    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        if self._geocoder is None:
            return None
        try:
            return await asyncio.wait_for(self._geocoder.reverse(latitude, longitude), timeout=self.geocode_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Reverse geocoding timed out after {self.geocode_timeout:.1f}s")
        except Exception as exc:
            logger.warning(f"Reverse geocoding failed: {exc}")
        return None

    async def aclose(self) -> None:
        if self._geocoder is not None:
            await self._geocoder.aclose()
