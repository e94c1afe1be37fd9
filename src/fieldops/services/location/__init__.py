"""Location acquisition and reverse geocoding."""

from .geocoding import GoogleReverseGeocoder, NominatimReverseGeocoder, ReverseGeocoder, build_geocoder
from .provider import (
    Accuracy,
    ConfiguredPermissionBackend,
    LocationProvider,
    PermissionBackend,
    PermissionState,
    PermissionStatus,
    PositionSource,
    StaticPositionSource,
)

__all__ = [
    "Accuracy",
    "ConfiguredPermissionBackend",
    "GoogleReverseGeocoder",
    "LocationProvider",
    "NominatimReverseGeocoder",
    "PermissionBackend",
    "PermissionState",
    "PermissionStatus",
    "PositionSource",
    "ReverseGeocoder",
    "StaticPositionSource",
    "build_geocoder",
]
