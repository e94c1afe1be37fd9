"""Geospatial helper functions."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0
COORDINATE_PRECISION = 6


def round_coordinate(value: float) -> float:
    """Round a coordinate to the precision the backend expects."""

    return round(float(value), COORDINATE_PRECISION)


def validate_coordinates(latitude: float | None, longitude: float | None) -> bool:
    """Return True if the pair is present and within WGS84 ranges."""

    if latitude is None or longitude is None:
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def format_coordinates_for_api(
    latitude: float | None, longitude: float | None, prefix: str = ""
) -> dict[str, float]:
    """Build ``{<prefix>latitude, <prefix>longitude}`` rounded for transmission; empty if missing."""

    if latitude is None or longitude is None:
        return {}
    return {
        f"{prefix}latitude": round_coordinate(latitude),
        f"{prefix}longitude": round_coordinate(longitude),
    }


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
