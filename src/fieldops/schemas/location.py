"""Location fix schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from ..models.domain import LocationFix


class LocationFixModel(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = None

    @classmethod
    def from_fix(cls, fix: LocationFix) -> "LocationFixModel":
        return cls(latitude=fix.latitude, longitude=fix.longitude, address=fix.address)


class LocationFixResponse(BaseModel):
    available: bool
    fix: Optional[LocationFixModel] = None
