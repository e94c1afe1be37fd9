"""Proximity request/response schemas."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.domain import EntityType

_NAME_FIELDS = ("name", "farmer_name", "shop_name", "owner_name")


class NearbyEntity(BaseModel):
    """Summary of a farmer or dealer near the agent; unknown backend fields are kept."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_km: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _pick_name(cls, value: Any) -> Any:
        if isinstance(value, dict) and not value.get("name"):
            for field in _NAME_FIELDS[1:]:
                if value.get(field):
                    return {**value, "name": value[field]}
        return value

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class NearbyRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None


class NearbyResponse(BaseModel):
    entity_type: EntityType
    items: List[NearbyEntity]
