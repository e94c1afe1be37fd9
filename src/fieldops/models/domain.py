"""Domain models for field entities, location fixes, visits and onboarding."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class EntityType(str, Enum):
    """Kinds of field entity an agent can visit or onboard."""

    FARMER = "farmer"
    DEALER = "dealer"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def collection_key(self) -> str:
        """Key holding the result list in proximity responses."""
        return f"{self.value}s"

    @property
    def phone_field(self) -> str:
        return "mobile_no" if self is EntityType.FARMER else "phone"

    @property
    def visit_storage_key(self) -> str:
        return f"{self.name}_VISIT"


@dataclass(frozen=True, slots=True)
class LocationFix:
    """A single point-in-time GPS reading with an optional address label."""

    latitude: float
    longitude: float
    address: Optional[str] = None


class VisitStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(slots=True)
class VisitSession:
    """Server-tracked visit; only ``id`` is persisted on the device."""

    id: str
    entity_type: Optional[EntityType]
    status: VisitStatus
    storage_key: str
    started_at: Optional[datetime] = None


@dataclass(slots=True)
class OnboardingRecord:
    """In-memory progress of registering one farmer or dealer."""

    entity_type: EntityType
    phone: str = ""
    entity_id: Optional[str] = None
    otp_dispatched: bool = False
    verified: bool = False
