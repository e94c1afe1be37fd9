"""Visit session API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.domain import EntityType, VisitSession, VisitStatus
from .location import LocationFixModel


class StartVisitRequest(BaseModel):
    entity_type: EntityType
    entity_id: str = Field(..., min_length=1)
    storage_key: Optional[str] = Field(
        default=None,
        description="Key the open visit id is stored under; defaults to FARMER_VISIT / DEALER_VISIT.",
    )
    location: Optional[LocationFixModel] = None
    use_device_location: bool = Field(
        default=False,
        description="Take a fresh fix from the device when no location is supplied.",
    )


class EndVisitRequest(BaseModel):
    remark: str
    visit_purpose: Optional[str] = None


class VisitSessionModel(BaseModel):
    id: str
    entity_type: Optional[EntityType] = None
    status: VisitStatus
    storage_key: str
    started_at: Optional[datetime] = None

    @classmethod
    def from_session(cls, session: VisitSession) -> "VisitSessionModel":
        return cls(
            id=session.id,
            entity_type=session.entity_type,
            status=session.status,
            storage_key=session.storage_key,
            started_at=session.started_at,
        )


class VisitStateResponse(BaseModel):
    storage_key: str
    state: str
    session: Optional[VisitSessionModel] = None


class DiscardVisitResponse(BaseModel):
    storage_key: str
    discarded_id: Optional[str] = None


class VisitHistoryResponse(BaseModel):
    location_id: str
    visit_history: List[Dict[str, Any]]


class VisitPurposesResponse(BaseModel):
    entity_type: EntityType
    purposes: List[Any]
