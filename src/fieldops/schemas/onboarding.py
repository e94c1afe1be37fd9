"""Onboarding API schemas."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..errors import describe_error
from ..models.domain import EntityType
from ..services.onboarding.pipeline import OnboardingPipeline


class SubmitRequest(BaseModel):
    payload: Dict[str, Any] = Field(default_factory=dict, description="Entity fields sent to the create call.")
    phone: Optional[str] = Field(default=None, description="Phone to verify; defaults to the payload's phone field.")


class ResendRequest(BaseModel):
    phone: Optional[str] = None


class OnboardingErrorModel(BaseModel):
    kind: str
    title: Optional[str] = None
    message: str


class OnboardingStatusResponse(BaseModel):
    pipeline_id: str
    entity_type: EntityType
    state: str
    entity_id: Optional[str] = None
    phone: str = ""
    otp_dispatched: bool = False
    verified: bool = False
    in_flight: bool = False
    accepted: bool = True
    last_error: Optional[OnboardingErrorModel] = None

    @classmethod
    def from_pipeline(cls, pipeline_id: str, pipeline: OnboardingPipeline, *, accepted: bool = True) -> "OnboardingStatusResponse":
        last_error = None
        if pipeline.last_error is not None:
            described = describe_error(pipeline.last_error)
            last_error = OnboardingErrorModel(
                kind=pipeline.last_error.kind.value,
                title=described.title if described else None,
                message=described.message if described else str(pipeline.last_error),
            )
        record = pipeline.record
        return cls(
            pipeline_id=pipeline_id,
            entity_type=pipeline.entity_type,
            state=pipeline.state.value,
            entity_id=record.entity_id,
            phone=record.phone,
            otp_dispatched=record.otp_dispatched,
            verified=record.verified,
            in_flight=pipeline.in_flight,
            accepted=accepted,
            last_error=last_error,
        )
