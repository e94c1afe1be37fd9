"""Onboarding endpoints: one pipeline per opened form."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ...context import AppContext
from ...models.domain import EntityType
from ...schemas.onboarding import OnboardingStatusResponse, ResendRequest, SubmitRequest
from ...services.onboarding.pipeline import OnboardingPipeline
from ..deps import get_context

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


def _pipeline(context: AppContext, pipeline_id: str) -> OnboardingPipeline:
    pipeline = context.pipelines.get(pipeline_id)
    if pipeline is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown onboarding session {pipeline_id}")
    return pipeline


@router.post("/{entity_type}", response_model=OnboardingStatusResponse, status_code=status.HTTP_201_CREATED)
def open_pipeline(entity_type: EntityType, context: AppContext = Depends(get_context)) -> OnboardingStatusResponse:
    pipeline_id, pipeline = context.open_onboarding(entity_type)
    return OnboardingStatusResponse.from_pipeline(pipeline_id, pipeline)


@router.get("/{pipeline_id}/status", response_model=OnboardingStatusResponse, status_code=status.HTTP_200_OK)
def pipeline_status(pipeline_id: str, context: AppContext = Depends(get_context)) -> OnboardingStatusResponse:
    return OnboardingStatusResponse.from_pipeline(pipeline_id, _pipeline(context, pipeline_id))


@router.post("/{pipeline_id}/submit", response_model=OnboardingStatusResponse, status_code=status.HTTP_200_OK)
async def submit(
    pipeline_id: str, payload: SubmitRequest, context: AppContext = Depends(get_context)
) -> OnboardingStatusResponse:
    """``accepted`` is false when another submission was already in flight."""
    pipeline = _pipeline(context, pipeline_id)
    result = await pipeline.submit(payload.payload, phone=payload.phone)
    return OnboardingStatusResponse.from_pipeline(pipeline_id, pipeline, accepted=result is not None)


@router.post("/{pipeline_id}/resend", response_model=OnboardingStatusResponse, status_code=status.HTTP_200_OK)
async def resend(
    pipeline_id: str, payload: ResendRequest, context: AppContext = Depends(get_context)
) -> OnboardingStatusResponse:
    pipeline = _pipeline(context, pipeline_id)
    result = await pipeline.resend_otp(payload.phone)
    return OnboardingStatusResponse.from_pipeline(pipeline_id, pipeline, accepted=result is not None)


@router.post("/{pipeline_id}/verified", response_model=OnboardingStatusResponse, status_code=status.HTTP_200_OK)
async def verified(pipeline_id: str, context: AppContext = Depends(get_context)) -> OnboardingStatusResponse:
    pipeline = _pipeline(context, pipeline_id)
    await pipeline.mark_verified()
    context.close_onboarding(pipeline_id)
    return OnboardingStatusResponse.from_pipeline(pipeline_id, pipeline)


@router.delete("/{pipeline_id}", status_code=status.HTTP_204_NO_CONTENT)
def close_pipeline(pipeline_id: str, context: AppContext = Depends(get_context)) -> None:
    _pipeline(context, pipeline_id)
    context.close_onboarding(pipeline_id)
