"""Visit session endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...context import AppContext
from ...models.domain import EntityType, LocationFix
from ...schemas.visits import (
    DiscardVisitResponse,
    EndVisitRequest,
    StartVisitRequest,
    VisitHistoryResponse,
    VisitPurposesResponse,
    VisitSessionModel,
    VisitStateResponse,
)
from ..deps import get_context

router = APIRouter(prefix="/visits", tags=["visits"])


@router.get("/history/{location_id}", response_model=VisitHistoryResponse, status_code=status.HTTP_200_OK)
async def visit_history(location_id: str, context: AppContext = Depends(get_context)) -> VisitHistoryResponse:
    history = await context.visits.visit_history(location_id)
    return VisitHistoryResponse(location_id=location_id, visit_history=history)


@router.get("/purposes/{entity_type}", response_model=VisitPurposesResponse, status_code=status.HTTP_200_OK)
async def visit_purposes(entity_type: EntityType, context: AppContext = Depends(get_context)) -> VisitPurposesResponse:
    purposes = await context.visits.visit_purposes(entity_type)
    return VisitPurposesResponse(entity_type=entity_type, purposes=purposes)


@router.post("/start", response_model=VisitSessionModel, status_code=status.HTTP_201_CREATED)
async def start_visit(payload: StartVisitRequest, context: AppContext = Depends(get_context)) -> VisitSessionModel:
    fix = None
    if payload.location is not None:
        fix = LocationFix(
            latitude=payload.location.latitude,
            longitude=payload.location.longitude,
            address=payload.location.address,
        )
    elif payload.use_device_location:
        fix = await context.location.acquire_fix_lenient()
    session = await context.visits.start_visit(
        payload.entity_type,
        payload.entity_id,
        storage_key=payload.storage_key,
        fix=fix,
    )
    return VisitSessionModel.from_session(session)


@router.get("/{storage_key}", response_model=VisitStateResponse, status_code=status.HTTP_200_OK)
async def visit_state(storage_key: str, context: AppContext = Depends(get_context)) -> VisitStateResponse:
    """Decides whether the screen shows Visit In or Visit Out."""
    session = await context.visits.current_session(storage_key)
    return VisitStateResponse(
        storage_key=storage_key,
        state="open" if session else "idle",
        session=VisitSessionModel.from_session(session) if session else None,
    )


@router.post("/{storage_key}/end", response_model=VisitSessionModel, status_code=status.HTTP_200_OK)
async def end_visit(
    storage_key: str, payload: EndVisitRequest, context: AppContext = Depends(get_context)
) -> VisitSessionModel:
    session = await context.visits.end_visit(storage_key, payload.remark, visit_purpose=payload.visit_purpose)
    return VisitSessionModel.from_session(session)


@router.delete("/{storage_key}", response_model=DiscardVisitResponse, status_code=status.HTTP_200_OK)
async def discard_visit(storage_key: str, context: AppContext = Depends(get_context)) -> DiscardVisitResponse:
    discarded = await context.visits.discard_stale(storage_key)
    return DiscardVisitResponse(storage_key=storage_key, discarded_id=discarded)
