"""Nearby farmer/dealer endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, status

from ...context import AppContext
from ...models.domain import EntityType, LocationFix
from ...schemas.nearby import NearbyRequest, NearbyResponse
from ...services.proximity.service import load_nearby
from ..deps import get_context

router = APIRouter(prefix="/nearby", tags=["nearby"])


@router.post("/{entity_type}", response_model=NearbyResponse, status_code=status.HTTP_200_OK)
async def find_nearby(
    entity_type: EntityType,
    payload: Optional[NearbyRequest] = Body(default=None),
    context: AppContext = Depends(get_context),
) -> NearbyResponse:
    """List entities near the given point, or near the device when no point is sent.

    Empty results and failures both return an empty list; the operator alert
    is queued under ``/notifications``.
    """
    if payload is not None:
        fix = LocationFix(latitude=payload.latitude, longitude=payload.longitude, address=payload.address)
    else:
        fix = await context.location.acquire_fix()
    items = await load_nearby(context.proximity, context.notifier, entity_type, fix)
    return NearbyResponse(entity_type=entity_type, items=items)
