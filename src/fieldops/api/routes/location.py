"""Device location endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ...context import AppContext
from ...schemas.location import LocationFixModel, LocationFixResponse
from ..deps import get_context

router = APIRouter(prefix="/location", tags=["location"])


@router.get("/fix", response_model=LocationFixResponse, status_code=status.HTTP_200_OK)
async def get_fix(
    lenient: bool = Query(default=False, description="Return an empty result instead of failing."),
    context: AppContext = Depends(get_context),
) -> LocationFixResponse:
    if lenient:
        fix = await context.location.acquire_fix_lenient()
    else:
        fix = await context.location.acquire_fix()
    if fix is None:
        return LocationFixResponse(available=False)
    return LocationFixResponse(available=True, fix=LocationFixModel.from_fix(fix))
