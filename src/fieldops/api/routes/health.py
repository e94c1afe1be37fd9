"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...context import AppContext
from ..deps import get_context

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/session", status_code=status.HTTP_200_OK)
def health_session(context: AppContext = Depends(get_context)) -> dict:
    """Whether a credential is loaded and where navigation currently points."""
    return {
        "authenticated": context.current_user is not None,
        "route": context.navigator.current_route,
        "backend": context.settings.api_base_url,
    }
