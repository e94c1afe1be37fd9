"""Operator notification queue."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ...context import AppContext
from ..deps import get_context

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationModel(BaseModel):
    kind: str
    title: str
    message: str


@router.get("", response_model=List[NotificationModel], status_code=status.HTTP_200_OK)
def drain_notifications(context: AppContext = Depends(get_context)) -> List[NotificationModel]:
    return [
        NotificationModel(kind=item.kind, title=item.title, message=item.message)
        for item in context.notifier.drain()
    ]
