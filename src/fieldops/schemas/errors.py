"""Error body returned by the facade."""

from __future__ import annotations

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    kind: str
    title: str
    message: str
