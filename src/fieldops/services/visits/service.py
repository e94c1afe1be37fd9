"""Visit session lifecycle: start-visit / end-visit with the open id persisted on device."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ...config import settings
from ...errors import (
    ErrorKind,
    GatewayError,
    IllegalTransition,
    NoOpenVisitError,
    RemarkValidationError,
    StaleVisitError,
)
from ...models.domain import EntityType, LocationFix, VisitSession, VisitStatus
from ...persistence.keyvalue import KeyValueStore
from ..geospatial import format_coordinates_for_api
from ..http.gateway import HttpGateway
from ..http.retry import retry_read

logger = logging.getLogger(__name__)


class VisitState(str, Enum):
    IDLE = "idle"
    OPEN = "open"


class VisitAction(str, Enum):
    START = "start"
    END = "end"


TRANSITIONS: dict[tuple[VisitState, VisitAction], VisitState] = {
    (VisitState.IDLE, VisitAction.START): VisitState.OPEN,
    (VisitState.OPEN, VisitAction.END): VisitState.IDLE,
}


def next_state(current: VisitState, action: VisitAction) -> VisitState:
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        target = VisitState.OPEN if action is VisitAction.START else VisitState.IDLE
        raise IllegalTransition("visit", current, target) from None


def start_key_for(storage_key: str) -> str:
    """Companion key holding the start timestamp of the visit stored under ``storage_key``."""

    if "VISIT" in storage_key:
        return storage_key.replace("VISIT", "START")
    return f"{storage_key}_START"


def validate_remark(remark: str | None, *, min_length: int | None = None, max_length: int | None = None) -> str:
    """Return the trimmed remark or raise RemarkValidationError."""

    minimum = min_length if min_length is not None else settings.remark_min_length
    maximum = max_length if max_length is not None else settings.remark_max_length
    text = (remark or "").strip()
    if not text:
        raise RemarkValidationError("Remark is required")
    if len(text) < minimum:
        raise RemarkValidationError(f"Remark must be at least {minimum} characters")
    if len(text) > maximum:
        raise RemarkValidationError(f"Remark must be less than {maximum} characters")
    return text


def _session_id_from(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    value = payload.get("id")
    if value is None and isinstance(payload.get("data"), dict):
        value = payload["data"].get("id")
    return str(value) if value is not None else None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Ignoring unreadable visit start time {value!r}")
        return None


class VisitSessionManager:
    """Sole writer of the persisted visit id for each storage key.

    The stored id is the source of truth for whether a visit is open: the UI
    reads it on screen entry to decide between the Visit In and Visit Out
    affordances, which is how an in-progress visit survives restarts.
    """

    def __init__(self, gateway: HttpGateway, store: KeyValueStore) -> None:
        self._gateway = gateway
        self._store = store

    async def current_session_id(self, storage_key: str) -> str | None:
        return await self._store.get(storage_key)

    async def state(self, storage_key: str) -> VisitState:
        return VisitState.OPEN if await self.current_session_id(storage_key) else VisitState.IDLE

    async def current_session(self, storage_key: str) -> VisitSession | None:
        session_id = await self.current_session_id(storage_key)
        if not session_id:
            return None
        started_at = _parse_timestamp(await self._store.get(start_key_for(storage_key)))
        return VisitSession(
            id=session_id,
            entity_type=None,
            status=VisitStatus.OPEN,
            storage_key=storage_key,
            started_at=started_at,
        )

    async def start_visit(
        self,
        entity_type: EntityType,
        entity_id: str,
        *,
        storage_key: str | None = None,
        fix: LocationFix | None = None,
    ) -> VisitSession:
        """Open a visit and persist its id; nothing is stored if the call fails."""

        key = storage_key or entity_type.visit_storage_key
        existing = await self.current_session_id(key)
        try:
            next_state(VisitState.OPEN if existing else VisitState.IDLE, VisitAction.START)
        except IllegalTransition:
            raise StaleVisitError(key, existing) from None

        payload: dict[str, Any] = {"entity_type": entity_type.value, "entity_id": str(entity_id)}
        if fix is not None:
            payload.update(format_coordinates_for_api(fix.latitude, fix.longitude))
            if fix.address:
                payload["address"] = fix.address

        response = await self._gateway.post("track/start-visit/", json=payload)
        session_id = _session_id_from(response)
        if not session_id:
            raise GatewayError(ErrorKind.SERVER, "Start-visit response did not include a visit id", detail=response)

        started_at = datetime.now(timezone.utc)
        await self._store.set(key, session_id)
        await self._store.set(start_key_for(key), started_at.isoformat())
        logger.info(f"Visit {session_id} opened for {entity_type.value} {entity_id} under {key}")
        return VisitSession(
            id=session_id,
            entity_type=entity_type,
            status=VisitStatus.OPEN,
            storage_key=key,
            started_at=started_at,
        )

    async def end_visit(
        self,
        storage_key: str,
        remark: str,
        *,
        visit_purpose: str | None = None,
    ) -> VisitSession:
        """Close the open visit; on failure the stored id is left in place for a retry."""

        text = validate_remark(remark)
        session = await self.current_session(storage_key)
        try:
            next_state(VisitState.IDLE if session is None else VisitState.OPEN, VisitAction.END)
        except IllegalTransition:
            raise NoOpenVisitError(storage_key) from None

        payload: dict[str, Any] = {"remark": text}
        if visit_purpose:
            payload["visit_purpose"] = visit_purpose
        response = await self._gateway.request("PATCH", f"track/end-visit/{session.id}/", json=payload)
        if response.status_code not in (200, 204):
            raise GatewayError(
                ErrorKind.UNKNOWN,
                "Failed to end visit. Please try again.",
                status_code=response.status_code,
            )

        await self._store.multi_remove((storage_key, start_key_for(storage_key)))
        logger.info(f"Visit {session.id} closed under {storage_key}")
        session.status = VisitStatus.CLOSED
        return session

    async def discard_stale(self, storage_key: str) -> str | None:
        """Forget a locally stored visit id without contacting the backend."""

        session_id = await self.current_session_id(storage_key)
        await self._store.multi_remove((storage_key, start_key_for(storage_key)))
        if session_id:
            logger.warning(f"Discarded stale visit {session_id} under {storage_key}")
        return session_id

    async def visit_history(self, location_id: str) -> list[dict[str, Any]]:
        """Past visits for a farmer/dealer, most recent first."""

        data = await retry_read(lambda: self._gateway.get(f"track/visit-history/{location_id}/"))
        history = data.get("visit_history") if isinstance(data, dict) else None
        records = [item for item in history or [] if isinstance(item, dict)]
        return sorted(records, key=lambda item: str(item.get("visit_start_time") or ""), reverse=True)

    async def visit_purposes(self, entity_type: EntityType) -> list[Any]:
        data = await retry_read(lambda: self._gateway.get(f"track/{entity_type.value}-visit-purposes/"))
        purposes = data.get("purposes") if isinstance(data, dict) else None
        return list(purposes or [])
