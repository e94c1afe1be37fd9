"""Nearby farmer/dealer lookups for list screens."""

from __future__ import annotations

import logging
from typing import Any

from ...cancellation import CancellationScope
from ...config import settings
from ...errors import Alerting, ErrorKind, FieldOpsError, OperationCancelled
from ...models.domain import EntityType, LocationFix
from ...schemas.nearby import NearbyEntity
from ..geospatial import haversine_km, round_coordinate
from ..http.gateway import HttpGateway

logger = logging.getLogger(__name__)

# Dealers alert on an empty result, farmers stay silent; failures alert for both.
EMPTY_RESULT_ALERTS: dict[EntityType, tuple[str, str] | None] = {
    EntityType.FARMER: None,
    EntityType.DEALER: ("Error", "Dealer not found"),
}
FAILURE_ALERTS: dict[EntityType, tuple[str, str]] = {
    EntityType.FARMER: ("Error", "Farmer not found"),
    EntityType.DEALER: ("Error", "Dealer not found"),
}


def build_payload(fix: LocationFix) -> dict[str, float]:
    return {"lat": round_coordinate(fix.latitude), "lon": round_coordinate(fix.longitude)}


def _parse_entities(fix: LocationFix, items: Any) -> list[NearbyEntity]:
    if not isinstance(items, list):
        return []
    entities: list[NearbyEntity] = []
    for item in items:
        if not isinstance(item, dict) or item.get("id") is None:
            logger.debug(f"Skipping nearby entry without id: {item!r}")
            continue
        entity = NearbyEntity.model_validate(item)
        if entity.distance_km is None and entity.latitude is not None and entity.longitude is not None:
            entity.distance_km = round(
                haversine_km(fix.latitude, fix.longitude, entity.latitude, entity.longitude), 2
            )
        entities.append(entity)
    return entities


class ProximityQuery:
    """Ask the backend for entities within range of a fix.

    Starting a new query for an entity type cancels the previous one still in
    flight for that type.
    """

    def __init__(self, gateway: HttpGateway, *, timeout: float | None = None) -> None:
        self._gateway = gateway
        self.timeout = timeout if timeout is not None else settings.proximity_timeout_seconds
        self._scopes: dict[EntityType, CancellationScope] = {}

    async def find_nearby(
        self, entity_type: EntityType, fix: LocationFix, timeout: float | None = None
    ) -> list[NearbyEntity]:
        previous = self._scopes.get(entity_type)
        if previous is not None:
            previous.cancel()
        scope = CancellationScope(f"nearby-{entity_type.collection_key}")
        self._scopes[entity_type] = scope

        try:
            data = await scope.run(
                self._gateway.post(
                    f"track/nearby-{entity_type.collection_key}/",
                    json=build_payload(fix),
                    timeout=timeout if timeout is not None else self.timeout,
                )
            )
        finally:
            if self._scopes.get(entity_type) is scope:
                del self._scopes[entity_type]
        items = data.get(entity_type.collection_key) if isinstance(data, dict) else None
        entities = _parse_entities(fix, items or [])
        logger.info(f"Found {len(entities)} nearby {entity_type.collection_key}")
        return entities

    def cancel_all(self) -> None:
        for scope in self._scopes.values():
            scope.cancel()
        self._scopes.clear()


async def load_nearby(
    query: ProximityQuery,
    notifier: Alerting,
    entity_type: EntityType,
    fix: LocationFix,
) -> list[NearbyEntity]:
    """Run a proximity query and apply the list screen's messaging policy.

    Returns the entities found; an empty list both for "nobody nearby" and for a
    failed request, the difference being the alert raised on ``notifier``.
    """

    try:
        entities = await query.find_nearby(entity_type, fix)
    except OperationCancelled:
        return []
    except FieldOpsError as error:
        if error.kind is ErrorKind.UNAUTHORIZED:
            return []
        logger.warning(f"Nearby {entity_type.collection_key} lookup failed: {error}")
        title, message = FAILURE_ALERTS[entity_type]
        notifier.alert(title, message)
        return []

    if not entities:
        empty_alert = EMPTY_RESULT_ALERTS[entity_type]
        if empty_alert is not None:
            notifier.alert(*empty_alert)
    return entities

