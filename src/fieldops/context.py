"""Application context: the explicit owner of session, navigation and shared services."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Callable, Literal, Optional

import httpx

from .config import Settings, settings as default_settings
from .errors import LocationPermissionRefused
from .models.domain import EntityType
from .persistence.credentials import CredentialStore
from .persistence.keyvalue import KeyValueStore
from .services.http.gateway import HttpGateway
from .services.location.geocoding import ReverseGeocoder, build_geocoder
from .services.location.provider import (
    ConfiguredPermissionBackend,
    LocationProvider,
    PermissionBackend,
    PositionSource,
    StaticPositionSource,
)
from .services.onboarding.pipeline import OnboardingPipeline, OnboardingState, VerifiedHook
from .services.proximity.service import ProximityQuery
from .services.visits.service import VisitSessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Notification:
    kind: Literal["alert", "toast"]
    title: str
    message: str


class NotificationQueue:
    """Operator notifications waiting to be shown by the presentation layer."""

    def __init__(self, maxlen: int = 100) -> None:
        self._items: deque[Notification] = deque(maxlen=maxlen)

    def alert(self, title: str, message: str) -> None:
        logger.info(f"Alert: {title} - {message}")
        self._items.append(Notification("alert", title, message))

    def toast(self, title: str, message: str) -> None:
        logger.info(f"Toast: {title} - {message}")
        self._items.append(Notification("toast", title, message))

    def drain(self) -> list[Notification]:
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)


class Navigator:
    """Navigation handle the presentation layer subscribes to."""

    def __init__(self, initial_route: str | None = None) -> None:
        self.current_route = initial_route
        self.reset_count = 0
        self._listeners: list[Callable[[str], None]] = []

    def subscribe(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def reset(self, route: str) -> None:
        """Replace the whole navigation stack with ``route``."""
        self.current_route = route
        self.reset_count += 1
        for listener in self._listeners:
            listener(route)


class AppContext:
    """Wires stores, gateway and workflow services for one running application.

    Call :meth:`start` before use and :meth:`aclose` on shutdown (or use it as
    an async context manager).
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        notifier: NotificationQueue | None = None,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        permissions: PermissionBackend | None = None,
        positions: PositionSource | None = None,
        geocoder: ReverseGeocoder | None = None,
    ) -> None:
        self.settings = config or default_settings
        self.notifier = notifier if notifier is not None else NotificationQueue()
        self.navigator = navigator or Navigator()
        self.current_user: Optional[str] = None
        self._transport = transport
        self._permissions = permissions
        self._positions = positions
        self._geocoder = geocoder
        self._ending_session = False
        self._session_expired = False
        self._started = False

        self.store: KeyValueStore | None = None
        self.credentials: CredentialStore | None = None
        self.gateway: HttpGateway | None = None
        self.location: LocationProvider | None = None
        self.proximity: ProximityQuery | None = None
        self.visits: VisitSessionManager | None = None
        self.pipelines: dict[str, OnboardingPipeline] = {}

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> "AppContext":
        if self._started:
            return self
        cfg = self.settings
        self.store = KeyValueStore(cfg.store_file)
        self.credentials = CredentialStore(cfg.credentials_file)
        self.gateway = HttpGateway(
            credentials=self.credentials,
            on_unauthorized=self.handle_session_expired,
            base_url=cfg.api_base_url,
            timeout=cfg.request_timeout_seconds,
            auth_scheme=cfg.auth_scheme,
            transport=self._transport,
        )
        self.location = LocationProvider(
            self._permissions
            or ConfiguredPermissionBackend(cfg.location_permission, cfg.location_permission_grantable),
            self._positions or StaticPositionSource(cfg.device_latitude, cfg.device_longitude),
            self._geocoder if self._geocoder is not None else build_geocoder(cfg.geocode_provider),
            geocode_timeout=cfg.geocode_timeout_seconds,
        )
        self.proximity = ProximityQuery(self.gateway, timeout=cfg.proximity_timeout_seconds)
        self.visits = VisitSessionManager(self.gateway, self.store)
        if cfg.strict_location_on_startup:
            try:
                await self.location.ensure_startup_permission()
            except LocationPermissionRefused:
                await self.gateway.aclose()
                await self.location.aclose()
                raise
        self.current_user = await self.credentials.get_token()
        self._started = True
        logger.info(f"{cfg.app_name} context started (backend: {cfg.api_base_url})")
        return self

    async def aclose(self) -> None:
        if not self._started:
            return
        for pipeline in self.pipelines.values():
            pipeline.close()
        self.pipelines.clear()
        self.proximity.cancel_all()
        await self.gateway.aclose()
        await self.location.aclose()
        self._started = False
        logger.info("Context closed")

    async def __aenter__(self) -> "AppContext":
        return await self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def log_in(self, token: str) -> None:
        await self.credentials.store_token(token)
        self.current_user = token
        self._session_expired = False

    async def handle_session_expired(self) -> None:
        """Process-wide reaction to a 401: clear credentials, notify, go to the login entry point."""

        if self._ending_session:
            logger.debug("Session expiry already being handled, skipping")
            return
        self._ending_session = True
        try:
            # later 401s from calls issued with the expired token find nothing to clear
            if self._session_expired and await self.credentials.get_token() is None:
                logger.debug("Session already expired, skipping")
                return
            await self.credentials.clear()
            self._session_expired = True
            self.current_user = None
            self.notifier.toast("Session expired", "Please login again.")
            self.navigator.reset(self.settings.unauthenticated_route)
        finally:
            self._ending_session = False

    def onboarding(self, entity_type: EntityType, *, on_verified: VerifiedHook | None = None) -> OnboardingPipeline:
        """New pipeline for one onboarding form."""

        return OnboardingPipeline(
            self.gateway,
            entity_type,
            self.notifier,
            on_verified=on_verified,
            create_timeout=self.settings.create_timeout(entity_type.value),
            otp_timeout=self.settings.otp_timeout_seconds,
        )

    def open_onboarding(self, entity_type: EntityType) -> tuple[str, OnboardingPipeline]:
        """Register a pipeline for a form opened through the facade.

        Finished pipelines are dropped first; if the registry is still full the
        oldest idle forms are closed to make room.
        """

        self._prune_pipelines()
        pipeline_id = uuid.uuid4().hex
        self.pipelines[pipeline_id] = self.onboarding(entity_type)
        return pipeline_id, self.pipelines[pipeline_id]

    def close_onboarding(self, pipeline_id: str) -> OnboardingPipeline | None:
        pipeline = self.pipelines.pop(pipeline_id, None)
        if pipeline is not None:
            pipeline.close()
        return pipeline

    def _prune_pipelines(self) -> None:
        for pipeline_id, pipeline in list(self.pipelines.items()):
            if pipeline.closed or pipeline.state is OnboardingState.VERIFIED:
                del self.pipelines[pipeline_id]
        # dict order is registration order, so the oldest forms go first
        for pipeline_id, pipeline in list(self.pipelines.items()):
            if len(self.pipelines) < self.settings.max_open_onboarding:
                break
            if not pipeline.in_flight:
                logger.info(f"Closing abandoned onboarding form {pipeline_id}")
                self.close_onboarding(pipeline_id)
