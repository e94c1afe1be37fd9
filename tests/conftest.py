import inspect
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from fieldops.config import Settings
from fieldops.context import AppContext, NotificationQueue
from fieldops.persistence.credentials import CredentialStore
from fieldops.persistence.keyvalue import KeyValueStore
from fieldops.services.http.gateway import HttpGateway

BACKEND_URL = "http://backend.test/api/"


class FakeBackend:
    """Field-sales backend stand-in served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], Any]] = {}

    def route(
        self,
        method: str,
        path: str,
        handler: Callable[[httpx.Request], Any] | None = None,
        *,
        status_code: int = 200,
        json: Any = None,
    ) -> None:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status_code, json=json)
        self._routes[(method.upper(), path)] = handler

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/")
        handler = self._routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"detail": "Not found."})
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method.upper() and request.url.path.removeprefix("/api/") == path
        ]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        api_base_url=BACKEND_URL,
        store_file=tmp_path / "state.json",
        credentials_file=tmp_path / "credentials.json",
        geocode_provider="none",
        location_permission="granted",
        device_latitude=24.7136,
        device_longitude=46.6753,
        read_retry_backoff_seconds=0.0,
    )


@pytest.fixture
def store(tmp_path: Path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "state.json")


@pytest.fixture
def credentials(tmp_path: Path) -> CredentialStore:
    return CredentialStore(tmp_path / "credentials.json")


@pytest.fixture
def notifier() -> NotificationQueue:
    return NotificationQueue()


@pytest.fixture
async def gateway(backend: FakeBackend, credentials: CredentialStore):
    client = HttpGateway(credentials=credentials, base_url=BACKEND_URL, transport=backend.transport)
    yield client
    await client.aclose()


@pytest.fixture
async def context(backend: FakeBackend, test_settings: Settings):
    app_context = AppContext(test_settings, transport=backend.transport)
    await app_context.start()
    yield app_context
    await app_context.aclose()
