"""HTTP client shared by every workflow talking to the field-sales backend."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import httpx

from ...config import settings
from ...errors import ErrorKind, GatewayError, report_error
from ...persistence.credentials import CredentialStore

logger = logging.getLogger(__name__)

UnauthorizedHandler = Callable[[], Awaitable[None]]

USE_CLIENT_DEFAULT = httpx.USE_CLIENT_DEFAULT


def _validation_message(payload: Any) -> str | None:
    """Pull a human-readable message out of a 4xx body, if the server supplied one."""

    if isinstance(payload, str):
        return payload.strip() or None
    if not isinstance(payload, dict):
        return None
    for key in ("detail", "message", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    # field-error maps such as {"phone": [...]} fall back to the generic copy
    return None


def classify_response(response: httpx.Response) -> GatewayError:
    """Turn an unsuccessful response into a :class:`GatewayError`."""

    status = response.status_code
    try:
        payload: Any = response.json()
    except ValueError:
        payload = response.text

    if status == 401:
        return GatewayError(ErrorKind.UNAUTHORIZED, "Unauthorized", status_code=status, detail=payload)
    if 400 <= status < 500:
        message = _validation_message(payload) or "Please fix the highlighted fields."
        return GatewayError(ErrorKind.VALIDATION, message, status_code=status, detail=payload)
    if status >= 500:
        return GatewayError(ErrorKind.SERVER, f"Server responded with {status}", status_code=status, detail=payload)
    return GatewayError(ErrorKind.UNKNOWN, f"Unexpected response status {status}", status_code=status, detail=payload)


def decode_json(response: httpx.Response) -> Any:
    """Parse a successful response body; empty bodies (e.g. 204) decode to ``{}``."""

    if response.status_code == 204 or not response.content:
        return {}
    try:
        return response.json()
    except ValueError as exc:
        raise GatewayError(
            ErrorKind.SERVER, "Backend returned a malformed response body", status_code=response.status_code
        ) from exc


class HttpGateway:
    """Single ``httpx.AsyncClient`` with credential injection and global 401 handling.

    The request hook reads the token from the credential store on every send,
    so a token stored or cleared elsewhere takes effect immediately. The
    response hook intercepts 401 once for the whole process: it hands control
    to ``on_unauthorized`` (clear credentials, notify, reset navigation) and
    rejects the call with an ``UNAUTHORIZED`` error.
    """

    def __init__(
        self,
        *,
        credentials: CredentialStore,
        on_unauthorized: UnauthorizedHandler | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        auth_scheme: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.api_base_url
        if not self.base_url:
            raise ValueError("Backend base URL is not configured.")
        self.auth_scheme = auth_scheme or settings.auth_scheme
        self._credentials = credentials
        self._on_unauthorized = on_unauthorized
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout if timeout is not None else settings.request_timeout_seconds),
            headers={"Content-Type": "application/json"},
            event_hooks={
                "request": [self._attach_credentials],
                "response": [self._intercept_unauthorized],
            },
            transport=transport,
        )

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _attach_credentials(self, request: httpx.Request) -> None:
        token = await self._credentials.get_token()
        if token:
            request.headers["Authorization"] = f"{self.auth_scheme} {token}"

    async def _intercept_unauthorized(self, response: httpx.Response) -> None:
        if response.status_code != 401:
            return
        logger.warning(f"401 from {response.request.method} {response.request.url.path}; ending session")
        if self._on_unauthorized is not None:
            await self._on_unauthorized()
        raise GatewayError(ErrorKind.UNAUTHORIZED, "Unauthorized", status_code=401)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None | object = USE_CLIENT_DEFAULT,
    ) -> httpx.Response:
        """Send a request and return the successful response or raise a classified error."""

        context = f"{method} {path}"
        try:
            response = await self._client.request(method, path, json=json, params=params, timeout=timeout)
        except GatewayError:
            raise
        except httpx.TimeoutException as exc:
            error = GatewayError(ErrorKind.TIMEOUT, f"Request timed out: {exc}")
            report_error(error, context)
            raise error from exc
        except httpx.TransportError as exc:
            error = GatewayError(ErrorKind.NETWORK_UNREACHABLE, f"Network error: {exc}")
            report_error(error, context)
            raise error from exc

        if response.is_success:
            return response
        error = classify_response(response)
        report_error(error, context)
        raise error

    async def get(self, path: str, **kwargs: Any) -> Any:
        return decode_json(await self.request("GET", path, **kwargs))

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return decode_json(await self.request("POST", path, json=json, **kwargs))

    async def patch(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return decode_json(await self.request("PATCH", path, json=json, **kwargs))
