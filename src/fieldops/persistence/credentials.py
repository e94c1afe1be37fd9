"""Storage for the backend access credential."""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import settings
from .keyvalue import KeyValueStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "authToken"


class CredentialStore:
    """Owner-only credentials file holding the access token."""

    def __init__(self, path: Path | None = None) -> None:
        self._store = KeyValueStore(path or settings.credentials_file, file_mode=0o600)

    @property
    def path(self) -> Path:
        return self._store.path

    async def get_token(self) -> str | None:
        token = await self._store.get(ACCESS_TOKEN_KEY)
        if not token:
            return None
        return token.replace('"', "")

    async def store_token(self, token: str) -> None:
        if not token:
            raise ValueError("Refusing to store an empty access token.")
        await self._store.set(ACCESS_TOKEN_KEY, token)
        logger.info("Access token stored")

    async def clear(self) -> None:
        await self._store.remove(ACCESS_TOKEN_KEY)
        logger.info("Stored credentials cleared")
