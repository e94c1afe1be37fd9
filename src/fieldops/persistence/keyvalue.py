"""Durable key-value storage backed by a JSON document on disk."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Iterable

from ..config import settings

logger = logging.getLogger(__name__)


class KeyValueStore:
    """String key -> string value storage that survives process restarts.

    Every read goes to disk so callers always observe the latest stored value,
    and every write replaces the document atomically (write to a temporary
    file, then rename).
    """

    def __init__(self, path: Path | None = None, *, file_mode: int | None = None) -> None:
        self.path = Path(path or settings.store_file).expanduser().resolve()
        self.file_mode = file_mode
        self._io_lock = threading.Lock()

    async def get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._locked_read)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Value for '{key}' must be a string, got {type(value).__name__}")
        await asyncio.to_thread(self._update, {key: value}, ())

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._update, {}, (key,))

    async def multi_remove(self, keys: Iterable[str]) -> None:
        keys = tuple(keys)
        if not all(isinstance(key, str) for key in keys):
            raise TypeError("Keys must be provided as strings.")
        await asyncio.to_thread(self._update, {}, keys)
        logger.debug(f"Keys removed: {list(keys)}")

    async def all_keys(self) -> list[str]:
        data = await asyncio.to_thread(self._locked_read)
        return list(data)

    def _locked_read(self) -> dict[str, str]:
        with self._io_lock:
            return self._read()

    def _read(self) -> dict[str, str]:
        # caller holds _io_lock
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8").strip()
        if not text:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            # keep the broken document for inspection and start fresh
            backup = self.path.with_suffix(self.path.suffix + ".broken")
            backup.write_text(text, encoding="utf-8")
            logger.warning(f"Store file {self.path} was corrupted; moved aside to {backup}")
            self.path.unlink(missing_ok=True)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def _update(self, updates: dict[str, str], removals: Iterable[str]) -> None:
        with self._io_lock:
            data = self._read()
            data.update(updates)
            for key in removals:
                data.pop(key, None)
            self._write(data)

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=2)
        if self.file_mode is not None:
            tmp.chmod(self.file_mode)
        tmp.replace(self.path)
