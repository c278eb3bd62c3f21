"""
A small durable key-value store holding string values in a single JSON file.

This is the local persistence primitive behind the cache index: one `get` and
one `set` of a string blob per key, with every write replacing the file
atomically so a crash mid-write never leaves a truncated store behind.
"""

import asyncio
import json
import logging
import os
from contextlib import suppress
from pathlib import Path

import aiofiles

from lesson_cache.exceptions import IndexPersistenceError

log = logging.getLogger(__name__)


class JsonKeyValueStore:
    """Async get/set of string values backed by one JSON file."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = asyncio.Lock()

    async def _read_all(self) -> dict[str, str]:
        if not await asyncio.to_thread(self.path.is_file):
            return {}
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                raw = await f.read()
        except OSError as e:
            raise IndexPersistenceError(f"Could not read '{self.path}': {e}") from e

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise IndexPersistenceError(f"Store '{self.path}' is corrupt: {e}") from e
        if not isinstance(data, dict):
            raise IndexPersistenceError(
                f"Store '{self.path}' does not contain a JSON object."
            )
        return data

    async def _write_all(self, data: dict[str, str]) -> None:
        payload = json.dumps(data, ensure_ascii=False)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        try:
            await asyncio.to_thread(self.path.parent.mkdir, parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
                await f.flush()
            await asyncio.to_thread(os.replace, tmp_path, self.path)
        except OSError as e:
            with suppress(OSError):
                tmp_path.unlink()
            raise IndexPersistenceError(f"Could not write '{self.path}': {e}") from e

    async def get_item(self, key: str) -> str | None:
        """Returns the string stored under `key`, or None if it was never set."""
        async with self._lock:
            data = await self._read_all()
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise IndexPersistenceError(f"Value under '{key}' is not a string.")
        return value

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._read_all()
            data[key] = value
            await self._write_all(data)
        log.debug(f"Persisted {len(value)} characters under '{key}'.")
