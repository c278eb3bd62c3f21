"""
The local cache index: a mapping from content id to its offline record,
persisted as one JSON blob under a single key of the key-value store.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from pydantic import ValidationError

from lesson_cache.exceptions import IndexPersistenceError
from lesson_cache.models.content import OfflineContentRecord

from .kv_store import JsonKeyValueStore

log = logging.getLogger(__name__)


class CacheIndex:
    """
    Reads and mutates the persisted index.

    Reads always go to the store, so there is no in-memory copy to drift from
    the persisted blob. Mutations hold a lock across the whole
    read-modify-write, which keeps concurrent downloads and removals of
    different ids from overwriting each other's updates.
    """

    def __init__(self, store: JsonKeyValueStore, key: str):
        self._store = store
        self.key = key
        self._lock = asyncio.Lock()

    async def load(self) -> dict[str, OfflineContentRecord]:
        """
        Loads the whole index in insertion order.

        Raises:
            IndexPersistenceError: If the blob cannot be read or parsed.
        """
        blob = await self._store.get_item(self.key)
        if blob is None:
            return {}
        try:
            raw = json.loads(blob)
        except json.JSONDecodeError as e:
            raise IndexPersistenceError(f"Cache index is corrupt: {e}") from e
        if not isinstance(raw, dict):
            raise IndexPersistenceError("Cache index is not a JSON object.")

        records: dict[str, OfflineContentRecord] = {}
        for content_id, payload in raw.items():
            try:
                records[content_id] = OfflineContentRecord.model_validate(payload)
            except ValidationError as e:
                log.warning(f"Ignoring unreadable index entry '{content_id}': {e}")
        return records

    async def _save(self, records: dict[str, OfflineContentRecord]) -> None:
        blob = json.dumps(
            {content_id: record.to_json_dict() for content_id, record in records.items()},
            ensure_ascii=False,
        )
        await self._store.set_item(self.key, blob)

    @asynccontextmanager
    async def frozen(self) -> AsyncIterator[dict[str, OfflineContentRecord]]:
        """Yields the current index and holds off every mutation until exit."""
        async with self._lock:
            yield await self.load()

    async def get(self, content_id: str) -> OfflineContentRecord | None:
        return (await self.load()).get(content_id)

    async def contains(self, content_id: str) -> bool:
        return content_id in await self.load()

    async def records(self) -> list[OfflineContentRecord]:
        return list((await self.load()).values())

    async def put(self, record: OfflineContentRecord) -> None:
        """Inserts or replaces the record stored under `record.id`."""
        async with self._lock:
            records = await self.load()
            records[record.id] = record
            await self._save(records)

    async def discard(self, content_id: str) -> bool:
        """Deletes `content_id` from the index. Returns False if it was absent."""
        async with self._lock:
            records = await self.load()
            if content_id not in records:
                return False
            del records[content_id]
            await self._save(records)
            return True
