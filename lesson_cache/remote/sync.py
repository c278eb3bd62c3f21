"""
Mirrors local cache state into the remote content record so other clients can
tell whether an item is available offline without touching local storage.
"""

import logging
from datetime import datetime

from lesson_cache.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError
from lesson_cache.utils.structured_logger import CacheEventLogger

from .record_store import RecordStore

log = logging.getLogger(__name__)

IS_DOWNLOADED_FIELD = "isDownloaded"
LAST_DOWNLOADED_FIELD = "lastDownloaded"


class RemoteFlagSynchronizer:
    """
    Best-effort writer of the remote downloaded flag.

    Failures are logged and reported as False, never raised: local cache state
    stays authoritative whatever the remote mirror says.
    """

    def __init__(
        self,
        store: RecordStore,
        breaker: CircuitBreaker | None = None,
        events: CacheEventLogger | None = None,
    ):
        self.store = store
        self.breaker = breaker or CircuitBreaker()
        self.events = events

    async def mark_downloaded(self, content_id: str, when: datetime) -> bool:
        return await self._push(
            content_id,
            {IS_DOWNLOADED_FIELD: True, LAST_DOWNLOADED_FIELD: when.isoformat()},
        )

    async def mark_removed(self, content_id: str) -> bool:
        return await self._push(
            content_id, {IS_DOWNLOADED_FIELD: False, LAST_DOWNLOADED_FIELD: None}
        )

    async def _push(self, content_id: str, fields: dict) -> bool:
        try:
            async with self.breaker:
                await self.store.update_fields(content_id, fields)
            return True
        except CircuitBreakerError as e:
            log.warning(
                f"[yellow]Skipped remote status update for '{content_id}': {e}"
                "[/yellow]"
            )
            error = str(e)
        except Exception as e:
            log.warning(
                f"[yellow]Remote status update for '{content_id}' failed: {e}"
                "[/yellow]"
            )
            error = str(e)

        if self.events:
            self.events.remote_sync_failed(content_id, error)
        return False
