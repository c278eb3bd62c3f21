"""
The offline content cache manager. It downloads content bundles into local
storage and keeps the cache index in step with the files on disk.
"""

import asyncio
import logging
import os
import tempfile
import time
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from lesson_cache.exceptions import IndexPersistenceError, InvalidContentError
from lesson_cache.media.fetcher import MediaFetcher
from lesson_cache.models.config import CacheConfig
from lesson_cache.models.content import (
    CachedMediaEntry,
    ContentDescriptor,
    OfflineContentRecord,
    check_content_id,
)
from lesson_cache.models.report import IntegrityReport
from lesson_cache.remote.record_store import NullRecordStore, create_firestore_store
from lesson_cache.remote.sync import RemoteFlagSynchronizer
from lesson_cache.storage.index import CacheIndex
from lesson_cache.storage.kv_store import JsonKeyValueStore
from lesson_cache.utils.path import (
    aside_path,
    create_dir,
    remove_tree,
    replace_dir,
    unique_filenames,
)
from lesson_cache.utils.structured_logger import CacheEventLogger, create_event_logger

log = logging.getLogger(__name__)


class Fetcher(Protocol):
    async def fetch_to_file(self, url: str, destination: Path) -> int: ...


class OfflineManager:
    """
    Owns the download root, the cache index and the remote flag mirror.

    Every public coroutine catches its own errors and reports them as a
    boolean, None or empty result with a log line; nothing raises across this
    boundary.

    Usage:
        async with OfflineManager.from_config(config) as manager:
            if await manager.download_content(descriptor):
                record = await manager.get_offline_content(descriptor.id)
    """

    def __init__(
        self,
        config: CacheConfig,
        fetcher: Fetcher | None = None,
        remote: RemoteFlagSynchronizer | None = None,
        index: CacheIndex | None = None,
        events: CacheEventLogger | None = None,
    ):
        self.config = config
        self.fetcher = fetcher or MediaFetcher(
            max_connections=config.max_concurrent_fetches,
            max_attempts=config.fetch_attempts,
            base_delay=config.retry_base_delay,
        )
        self.index = index or CacheIndex(
            JsonKeyValueStore(config.index_path), config.index_key
        )
        self.events = events or create_event_logger()
        self.remote = remote or RemoteFlagSynchronizer(
            NullRecordStore(), events=self.events
        )
        self._fetch_semaphore = asyncio.Semaphore(config.max_concurrent_fetches)
        self._active_staging: set[Path] = set()
        # Ids whose final directory may exist before their index entry does.
        self._in_flight: Counter[str] = Counter()

    @classmethod
    def from_config(cls, config: CacheConfig) -> "OfflineManager":
        """
        Builds a manager wired to Firestore when remote sync is enabled.

        Raises:
            ConfigurationError: If Firebase cannot be initialized.
        """
        events = create_event_logger(config.json_log_dir)
        if config.remote_sync:
            store = create_firestore_store(
                config.content_collection,
                credentials_path=config.firebase_credentials,
                project_id=config.firebase_project_id,
            )
        else:
            store = NullRecordStore()
        return cls(
            config,
            remote=RemoteFlagSynchronizer(store, events=events),
            events=events,
        )

    async def __aenter__(self):
        await self.ensure_storage_ready()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Releases the HTTP session and the JSON event log."""
        close = getattr(self.fetcher, "close", None)
        if close is not None:
            await close()
        self.events.logger.close()

    def content_dir(self, content_id: str) -> Path:
        """
        The private directory holding the files of one content item.

        Raises:
            InvalidContentError: If the id cannot name a directory.
        """
        try:
            check_content_id(content_id)
        except ValueError as e:
            raise InvalidContentError(str(e)) from e
        return self.config.download_dir / content_id

    async def ensure_storage_ready(self) -> None:
        """Creates the download root if needed. Errors are logged, not raised."""
        root = self.config.download_dir
        try:
            if not await asyncio.to_thread(root.is_dir):
                await asyncio.to_thread(create_dir, root)
                log.debug(f"Created download directory '{root}'.")
        except OSError as e:
            log.error(f"[red]Error initializing storage at '{root}': {e}[/red]")

    # --- Download ---------------------------------------------------------

    async def download_content(
        self, descriptor: ContentDescriptor | Mapping[str, Any]
    ) -> bool:
        """
        Downloads every media file of `descriptor` and records it in the index.

        Media files are fetched concurrently into a private staging directory;
        only once all of them succeed is the directory moved into place and the
        index updated. Any failure discards the staging directory and leaves
        the index and any previously cached copy untouched.

        Returns:
            True on success, False if any step failed (the error is logged).
        """
        try:
            descriptor = self._coerce_descriptor(descriptor)
        except InvalidContentError as e:
            log.error(f"[red]✗ Cannot download content: {e}[/red]")
            return False

        content_id = descriptor.id
        started = time.monotonic()
        self.events.download_started(content_id, len(descriptor.media_urls))
        await self.ensure_storage_ready()

        staging: Path | None = None
        claimed = False
        try:
            final_dir = self.content_dir(content_id)
            self._in_flight[content_id] += 1
            claimed = True
            staging = await asyncio.to_thread(self._make_staging_dir, content_id)
            self._active_staging.add(staging)

            entries, total_bytes = await self._fetch_all(
                descriptor.media_urls, staging, final_dir
            )
            await asyncio.to_thread(replace_dir, staging, final_dir)

            downloaded_at = datetime.now(timezone.utc)
            record = OfflineContentRecord.from_descriptor(
                descriptor, entries, downloaded_at
            )
            await self.index.put(record)
        except Exception as e:
            log.error(
                f"[red]✗ Error downloading content '{content_id}': {e}[/red]",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            self.events.download_failed(content_id, str(e))
            return False
        finally:
            if claimed:
                self._release(content_id)
            if staging is not None:
                self._active_staging.discard(staging)
                await self._discard_staging(staging)

        await self.remote.mark_downloaded(content_id, downloaded_at)
        self.events.download_completed(
            content_id, len(entries), total_bytes, time.monotonic() - started
        )
        log.info(f"[green]✓ Cached '{content_id}' ({len(entries)} media files).[/green]")
        return True

    def _release(self, content_id: str) -> None:
        self._in_flight[content_id] -= 1
        if self._in_flight[content_id] <= 0:
            del self._in_flight[content_id]

    @staticmethod
    def _coerce_descriptor(
        descriptor: ContentDescriptor | Mapping[str, Any],
    ) -> ContentDescriptor:
        if isinstance(descriptor, ContentDescriptor):
            return descriptor
        try:
            return ContentDescriptor.model_validate(descriptor)
        except ValidationError as e:
            raise InvalidContentError(f"Invalid content descriptor: {e}") from e

    def _make_staging_dir(self, content_id: str) -> Path:
        create_dir(self.config.staging_dir)
        return Path(tempfile.mkdtemp(prefix=f"{content_id}-", dir=self.config.staging_dir))

    async def _discard_staging(self, staging: Path) -> None:
        try:
            await asyncio.to_thread(remove_tree, staging)
        except OSError as e:
            log.warning(f"Could not remove staging directory '{staging}': {e}")

    async def _fetch_all(
        self, urls: list[str], staging: Path, final_dir: Path
    ) -> tuple[list[CachedMediaEntry], int]:
        """
        Fetches all URLs concurrently and waits for every one of them.

        Raises:
            The first fetch error, in URL order, once all fetches have settled.
        """
        names = unique_filenames(urls)

        async def fetch_one(url: str, name: str) -> tuple[CachedMediaEntry, int]:
            async with self._fetch_semaphore:
                size = await self.fetcher.fetch_to_file(url, staging / name)
            entry = CachedMediaEntry(remote_url=url, local_path=str(final_dir / name))
            return entry, size

        tasks = [fetch_one(url, name) for url, name in zip(urls, names)]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for result in results:
            if isinstance(result, BaseException):
                raise result

        entries = [entry for entry, _ in results]
        return entries, sum(size for _, size in results)

    # --- Removal ----------------------------------------------------------

    async def remove_content(self, content_id: str) -> bool:
        """
        Deletes the local copy of `content_id` and its index entry.

        Removing content that was never cached is a successful no-op.
        """
        try:
            content_dir = self.content_dir(content_id)
            had_files = await asyncio.to_thread(remove_tree, content_dir)
            await self.index.discard(content_id)
        except Exception as e:
            log.error(f"[red]✗ Error removing content '{content_id}': {e}[/red]")
            return False

        await self.remote.mark_removed(content_id)
        self.events.content_removed(content_id, had_files)
        return True

    # --- Queries ----------------------------------------------------------

    async def is_content_downloaded(self, content_id: str) -> bool:
        try:
            return await self.index.contains(content_id)
        except Exception as e:
            log.error(f"[red]Error checking content status for '{content_id}': {e}[/red]")
            return False

    async def get_offline_content(self, content_id: str) -> OfflineContentRecord | None:
        try:
            return await self.index.get(content_id)
        except Exception as e:
            log.error(f"[red]Error getting offline content '{content_id}': {e}[/red]")
            return None

    async def get_downloaded_content_list(self) -> list[OfflineContentRecord]:
        """All cached records, oldest first."""
        try:
            return await self.index.records()
        except Exception as e:
            log.error(f"[red]Error getting downloaded content list: {e}[/red]")
            return []

    # --- Integrity --------------------------------------------------------

    async def verify_cache_integrity(
        self, known_ids: Iterable[str] | None = None
    ) -> IntegrityReport:
        """
        Reconciles the index with the files on disk and, optionally, with the
        ids that still exist remotely.

        - Entries whose directory or any media file is missing are evicted.
        - If `known_ids` is given, entries not in it are evicted as stale.
        - Directories under the download root that no index entry owns are
          deleted, except the staging, final and set-aside directories of
          downloads still in flight.

        Eviction goes through `remove_content`, so the remote flag is cleared
        for evicted ids as well.
        """
        report = IntegrityReport()
        try:
            records = await self.index.load()
        except Exception as e:
            log.error(f"[red]Cannot verify cache, index unreadable: {e}[/red]")
            report.error = str(e)
            return report

        known = set(known_ids) if known_ids is not None else None
        kept: set[str] = set()

        for content_id, record in records.items():
            report.checked += 1
            if known is not None and content_id not in known:
                reason = "stale"
            elif not await asyncio.to_thread(self._files_present, content_id, record):
                reason = "missing_files"
            else:
                kept.add(content_id)
                continue

            self.events.integrity_evicted(content_id, reason)
            if not await self.remove_content(content_id):
                report.failed.append(content_id)
                kept.add(content_id)
            elif reason == "stale":
                report.stale.append(content_id)
            else:
                report.missing_files.append(content_id)

        # No download can commit while the index is frozen, so every final
        # directory is either indexed or still marked in flight.
        try:
            async with self.index.frozen() as current:
                kept |= set(current) - set(report.evicted)
                report.orphans_removed = await asyncio.to_thread(
                    self._remove_orphans, kept
                )
        except (IndexPersistenceError, OSError) as e:
            log.warning(f"Skipping orphan cleanup: {e}")
            return report
        if report.is_clean:
            log.info(f"[green]✓ Cache verified: {report.checked} entries intact.[/green]")
        return report

    def _files_present(self, content_id: str, record: OfflineContentRecord) -> bool:
        try:
            if not self.content_dir(content_id).is_dir():
                return False
        except InvalidContentError:
            return False
        return all(path.is_file() for path in record.local_paths)

    def _remove_orphans(self, kept: set[str]) -> list[str]:
        root = self.config.download_dir
        staging_root = self.config.staging_dir
        removed: list[str] = []
        if not root.is_dir():
            return removed

        with os.scandir(root) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            path = Path(entry.path)
            if not entry.is_dir(follow_symlinks=False):
                continue
            if path == staging_root:
                for staged in sorted(staging_root.iterdir()):
                    if staged in self._active_staging:
                        continue
                    if self._remove_orphan(staged):
                        removed.append(f"{staging_root.name}/{staged.name}")
                continue
            if entry.name in kept or self._is_in_flight(path):
                continue
            if self._remove_orphan(path):
                removed.append(entry.name)
        return removed

    def _is_in_flight(self, path: Path) -> bool:
        """True for the final directory of a running download or its set-aside copy."""
        name = path.name
        if name in self._in_flight:
            return True
        candidate = name[1:].removesuffix(".old")
        return (
            candidate in self._in_flight
            and aside_path(path.with_name(candidate)) == path
        )

    @staticmethod
    def _remove_orphan(path: Path) -> bool:
        try:
            if path.is_dir():
                return remove_tree(path)
            path.unlink()
            return True
        except OSError as e:
            log.warning(f"Could not remove orphaned '{path}': {e}")
            return False
