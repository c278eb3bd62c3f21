"""
Pytest fixtures shared by the lesson-cache tests.
"""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from lesson_cache.core.offline_manager import OfflineManager
from lesson_cache.exceptions import MediaFetchError, RemoteSyncError
from lesson_cache.models.config import CacheConfig
from lesson_cache.remote.record_store import RecordStore
from lesson_cache.remote.sync import RemoteFlagSynchronizer


class FakeFetcher:
    """Writes canned bytes instead of talking to the network."""

    def __init__(
        self,
        payloads: dict[str, bytes] | None = None,
        failing: tuple[str, ...] = (),
        delays: dict[str, float] | None = None,
    ):
        self.payloads = payloads or {}
        self.failing = set(failing)
        self.delays = delays or {}
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_to_file(self, url: str, destination: Path) -> int:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(url, 0))
            if url in self.failing:
                raise MediaFetchError(url, "simulated network error")
            data = self.payloads.get(url, f"content of {url}".encode())
            destination.write_bytes(data)
            return len(data)
        finally:
            self.in_flight -= 1


class RecordingStore(RecordStore):
    """Keeps every partial update it receives; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.updates: list[tuple[str, dict[str, Any]]] = []

    async def update_fields(self, content_id: str, fields: dict[str, Any]) -> None:
        if self.fail:
            raise RemoteSyncError(f"remote unavailable for '{content_id}'")
        self.updates.append((content_id, dict(fields)))


@pytest.fixture
def config(tmp_path: Path) -> CacheConfig:
    return CacheConfig(
        download_dir=tmp_path / "downloads",
        index_path=tmp_path / "state" / "offline_content.json",
        max_concurrent_fetches=4,
        fetch_attempts=1,
        retry_base_delay=0,
        remote_sync=False,
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def record_store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def manager(
    config: CacheConfig, fetcher: FakeFetcher, record_store: RecordingStore
) -> OfflineManager:
    return OfflineManager(
        config, fetcher=fetcher, remote=RemoteFlagSynchronizer(record_store)
    )


@pytest.fixture
def lesson() -> dict[str, Any]:
    return {
        "id": "lesson-1",
        "title": "Farm Animals",
        "subject": "english",
        "grade": 1,
        "mediaUrls": ["https://x/img.png", "https://x/audio.mp3"],
    }
