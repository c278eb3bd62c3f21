"""
Tests for MediaFetcher against a local aiohttp server.
"""

from collections import Counter

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from lesson_cache.core.offline_manager import OfflineManager
from lesson_cache.exceptions import LessonCacheError, MediaFetchError
from lesson_cache.media.fetcher import MediaFetcher

IMAGE = b"\x89PNG" + b"\x00" * 1024


@pytest_asyncio.fixture
async def media_server():
    hits: Counter = Counter()

    async def serve(request: web.Request) -> web.Response:
        name = request.match_info["name"]
        hits[name] += 1
        if name == "missing.png":
            raise web.HTTPNotFound()
        if name == "busy.mp3" and hits[name] == 1:
            raise web.HTTPServiceUnavailable()
        if name == "down.mp3":
            raise web.HTTPInternalServerError()
        if name == "cat.png":
            return web.Response(body=IMAGE, content_type="image/png")
        return web.Response(body=f"bytes of {name}".encode())

    app = web.Application()
    app.router.add_get("/media/{name}", serve)
    async with test_utils.TestServer(app) as server:
        yield server, hits


def media_url(server: test_utils.TestServer, name: str) -> str:
    return str(server.make_url(f"/media/{name}"))


@pytest.mark.asyncio
async def test_fetch_writes_file(media_server, tmp_path):
    server, _ = media_server
    async with MediaFetcher(base_delay=0) as fetcher:
        size = await fetcher.fetch_to_file(media_url(server, "cat.png"), tmp_path / "cat.png")

    assert size == len(IMAGE)
    assert (tmp_path / "cat.png").read_bytes() == IMAGE


@pytest.mark.asyncio
async def test_not_found_fails_without_retry(media_server, tmp_path):
    server, hits = media_server
    url = media_url(server, "missing.png")

    async with MediaFetcher(max_attempts=3, base_delay=0) as fetcher:
        with pytest.raises(MediaFetchError) as excinfo:
            await fetcher.fetch_to_file(url, tmp_path / "missing.png")

    assert excinfo.value.url == url
    assert "404" in excinfo.value.reason
    assert isinstance(excinfo.value, LessonCacheError)
    assert hits["missing.png"] == 1


@pytest.mark.asyncio
async def test_server_error_is_retried(media_server, tmp_path):
    server, hits = media_server
    async with MediaFetcher(max_attempts=3, base_delay=0) as fetcher:
        await fetcher.fetch_to_file(media_url(server, "busy.mp3"), tmp_path / "busy.mp3")

    assert hits["busy.mp3"] == 2
    assert (tmp_path / "busy.mp3").read_bytes() == b"bytes of busy.mp3"


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(media_server, tmp_path):
    server, hits = media_server
    async with MediaFetcher(max_attempts=2, base_delay=0) as fetcher:
        with pytest.raises(MediaFetchError):
            await fetcher.fetch_to_file(media_url(server, "down.mp3"), tmp_path / "down.mp3")

    assert hits["down.mp3"] == 2


@pytest.mark.asyncio
async def test_manager_downloads_over_http(media_server, config):
    server, _ = media_server
    urls = [media_url(server, "cat.png"), media_url(server, "intro.mp3")]
    manager = OfflineManager(config, fetcher=MediaFetcher(base_delay=0))

    async with manager:
        assert await manager.download_content({"id": "lesson-1", "mediaUrls": urls})
        record = await manager.get_offline_content("lesson-1")

    assert [p.name for p in record.local_paths] == ["cat.png", "intro.mp3"]
    assert record.local_paths[0].read_bytes() == IMAGE


@pytest.mark.asyncio
async def test_manager_reports_http_failure(media_server, config):
    server, _ = media_server
    urls = [media_url(server, "cat.png"), media_url(server, "missing.png")]

    async with OfflineManager(config, fetcher=MediaFetcher(base_delay=0)) as manager:
        assert not await manager.download_content({"id": "lesson-1", "mediaUrls": urls})
        assert not await manager.is_content_downloaded("lesson-1")

    assert not (config.download_dir / "lesson-1").exists()


@pytest.mark.asyncio
async def test_invalid_url_fails_without_retry(tmp_path):
    fetcher = MediaFetcher(max_attempts=3, base_delay=30)
    attempts = 0
    fetch_once = fetcher._fetch_once

    async def counting_fetch_once(url, destination):
        nonlocal attempts
        attempts += 1
        return await fetch_once(url, destination)

    fetcher._fetch_once = counting_fetch_once
    async with fetcher:
        with pytest.raises(MediaFetchError):
            await fetcher.fetch_to_file("not-a-url", tmp_path / "a.png")

    assert attempts == 1
