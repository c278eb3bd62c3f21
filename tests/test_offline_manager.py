"""
Tests for the download, removal and query operations of OfflineManager.
"""

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from lesson_cache.core.offline_manager import OfflineManager
from lesson_cache.models.content import ContentDescriptor
from lesson_cache.remote.sync import RemoteFlagSynchronizer

from .conftest import FakeFetcher, RecordingStore


@pytest.mark.asyncio
async def test_lesson_round_trip(manager, lesson):
    assert await manager.download_content(lesson) is True

    records = await manager.get_downloaded_content_list()
    assert len(records) == 1
    assert records[0].id == "lesson-1"
    assert [e.remote_url for e in records[0].media_urls] == lesson["mediaUrls"]

    assert await manager.remove_content("lesson-1") is True
    assert await manager.get_downloaded_content_list() == []


@pytest.mark.asyncio
async def test_empty_media_list_is_cached(manager, config):
    assert await manager.download_content({"id": "quiz-7", "mediaUrls": []})

    assert await manager.is_content_downloaded("quiz-7")
    record = await manager.get_offline_content("quiz-7")
    assert record.media_urls == []
    assert (config.download_dir / "quiz-7").is_dir()


@pytest.mark.asyncio
async def test_missing_media_urls_field_counts_as_empty(manager):
    assert await manager.download_content({"id": "story-2"})
    assert (await manager.get_offline_content("story-2")).media_urls == []


@pytest.mark.asyncio
async def test_record_keeps_descriptor_fields_and_media_order(manager, lesson, config):
    descriptor = ContentDescriptor.model_validate(lesson)
    assert await manager.download_content(descriptor)

    record = await manager.get_offline_content("lesson-1")
    assert record.id == descriptor.id
    assert record.model_extra == descriptor.model_extra
    assert len(record.media_urls) == len(descriptor.media_urls)

    content_dir = config.download_dir / "lesson-1"
    assert [e.remote_url for e in record.media_urls] == descriptor.media_urls
    assert [e.local_path for e in record.media_urls] == [
        str(content_dir / "img.png"),
        str(content_dir / "audio.mp3"),
    ]
    assert (content_dir / "img.png").read_bytes() == b"content of https://x/img.png"
    assert record.downloaded_at.utcoffset() == timedelta(0)


@pytest.mark.asyncio
async def test_media_files_fetched_concurrently(config, record_store):
    urls = [f"https://cdn.example/slide-{i}.png" for i in range(4)]
    fetcher = FakeFetcher(delays={url: 0.05 for url in urls})
    manager = OfflineManager(
        config, fetcher=fetcher, remote=RemoteFlagSynchronizer(record_store)
    )

    assert await manager.download_content({"id": "slides", "mediaUrls": urls})
    assert fetcher.max_in_flight == 4


@pytest.mark.asyncio
async def test_concurrency_capped_by_config(config, record_store):
    config.max_concurrent_fetches = 2
    urls = [f"https://cdn.example/page-{i}.png" for i in range(6)]
    fetcher = FakeFetcher(delays={url: 0.02 for url in urls})
    manager = OfflineManager(
        config, fetcher=fetcher, remote=RemoteFlagSynchronizer(record_store)
    )

    assert await manager.download_content({"id": "book", "mediaUrls": urls})
    assert fetcher.max_in_flight == 2


@pytest.mark.asyncio
async def test_redownload_overwrites_single_entry(manager, lesson):
    assert await manager.download_content(lesson)
    first = await manager.get_offline_content("lesson-1")

    lesson["title"] = "Farm Animals (revised)"
    assert await manager.download_content(lesson)

    records = await manager.get_downloaded_content_list()
    assert [r.id for r in records] == ["lesson-1"]
    assert records[0].model_extra["title"] == "Farm Animals (revised)"
    assert records[0].downloaded_at >= first.downloaded_at


@pytest.mark.asyncio
async def test_redownload_keeps_list_position(manager):
    for content_id in ("a", "b", "c"):
        assert await manager.download_content({"id": content_id})
    assert await manager.download_content({"id": "a", "title": "again"})

    assert [r.id for r in await manager.get_downloaded_content_list()] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_one_failed_fetch_fails_whole_download(config, record_store):
    urls = ["https://x/one.png", "https://x/two.png", "https://x/three.mp3"]
    # The failure lands after the other two files are already on disk.
    fetcher = FakeFetcher(failing=("https://x/three.mp3",), delays={urls[2]: 0.05})
    manager = OfflineManager(
        config, fetcher=fetcher, remote=RemoteFlagSynchronizer(record_store)
    )

    assert await manager.download_content({"id": "lesson-9", "mediaUrls": urls}) is False

    assert await manager.is_content_downloaded("lesson-9") is False
    assert not (config.download_dir / "lesson-9").exists()
    assert list(config.staging_dir.iterdir()) == []
    assert record_store.updates == []


@pytest.mark.asyncio
async def test_failed_redownload_keeps_previous_copy(config, record_store, lesson):
    manager = OfflineManager(
        config, fetcher=FakeFetcher(), remote=RemoteFlagSynchronizer(record_store)
    )
    assert await manager.download_content(lesson)

    manager.fetcher = FakeFetcher(failing=("https://x/audio.mp3",))
    assert await manager.download_content(lesson) is False

    record = await manager.get_offline_content("lesson-1")
    assert record is not None
    assert all(path.is_file() for path in record.local_paths)


@pytest.mark.asyncio
async def test_remove_never_downloaded_id_succeeds(manager):
    assert await manager.remove_content("never-cached") is True
    assert await manager.is_content_downloaded("never-cached") is False


@pytest.mark.asyncio
async def test_remove_deletes_directory(manager, lesson, config):
    await manager.download_content(lesson)
    assert (config.download_dir / "lesson-1").is_dir()

    assert await manager.remove_content("lesson-1")
    assert not (config.download_dir / "lesson-1").exists()


@pytest.mark.asyncio
async def test_remove_is_idempotent(manager, lesson):
    await manager.download_content(lesson)
    assert await manager.remove_content("lesson-1")
    assert await manager.remove_content("lesson-1")
    assert await manager.is_content_downloaded("lesson-1") is False


@pytest.mark.asyncio
async def test_remove_rejects_path_like_id(manager, config):
    outside = config.download_dir.parent / "keep-me"
    outside.mkdir(parents=True)

    assert await manager.remove_content("../keep-me") is False
    assert outside.is_dir()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "descriptor",
    [
        {"mediaUrls": []},
        {"id": "", "mediaUrls": []},
        {"id": "../escape", "mediaUrls": []},
        {"id": "lesson", "mediaUrls": "https://x/not-a-list.png"},
    ],
)
async def test_invalid_descriptor_is_rejected(manager, fetcher, descriptor):
    assert await manager.download_content(descriptor) is False
    assert fetcher.calls == []
    assert await manager.get_downloaded_content_list() == []


@pytest.mark.asyncio
async def test_concurrent_downloads_of_different_ids_all_recorded(manager):
    ids = [f"lesson-{i}" for i in range(12)]
    results = await asyncio.gather(
        *(
            manager.download_content(
                {"id": cid, "mediaUrls": [f"https://x/{cid}/pic.png"]}
            )
            for cid in ids
        )
    )

    assert all(results)
    assert {r.id for r in await manager.get_downloaded_content_list()} == set(ids)


@pytest.mark.asyncio
async def test_concurrent_download_and_remove_do_not_lose_updates(manager):
    await manager.download_content({"id": "old"})

    await asyncio.gather(
        manager.download_content({"id": "new"}),
        manager.remove_content("old"),
    )

    assert [r.id for r in await manager.get_downloaded_content_list()] == ["new"]


@pytest.mark.asyncio
async def test_same_filename_in_one_descriptor_gets_distinct_files(manager, config):
    urls = ["https://a.example/cover.png", "https://b.example/cover.png"]
    assert await manager.download_content({"id": "pair", "mediaUrls": urls})

    record = await manager.get_offline_content("pair")
    names = [Path(e.local_path).name for e in record.media_urls]
    assert names == ["cover.png", "cover-1.png"]
    assert (config.download_dir / "pair" / "cover-1.png").read_bytes() == (
        b"content of https://b.example/cover.png"
    )


@pytest.mark.asyncio
async def test_same_filename_across_contents_does_not_collide(manager, config):
    await manager.download_content({"id": "a", "mediaUrls": ["https://x/1/intro.mp3"]})
    await manager.download_content({"id": "b", "mediaUrls": ["https://x/2/intro.mp3"]})

    assert (config.download_dir / "a" / "intro.mp3").read_bytes() == (
        b"content of https://x/1/intro.mp3"
    )
    assert (config.download_dir / "b" / "intro.mp3").read_bytes() == (
        b"content of https://x/2/intro.mp3"
    )


@pytest.mark.asyncio
async def test_queries_on_corrupt_index_report_nothing_cached(manager, config):
    config.index_path.parent.mkdir(parents=True)
    config.index_path.write_text("{not json", encoding="utf-8")

    assert await manager.is_content_downloaded("lesson-1") is False
    assert await manager.get_offline_content("lesson-1") is None
    assert await manager.get_downloaded_content_list() == []
    assert await manager.download_content({"id": "lesson-1"}) is False


@pytest.mark.asyncio
async def test_ensure_storage_ready_is_idempotent(manager, config):
    await manager.ensure_storage_ready()
    await manager.ensure_storage_ready()
    assert config.download_dir.is_dir()


@pytest.mark.asyncio
async def test_ensure_storage_ready_swallows_errors(manager, config):
    config.download_dir.parent.mkdir(parents=True, exist_ok=True)
    config.download_dir.write_text("a file where the directory should be")

    await manager.ensure_storage_ready()
    assert await manager.download_content({"id": "lesson-1"}) is False


@pytest.mark.asyncio
async def test_manager_is_async_context_manager(config, fetcher, record_store):
    async with OfflineManager(
        config, fetcher=fetcher, remote=RemoteFlagSynchronizer(record_store)
    ) as manager:
        assert config.download_dir.is_dir()
        assert await manager.download_content({"id": "ctx"})


@pytest.mark.asyncio
async def test_index_survives_new_manager_instance(config, lesson):
    first = OfflineManager(config, fetcher=FakeFetcher())
    await first.download_content(lesson)

    second = OfflineManager(config, fetcher=FakeFetcher())
    assert await second.is_content_downloaded("lesson-1")


@pytest.mark.asyncio
async def test_download_without_remote_store_configured(config, lesson):
    manager = OfflineManager(config, fetcher=FakeFetcher())
    assert await manager.download_content(lesson)
    assert await manager.remove_content("lesson-1")


@pytest.mark.asyncio
async def test_remote_failure_does_not_change_result(config, fetcher, lesson):
    manager = OfflineManager(
        config, fetcher=fetcher, remote=RemoteFlagSynchronizer(RecordingStore(fail=True))
    )

    assert await manager.download_content(lesson) is True
    assert await manager.is_content_downloaded("lesson-1")
    assert await manager.remove_content("lesson-1") is True
    assert await manager.is_content_downloaded("lesson-1") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("reserved_id", [".staging", ".a.old"])
async def test_ids_naming_internal_directories_are_rejected(
    manager, fetcher, config, reserved_id
):
    other_download = config.staging_dir / "other-abc123"
    other_download.mkdir(parents=True)
    assert await manager.download_content({"id": "a"})

    descriptor = {"id": reserved_id, "mediaUrls": ["https://x/p.png"]}
    assert await manager.download_content(descriptor) is False
    assert await manager.download_content({"id": "a"})
    assert await manager.remove_content(reserved_id) is False

    assert fetcher.calls == []
    assert other_download.is_dir()
    assert sorted(p.name for p in config.download_dir.iterdir()) == [".staging", "a"]
    assert await manager.is_content_downloaded("a")
