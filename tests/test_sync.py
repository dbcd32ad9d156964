"""
Catalog sync tests against the in-memory provider.
"""

from __future__ import annotations

import pytest

from reelvault.infra.exceptions import UnauthorizedError, UpstreamError
from reelvault.usecases.catalog_sync import (
    sync_all,
    sync_comics,
    sync_videos,
    video_thumbnail_placeholder,
)


def test_video_thumbnail_placeholder_is_url_safe():
    assert (
        video_thumbnail_placeholder("https://placeholder.test/", "My Clip")
        == "https://placeholder.test/seed/My%20Clip/640/360"
    )


class TestSyncVideos:
    @pytest.mark.asyncio
    async def test_inserts_then_updates(self, store, locator):
        first = await sync_videos(store, locator)
        assert first.success is True
        assert first.inserted == 2
        assert first.message == "Video sync completed: 2 inserted, 0 updated"

        videos = {v.name: v for v in store.list_videos()}
        assert set(videos) == {"clip", "trailer"}
        assert videos["clip"].link == "Exhibition/clip.mp4"
        assert videos["clip"].thumbnail == "https://placeholder.test/seed/clip/640/360"

        second = await sync_videos(store, locator)
        assert second.inserted == 0
        assert second.updated == 2
        assert len(store.list_videos()) == 2

    @pytest.mark.asyncio
    async def test_missing_folder(self, store, locator):
        result = await sync_videos(store, locator, folder="Nope")
        assert result.success is False
        assert result.message == "Nope folder not found in storage root"

    @pytest.mark.asyncio
    async def test_listing_failure_is_reported(self, store, locator, provider):
        provider.list_errors = [UpstreamError("checksum mismatch", status=400)]
        result = await sync_videos(store, locator)
        assert result.success is False
        assert result.message.startswith("Video sync failed:")

    @pytest.mark.asyncio
    async def test_unauthorized_propagates(self, store, locator, provider):
        provider.list_errors = [UpstreamError("forbidden", status=403)]
        with pytest.raises(UnauthorizedError):
            await sync_videos(store, locator)


class TestSyncComics:
    @pytest.mark.asyncio
    async def test_comic_folder_becomes_record(self, store, locator):
        result = await sync_comics(store, locator)
        assert result.success is True
        assert result.inserted == 1

        comic = store.list_comics()[0]
        assert comic.name == "Issue 1"
        assert comic.folder_link == "Comic/Issue 1"
        assert comic.thumbnail == "Comic/Issue 1/Page1.jpg"

    @pytest.mark.asyncio
    async def test_empty_folder_is_an_item_error(self, store, locator, provider):
        provider.folders["Comic"].append("Comic/Blank")
        provider.folders["Comic/Blank"] = []
        result = await sync_comics(store, locator)
        assert result.success is True
        assert result.inserted == 1
        assert result.errors == ["No images found in comic folder: Blank"]

    @pytest.mark.asyncio
    async def test_files_in_comic_root_are_ignored(self, store, locator, provider):
        provider.files["Comic/readme.txt"] = b"hi"
        provider.folders["Comic"].append("Comic/readme.txt")
        result = await sync_comics(store, locator)
        assert result.inserted == 1
        assert result.errors == []


@pytest.mark.asyncio
async def test_sync_all(store, locator):
    results = await sync_all(store, locator)
    assert results["videos"].to_dict()["inserted"] == 2
    assert results["comics"].to_dict() == {
        "success": True,
        "message": "Comic sync completed: 1 inserted, 0 updated",
        "inserted": 1,
        "updated": 0,
        "errors": [],
    }
