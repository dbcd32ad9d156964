"""
HTTP contract tests for the asset endpoints.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from reelvault.infra.exceptions import UpstreamError
from reelvault.streaming.throttle import RATE_LIMIT_HEADER
from reelvault.web.server import create_app


@pytest.fixture
def app(test_settings, store, provider):
    return create_app(test_settings, store=store, provider=provider)


@pytest.fixture
def client(app):
    with TestClient(app, follow_redirects=False) as client:
        yield client


@pytest.fixture
def video(store):
    return store.add_video("Clip", "Exhibition/clip.mp4", duration=42)


@pytest.fixture
def comic(store):
    return store.add_comic("Issue 1", "Comic/Issue 1")


class TestVideoStream:
    def test_full_stream(self, client, video):
        response = client.get(f"/assets/video/{video.id}/stream")
        assert response.status_code == 200
        assert response.content == b"0123456789"
        assert response.headers["accept-ranges"] == "bytes"

    def test_range_stream(self, client, video):
        response = client.get(f"/assets/video/{video.id}/stream", headers={"Range": "bytes=3-6"})
        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 3-6/10"
        assert response.content == b"3456"

    def test_unsatisfiable_range(self, client, video):
        response = client.get(f"/assets/video/{video.id}/stream", headers={"Range": "bytes=99-"})
        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */10"

    def test_unknown_video_is_404_json(self, client):
        response = client.get("/assets/video/00000000-0000-0000-0000-000000000000/stream")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_malformed_id_is_404(self, client):
        response = client.get("/assets/video/not-a-uuid/stream")
        assert response.status_code == 404

    def test_legacy_source_link_is_used(self, client, store):
        from reelvault.domain.entities import Video
        from reelvault.infra.uow import session

        legacy = Video(title="Old Clip", source_link="Exhibition/clip.mp4")
        with session(store._session_factory) as db:
            db.add(legacy)

        response = client.get(f"/assets/video/{legacy.id}/stream", headers={"Range": "bytes=0-1"})
        assert response.status_code == 206
        assert response.content == b"01"

    def test_throttle_then_short_circuit(self, client, video, provider):
        provider.open_error = UpstreamError("Bandwidth limit exceeded", time_limit=500)

        first = client.get(f"/assets/video/{video.id}/stream")
        assert first.status_code == 429
        assert first.headers[RATE_LIMIT_HEADER] == "500"
        assert first.json()["timeLimit"] == 500

        stat_calls = provider.stat_calls
        second = client.get(f"/assets/video/{video.id}/stream")
        assert second.status_code == 429
        assert provider.stat_calls == stat_calls

    def test_rate_limit_header_is_exposed_to_browsers(self, client, video, provider):
        provider.open_error = UpstreamError("Bandwidth limit exceeded", time_limit=5)
        response = client.get(f"/assets/video/{video.id}/stream", headers={"Origin": "https://reader.test"})
        assert RATE_LIMIT_HEADER.lower() in response.headers["access-control-expose-headers"].lower()


class TestVideoMetadata:
    def test_metadata(self, client, video):
        response = client.get(f"/assets/video/{video.id}/metadata")
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": {"name": "clip.mp4", "size": 10, "duration": 42},
        }

    def test_metadata_throttled(self, client, video, provider):
        provider.stat_errors = [UpstreamError("over quota", time_limit=30)]
        response = client.get(f"/assets/video/{video.id}/metadata")
        assert response.status_code == 429
        assert response.headers[RATE_LIMIT_HEADER] == "30"


class TestComicPages:
    def test_listing_in_reading_order(self, client, comic):
        response = client.get(f"/assets/image-series/{comic.id}/pages")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["total"] == 3
        assert body["comicName"] == "Issue 1"
        assert [p["name"] for p in body["data"]] == ["Page1.jpg", "page2.png", "page10.jpg"]
        assert [p["index"] for p in body["data"]] == [1, 2, 3]
        assert body["data"][1]["url"] == f"/assets/image-series/{comic.id}/page/2/stream"
        assert "fallback" not in body

    def test_unknown_comic_is_404(self, client):
        response = client.get("/assets/image-series/00000000-0000-0000-0000-000000000000/pages")
        assert response.status_code == 404

    def test_listing_throttled_is_429(self, client, comic, provider):
        provider.list_errors = [UpstreamError("Bandwidth limit exceeded", time_limit=40)]
        response = client.get(f"/assets/image-series/{comic.id}/pages")
        assert response.status_code == 429
        assert response.headers[RATE_LIMIT_HEADER] == "40"
        body = response.json()
        assert body["success"] is False
        assert body["timeLimit"] == 40

    def test_listing_failure_falls_back_to_placeholders(self, client, comic, provider):
        provider.list_errors = [UpstreamError("checksum mismatch", status=400)]
        response = client.get(f"/assets/image-series/{comic.id}/pages")
        assert response.status_code == 200
        body = response.json()
        assert body["fallback"] is True
        assert body["total"] == 15
        assert body["data"][0]["url"] == f"https://placeholder.test/seed/{comic.id}-0/800/1200"

    def test_page_stream(self, client, comic):
        response = client.get(f"/assets/image-series/{comic.id}/page/3/stream")
        assert response.status_code == 200
        assert response.content == b"page-ten"
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["cache-control"] == "public, max-age=86400"

    def test_page_out_of_range_redirects(self, client, comic):
        response = client.get(f"/assets/image-series/{comic.id}/page/9/stream")
        assert response.status_code == 302
        assert response.headers["location"] == f"https://placeholder.test/seed/{comic.id}-8/800/1200"

    def test_malformed_page_number_redirects(self, client, comic):
        response = client.get(f"/assets/image-series/{comic.id}/page/first/stream")
        assert response.status_code == 302
        assert response.headers["location"] == f"https://placeholder.test/seed/{comic.id}-0/800/1200"

    def test_page_of_unknown_comic_is_404(self, client):
        response = client.get("/assets/image-series/00000000-0000-0000-0000-000000000000/page/1/stream")
        assert response.status_code == 404

    def test_throttled_page_redirect_carries_reset(self, client, comic, provider):
        provider.open_error = UpstreamError("Bandwidth limit exceeded", time_limit=70)
        response = client.get(f"/assets/image-series/{comic.id}/page/1/stream")
        assert response.status_code == 302
        assert response.headers[RATE_LIMIT_HEADER] == "70"

        # The window now short-circuits later pages without touching upstream
        list_calls = provider.list_calls
        again = client.get(f"/assets/image-series/{comic.id}/page/2/stream")
        assert again.status_code == 302
        assert RATE_LIMIT_HEADER in again.headers
        assert provider.list_calls == list_calls


class TestComicCover:
    def test_cover_is_first_page(self, client, comic):
        response = client.get(f"/assets/image-series/{comic.id}/cover")
        assert response.status_code == 200
        assert response.content == b"page-one"

    def test_cover_of_unknown_comic_redirects(self, client):
        missing = "00000000-0000-0000-0000-000000000000"
        response = client.get(f"/assets/image-series/{missing}/cover")
        assert response.status_code == 302
        assert response.headers["location"] == f"https://placeholder.test/seed/{missing}/400/600"

    def test_cover_of_empty_folder_redirects(self, client, store, provider):
        provider.folders["Comic/Empty"] = []
        empty = store.add_comic("Empty", "Comic/Empty")
        response = client.get(f"/assets/image-series/{empty.id}/cover")
        assert response.status_code == 302


def test_provider_closed_on_shutdown(app, provider):
    with TestClient(app):
        assert provider.aclosed is False
    assert provider.aclosed is True
