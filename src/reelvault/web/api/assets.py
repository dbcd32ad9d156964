"""
Asset relay API.

Video streams, video metadata, and comic page listings, page streams and
covers. Video endpoints answer errors as JSON; image endpoints answer errors
with a redirect to a placeholder image.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import Response

from ...catalog.records import storage_locator, to_ref
from ...infra.exceptions import NotFoundError, ReelVaultError, ThrottledError
from ...infra.logging import get_logger
from ...infra.settings import Settings
from ...streaming.locator import AssetKind

logger = get_logger(__name__)

router = APIRouter(prefix="/assets", tags=["assets"])

FALLBACK_PAGE_COUNT = 15


def placeholder_url(settings: Settings, seed: str, width: int, height: int) -> str:
    return f"{settings.placeholder_base_url.rstrip('/')}/seed/{seed}/{width}/{height}"


def page_stream_path(comic_id: str, index: int) -> str:
    return f"/assets/image-series/{comic_id}/page/{index}/stream"


def _raise_if_window_active(request: Request) -> None:
    window = request.app.state.relay.active_window()
    if window is not None:
        raise ThrottledError(reset_seconds=window)


@router.get("/video/{video_id}/stream")
async def stream_video(video_id: str, request: Request) -> Response:
    video = request.app.state.store.find_video(video_id)
    if video is None:
        raise NotFoundError(f"Video {video_id} not found")
    ref = to_ref(video)
    return await request.app.state.relay.stream_video(ref.storage_locator, request.headers.get("range"))


@router.get("/video/{video_id}/metadata")
async def video_metadata(video_id: str, request: Request):
    video = request.app.state.store.find_video(video_id)
    if video is None:
        raise NotFoundError(f"Video {video_id} not found")
    ref = to_ref(video)
    _raise_if_window_active(request)

    handle = await request.app.state.locator.resolve_handle(ref.storage_locator, AssetKind.VIDEO)
    return {
        "success": True,
        "data": {
            "name": handle.resolved_name or ref.name,
            "size": handle.resolved_size,
            "duration": video.duration,
        },
    }


@router.get("/image-series/{comic_id}/pages")
async def list_pages(comic_id: str, request: Request):
    """List a comic's pages in reading order.

    A throttle answers 429; any other upstream failure falls back to a fixed
    set of placeholder pages so readers still have something to show.
    """
    settings: Settings = request.app.state.settings
    comic = request.app.state.store.find_comic(comic_id)
    if comic is None:
        raise NotFoundError(f"Comic {comic_id} not found")
    ref = to_ref(comic)
    _raise_if_window_active(request)

    try:
        pages = await request.app.state.locator.list_children(ref.storage_locator, AssetKind.IMAGE)
    except ThrottledError:
        raise
    except ReelVaultError as e:
        logger.warning("page_listing_fallback", comic_id=comic_id, error=str(e))
        data = [
            {
                "name": f"Page {index}",
                "url": placeholder_url(settings, f"{comic_id}-{index - 1}", 800, 1200),
                "index": index,
            }
            for index in range(1, FALLBACK_PAGE_COUNT + 1)
        ]
        return {
            "success": True,
            "data": data,
            "total": len(data),
            "comicName": ref.name,
            "fallback": True,
        }

    data = [
        {"name": page.resolved_name, "url": page_stream_path(comic_id, index), "index": index}
        for index, page in enumerate(pages, start=1)
    ]
    return {"success": True, "data": data, "total": len(data), "comicName": ref.name}


@router.get("/image-series/{comic_id}/page/{page}/stream")
async def stream_page(comic_id: str, page: str, request: Request) -> Response:
    settings: Settings = request.app.state.settings
    relay = request.app.state.relay
    comic = request.app.state.store.find_comic(comic_id)
    if comic is None:
        raise NotFoundError(f"Comic {comic_id} not found")

    # Readers always get an image back, even for a malformed page number
    try:
        index = int(page)
    except ValueError:
        return relay.redirect_to_placeholder(placeholder_url(settings, f"{comic_id}-0", 800, 1200))

    fallback = placeholder_url(settings, f"{comic_id}-{index - 1}", 800, 1200)
    folder = storage_locator(comic)
    if not folder:
        return relay.redirect_to_placeholder(fallback)

    window = relay.active_window()
    if window is not None:
        return relay.redirect_to_placeholder(fallback, reset_seconds=window)

    try:
        pages = await request.app.state.locator.list_children(folder, AssetKind.IMAGE)
    except ReelVaultError as e:
        return relay.placeholder_for_error(fallback, e)

    if index < 1 or index > len(pages):
        return relay.redirect_to_placeholder(fallback)
    return await relay.stream_image(pages[index - 1], fallback)


@router.get("/image-series/{comic_id}/cover")
async def comic_cover(comic_id: str, request: Request) -> Response:
    settings: Settings = request.app.state.settings
    relay = request.app.state.relay
    fallback = placeholder_url(settings, comic_id, 400, 600)

    comic = request.app.state.store.find_comic(comic_id)
    folder = storage_locator(comic) if comic is not None else None
    if not folder:
        return relay.redirect_to_placeholder(fallback)

    window = relay.active_window()
    if window is not None:
        return relay.redirect_to_placeholder(fallback, reset_seconds=window)

    try:
        pages = await request.app.state.locator.list_children(folder, AssetKind.IMAGE)
    except ReelVaultError as e:
        return relay.placeholder_for_error(fallback, e)

    if not pages:
        return relay.redirect_to_placeholder(fallback)
    return await relay.stream_image(pages[0], fallback)
