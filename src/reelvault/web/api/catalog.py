"""
Read-only catalog API.

Lists the videos and comics the service knows about and reports the public
storage configuration. Writes go through the CLI and the sync job.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from ...catalog.records import serialize_comic, serialize_video
from ...infra.exceptions import NotFoundError
from ...providers import describe_storage

router = APIRouter(tags=["catalog"])


@router.get("/api/videos")
async def list_videos(request: Request):
    videos = request.app.state.store.list_videos()
    return {"success": True, "data": [serialize_video(v) for v in videos]}


@router.get("/api/videos/{video_id}")
async def get_video(video_id: str, request: Request):
    video = request.app.state.store.find_video(video_id)
    if video is None:
        raise NotFoundError(f"Video {video_id} not found")
    return {"success": True, "data": serialize_video(video)}


@router.get("/api/comics")
async def list_comics(request: Request):
    comics = request.app.state.store.list_comics()
    return {"success": True, "data": [serialize_comic(c) for c in comics]}


@router.get("/api/comics/{comic_id}")
async def get_comic(comic_id: str, request: Request):
    comic = request.app.state.store.find_comic(comic_id)
    if comic is None:
        raise NotFoundError(f"Comic {comic_id} not found")
    return {"success": True, "data": serialize_comic(comic)}


@router.get("/api/config/storage")
async def storage_config(request: Request):
    return {"success": True, "data": describe_storage(request.app.state.settings)}


@router.get("/health")
async def health(request: Request):
    window = request.app.state.throttle_state.current()
    return {
        "status": "ok",
        "throttled": window.is_limited,
        "resetIn": request.app.state.throttle_state.remaining_seconds() if window.is_limited else 0,
    }
