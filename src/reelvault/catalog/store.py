"""
CatalogStore - primary-key and name lookups over Video and Comic records.

The store hands out detached records (sessions use ``expire_on_commit=False``)
so callers can read attributes after the unit of work has closed.

Usage:
    from reelvault.catalog.store import CatalogStore
    store = CatalogStore()
    video = store.find_video(video_id)
"""

from __future__ import annotations

import uuid
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.entities import Comic, Video
from ..infra.uow import session


def _parse_id(record_id: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(record_id, uuid.UUID):
        return record_id
    try:
        return uuid.UUID(str(record_id))
    except ValueError:
        return None


class CatalogStore:
    """Catalog access used by the HTTP layer, the CLI and the sync job."""

    def __init__(self, session_factory: Callable[[], Session] | None = None):
        self._session_factory = session_factory

    def _session(self):
        return session(self._session_factory)

    # -- lookups -----------------------------------------------------------

    def find_video(self, video_id: str | uuid.UUID) -> Video | None:
        parsed = _parse_id(video_id)
        if parsed is None:
            return None
        with self._session() as db:
            return db.get(Video, parsed)

    def find_comic(self, comic_id: str | uuid.UUID) -> Comic | None:
        parsed = _parse_id(comic_id)
        if parsed is None:
            return None
        with self._session() as db:
            return db.get(Comic, parsed)

    def list_videos(self) -> list[Video]:
        with self._session() as db:
            return list(db.scalars(select(Video).order_by(Video.created_at.desc())))

    def list_comics(self) -> list[Comic]:
        with self._session() as db:
            return list(db.scalars(select(Comic).order_by(Comic.created_at.desc())))

    # -- writes ------------------------------------------------------------

    def add_video(self, name: str, link: str, thumbnail: str = "", duration: int = 0) -> Video:
        video = Video(name=name, link=link, thumbnail=thumbnail, duration=duration)
        with self._session() as db:
            db.add(video)
        return video

    def add_comic(self, name: str, folder_link: str, thumbnail: str = "", description: str = "") -> Comic:
        comic = Comic(name=name, folder_link=folder_link, thumbnail=thumbnail, description=description)
        with self._session() as db:
            db.add(comic)
        return comic

    def upsert_video_by_name(self, name: str, link: str, thumbnail: str = "") -> tuple[Video, bool]:
        """Insert or update a video matched by name. Returns (video, created)."""
        with self._session() as db:
            video = db.scalars(select(Video).where(Video.name == name)).first()
            if video is None:
                video = Video(name=name, link=link, thumbnail=thumbnail, duration=0)
                db.add(video)
                return video, True
            video.link = link
            # Only fill the thumbnail when it was empty
            if not video.thumbnail:
                video.thumbnail = thumbnail
            return video, False

    def upsert_comic_by_name(self, name: str, folder_link: str, thumbnail: str = "") -> tuple[Comic, bool]:
        """Insert or update a comic matched by name. Returns (comic, created)."""
        with self._session() as db:
            comic = db.scalars(select(Comic).where(Comic.name == name)).first()
            if comic is None:
                comic = Comic(name=name, folder_link=folder_link, thumbnail=thumbnail)
                db.add(comic)
                return comic, True
            comic.folder_link = folder_link
            if thumbnail:
                comic.thumbnail = thumbnail
            return comic, False
