"""
Canonical accessors over catalog records.

Records may carry either the current ``name``/``link`` fields or the legacy
``title``/``source_link`` ones. Everything downstream of the catalog works on
``CatalogRef`` so the dual shape stops here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..domain.entities import Comic, Video
from ..infra.exceptions import NotFoundError


@dataclass(frozen=True)
class CatalogRef:
    id: str
    kind: str  # "video" | "comic"
    name: str
    storage_locator: str


def display_name(record: Video | Comic) -> str:
    return record.name or record.title or ""


def storage_locator(record: Video | Comic) -> str | None:
    """Return the provider locator for a record, honoring legacy fields."""
    if isinstance(record, Video):
        return record.link or record.source_link
    return record.folder_link or record.source_folder_link


def to_ref(record: Video | Comic) -> CatalogRef:
    locator = storage_locator(record)
    kind = "video" if isinstance(record, Video) else "comic"
    if not locator:
        raise NotFoundError(f"No storage link available for {kind} {record.id}")
    return CatalogRef(
        id=str(record.id),
        kind=kind,
        name=display_name(record),
        storage_locator=locator,
    )


def serialize_video(video: Video) -> dict[str, Any]:
    return {
        "id": str(video.id),
        "name": display_name(video),
        "link": storage_locator(video),
        "thumbnail": video.thumbnail,
        "duration": video.duration,
        "createdAt": video.created_at.isoformat() if video.created_at else None,
    }


def serialize_comic(comic: Comic) -> dict[str, Any]:
    return {
        "id": str(comic.id),
        "name": display_name(comic),
        "folderLink": storage_locator(comic),
        "thumbnail": comic.thumbnail,
        "description": comic.description,
        "createdAt": comic.created_at.isoformat() if comic.created_at else None,
    }
