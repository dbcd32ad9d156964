"""
Catalog sync: import videos and comics from the upstream drive.

Videos are the recognized video files in one folder (``Exhibition`` by
default); comics are the subfolders of another (``Comic``). Records are matched
by name, so re-running a sync updates links instead of duplicating entries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError

from ..catalog.store import CatalogStore
from ..infra.exceptions import ConfigurationError, NotFoundError, ReelVaultError, UnauthorizedError
from ..infra.logging import get_logger
from ..streaming.locator import AssetKind, AssetLocator

logger = get_logger(__name__)

VIDEOS_FOLDER = "Exhibition"
COMICS_FOLDER = "Comic"


@dataclass
class SyncResult:
    success: bool = True
    message: str = ""
    inserted: int = 0
    updated: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "inserted": self.inserted,
            "updated": self.updated,
            "errors": list(self.errors),
        }


def _strip_extension(name: str) -> str:
    return PurePosixPath(name).stem


def video_thumbnail_placeholder(base_url: str, name: str) -> str:
    return f"{base_url.rstrip('/')}/seed/{quote(name, safe='')}/640/360"


async def sync_videos(store: CatalogStore, locator: AssetLocator, folder: str = VIDEOS_FOLDER) -> SyncResult:
    result = SyncResult()
    try:
        files = await locator.list_children(folder, AssetKind.VIDEO)
    except NotFoundError:
        result.success = False
        result.message = f"{folder} folder not found in storage root"
        logger.warning("sync_folder_missing", folder=folder)
        return result
    except (UnauthorizedError, ConfigurationError):
        raise
    except ReelVaultError as e:
        result.success = False
        result.message = f"Video sync failed: {e}"
        logger.error("video_sync_failed", folder=folder, error=str(e))
        return result

    logger.info("video_sync_started", folder=folder, files=len(files))
    placeholder_base = locator.settings.placeholder_base_url
    for handle in files:
        name = _strip_extension(handle.resolved_name or handle.locator)
        try:
            _, created = store.upsert_video_by_name(
                name, handle.locator, thumbnail=video_thumbnail_placeholder(placeholder_base, name)
            )
        except SQLAlchemyError as e:
            result.errors.append(f"Error processing video {handle.resolved_name}: {e}")
            continue
        if created:
            result.inserted += 1
        else:
            result.updated += 1

    result.message = f"Video sync completed: {result.inserted} inserted, {result.updated} updated"
    logger.info("video_sync_completed", inserted=result.inserted, updated=result.updated, errors=len(result.errors))
    return result


async def sync_comics(store: CatalogStore, locator: AssetLocator, folder: str = COMICS_FOLDER) -> SyncResult:
    result = SyncResult()
    try:
        comic_folders = await locator.list_folders(folder)
    except NotFoundError:
        result.success = False
        result.message = f"{folder} folder not found in storage root"
        logger.warning("sync_folder_missing", folder=folder)
        return result
    except (UnauthorizedError, ConfigurationError):
        raise
    except ReelVaultError as e:
        result.success = False
        result.message = f"Comic sync failed: {e}"
        logger.error("comic_sync_failed", folder=folder, error=str(e))
        return result

    logger.info("comic_sync_started", folder=folder, comics=len(comic_folders))
    for comic_folder in comic_folders:
        name = comic_folder.resolved_name or comic_folder.locator
        try:
            pages = await locator.list_children(comic_folder.locator, AssetKind.IMAGE)
        except (UnauthorizedError, ConfigurationError):
            raise
        except ReelVaultError as e:
            result.errors.append(f"Error processing comic {name}: {e}")
            continue

        if not pages:
            result.errors.append(f"No images found in comic folder: {name}")
            continue

        try:
            _, created = store.upsert_comic_by_name(name, comic_folder.locator, thumbnail=pages[0].locator)
        except SQLAlchemyError as e:
            result.errors.append(f"Error processing comic {name}: {e}")
            continue
        if created:
            result.inserted += 1
        else:
            result.updated += 1

    result.message = f"Comic sync completed: {result.inserted} inserted, {result.updated} updated"
    logger.info("comic_sync_completed", inserted=result.inserted, updated=result.updated, errors=len(result.errors))
    return result


async def sync_all(
    store: CatalogStore,
    locator: AssetLocator,
    videos_folder: str = VIDEOS_FOLDER,
    comics_folder: str = COMICS_FOLDER,
) -> dict[str, SyncResult]:
    return {
        "videos": await sync_videos(store, locator, videos_folder),
        "comics": await sync_comics(store, locator, comics_folder),
    }
