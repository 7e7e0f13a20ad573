"""
Media migration.

Uploads the images inside an .apkg to object storage through a small pool
of workers and returns the original-filename -> public-URL table used to
rewrite card HTML. A failed upload degrades one card's content; it never
aborts the import.
"""

import asyncio
import logging
from pathlib import PurePosixPath

from ankiport.config import MEDIA_UPLOAD_CONCURRENCY
from ankiport.models.card import MediaAsset
from ankiport.parsers.apkg import ApkgArchive
from ankiport.services.storage import MediaStorage, StorageError

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".ico": "image/x-icon",
}

MEDIA_PATH_SEGMENT = "anki-media"


def image_extension(filename: str) -> str | None:
    """Lower-cased image extension of a filename, or None if not an image."""
    suffix = PurePosixPath(filename).suffix.lower()
    return suffix if suffix in IMAGE_CONTENT_TYPES else None


def media_storage_path(owner_id: str, original_filename: str) -> str:
    return f"{owner_id}/{MEDIA_PATH_SEGMENT}/{original_filename}"


def collect_media_assets(archive: ApkgArchive, media_map: dict[str, str]) -> list[MediaAsset]:
    """
    Select the archive entries to upload.

    An entry qualifies when either:
    - its name is a key of the media map and the mapped original name is
      an image, or
    - its own name already carries an image extension (archives without a
      media map).
    """
    assets: list[MediaAsset] = []

    for name in archive.entry_names:
        if name in media_map:
            original = media_map[name]
            ext = image_extension(original)
            if ext:
                assets.append(MediaAsset(name, original, IMAGE_CONTENT_TYPES[ext]))
            continue

        ext = image_extension(name)
        if ext:
            assets.append(MediaAsset(name, name, IMAGE_CONTENT_TYPES[ext]))

    return assets


async def _upload_worker(
    queue: asyncio.Queue[MediaAsset],
    archive: ApkgArchive,
    storage: MediaStorage,
    owner_id: str,
    url_map: dict[str, str],
) -> None:
    while True:
        try:
            asset = queue.get_nowait()
        except asyncio.QueueEmpty:
            return

        try:
            data = archive.read(asset.entry_name)
            asset.public_url = await storage.upload(
                media_storage_path(owner_id, asset.original_filename),
                data,
                asset.content_type,
            )
            url_map[asset.original_filename] = asset.public_url
            # Archive name as an alias; an original filename always wins
            if asset.entry_name != asset.original_filename:
                url_map.setdefault(asset.entry_name, asset.public_url)
        except (StorageError, KeyError, OSError) as e:
            logger.error("Failed to upload %s: %s", asset.original_filename, e)
        finally:
            queue.task_done()


async def migrate_media(
    archive: ApkgArchive,
    media_map: dict[str, str],
    storage: MediaStorage,
    owner_id: str,
    *,
    concurrency: int = MEDIA_UPLOAD_CONCURRENCY,
) -> tuple[dict[str, str], list[MediaAsset]]:
    """
    Upload every qualifying image with a bounded number of workers.

    All workers are joined before returning, so the URL table is complete.

    Returns:
        Tuple of (original filename -> public URL, assets considered)
    """
    assets = collect_media_assets(archive, media_map)
    logger.info("Found %d media files", len(assets))

    url_map: dict[str, str] = {}
    if not assets:
        return url_map, assets

    queue: asyncio.Queue[MediaAsset] = asyncio.Queue()
    for asset in assets:
        queue.put_nowait(asset)

    workers = [
        asyncio.create_task(_upload_worker(queue, archive, storage, owner_id, url_map))
        for _ in range(max(1, min(concurrency, len(assets))))
    ]
    await asyncio.gather(*workers)

    uploaded = sum(1 for asset in assets if asset.public_url)
    logger.info("Media upload complete: %d/%d uploaded", uploaded, len(assets))
    return url_map, assets
