"""Upload derived assets and return durable URLs.

Paths are deterministic per record:
    {id}/poster.{ext}
    {id}/main.{ext}
    {id}/page_{n}.{ext}            (or page_{n}_{token}.{ext} for later additions)

The main asset is load-bearing: its failure aborts the ingestion. Poster and
page uploads fall back to an inline data URI so the record still renders.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from memoryreel.errors import AssetUploadError
from memoryreel.models import MediaFile, Sample
from memoryreel.storage import ObjectStorage

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
}


def extension_for(mime_type: str) -> str:
    return EXTENSIONS.get(mime_type, mime_type.split("/")[-1] or "bin")


def poster_path(record_id: str, mime_type: str = "image/png") -> str:
    return f"{record_id}/poster.{extension_for(mime_type)}"


def main_path(record_id: str, extension: str) -> str:
    return f"{record_id}/main.{extension}"


def page_path(record_id: str, number: int, mime_type: str, token: Optional[str] = None) -> str:
    suffix = f"_{token}" if token else ""
    return f"{record_id}/page_{number}{suffix}.{extension_for(mime_type)}"


def dedupe(urls: Iterable[str]) -> list[str]:
    """Drop repeated URLs, keeping first-seen order."""
    seen: set[str] = set()
    result = []
    for url in urls:
        if url and url not in seen:
            seen.add(url)
            result.append(url)
    return result


def dedupe_samples(samples: Sequence[Sample]) -> list[Sample]:
    """Drop samples whose bytes were already submitted."""
    seen: set[str] = set()
    result = []
    for sample in samples:
        digest = hashlib.sha256(sample.data).hexdigest()
        if digest not in seen:
            seen.add(digest)
            result.append(sample)
    return result


@dataclass
class PublishedAssets:
    thumbnail_url: str
    main_asset_url: str
    pages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class AssetPublisher:
    """Writes a record's binary assets to object storage."""

    def __init__(self, storage: ObjectStorage):
        self.storage = storage

    async def upload_main(self, record_id: str, media: MediaFile) -> str:
        """Upload the primary video/photo. Failure is fatal for the ingestion."""
        path = main_path(record_id, media.extension)
        try:
            url = await self.storage.upload(path, media.data, media.content_type)
        except AssetUploadError:
            logger.error(f"Main asset upload failed for {record_id} ({media.filename})")
            raise
        logger.info(f"Uploaded main asset {path} ({len(media.data)} bytes)")
        return url

    async def upload_poster(self, record_id: str, poster: Sample, warnings: Optional[list] = None) -> str:
        """Upload the poster; on failure fall back to the in-memory image."""
        path = poster_path(record_id, poster.mime_type)
        try:
            return await self.storage.upload(path, poster.data, poster.mime_type)
        except AssetUploadError as e:
            logger.warning(f"Poster upload failed, keeping inline image: {e}")
            if warnings is not None:
                warnings.append(str(e))
            return poster.data_uri

    async def upload_pages(
        self,
        record_id: str,
        pages: Sequence[Sample],
        start: int = 1,
        disambiguate: bool = False,
        warnings: Optional[list] = None,
    ) -> list[str]:
        """Upload secondary pages in order, deduplicated by content and URL.

        ``disambiguate`` adds a random token to each path so pages appended
        after a reorder never overwrite an existing page.
        """
        urls = []
        for number, page in enumerate(dedupe_samples(pages), start=start):
            token = secrets.token_hex(4) if disambiguate else None
            path = page_path(record_id, number, page.mime_type, token)
            try:
                urls.append(await self.storage.upload(path, page.data, page.mime_type))
            except AssetUploadError as e:
                logger.warning(f"Page upload failed, keeping inline image: {e}")
                if warnings is not None:
                    warnings.append(str(e))
                urls.append(page.data_uri)
        return dedupe(urls)

    async def publish(
        self,
        record_id: str,
        main: MediaFile,
        poster: Sample,
        pages: Sequence[Sample] = (),
    ) -> PublishedAssets:
        """Upload everything for a new record; the main asset goes first.

        Raises:
            AssetUploadError: the main asset could not be stored
        """
        warnings: list[str] = []
        main_url = await self.upload_main(record_id, main)
        thumbnail_url = await self.upload_poster(record_id, poster, warnings)
        page_urls = await self.upload_pages(record_id, pages, warnings=warnings)

        logger.info(
            f"Published assets for {record_id}: "
            f"{len(page_urls)} page(s), {len(warnings)} fallback(s)"
        )
        return PublishedAssets(
            thumbnail_url=thumbnail_url,
            main_asset_url=main_url,
            pages=page_urls,
            warnings=warnings,
        )

    async def remove_all(self, record_id: str) -> int:
        """Delete every object stored under the record's prefix."""
        paths = await self.storage.list_paths(record_id)
        if paths:
            await self.storage.remove(paths)
        logger.info(f"Removed {len(paths)} asset(s) for {record_id}")
        return len(paths)
