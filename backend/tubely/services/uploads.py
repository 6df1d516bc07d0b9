from __future__ import annotations

import asyncio
import logging
from typing import BinaryIO

from sqlalchemy.ext.asyncio import AsyncSession

from tubely.core.config import Settings
from tubely.models import User, Video
from tubely.services.errors import InvalidUploadError, StorageFaultError, VideoOwnershipError
from tubely.services.keys import ObjectReference, derive_object_key
from tubely.services.media import FAST_START_SUFFIX, MediaProcessor
from tubely.services.staging import StagingArea, stage
from tubely.services.storage import StorageService
from tubely.services.videos import save_video

logger = logging.getLogger(__name__)

VIDEO_MEDIA_TYPES = frozenset({"video/mp4"})
THUMBNAIL_MEDIA_TYPES = frozenset({"image/jpeg", "image/png"})


def parse_media_type(content_type: str | None) -> str:
    """Strip parameters from a Content-Type header: ``video/mp4; x=y`` -> ``video/mp4``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def ensure_owner(video: Video, user: User) -> None:
    if video.user_id != user.id:
        raise VideoOwnershipError("Video does not belong to user")


def accept_media_type(content_type: str | None, accepted: frozenset[str]) -> str:
    media_type = parse_media_type(content_type)
    if media_type not in accepted:
        raise InvalidUploadError(
            f"Unsupported media type {media_type or 'missing'!r}; "
            f"expected one of {', '.join(sorted(accepted))}"
        )
    return media_type


class UploadPipeline:
    """Stage -> remux -> probe -> key -> transfer -> persist, failing fast.

    The video record is written only after the object is fully stored, and
    every staged file is removed on the way out whatever happened.
    """

    def __init__(
        self,
        storage: StorageService,
        media: MediaProcessor,
        staging: StagingArea,
        settings: Settings,
    ) -> None:
        self.storage = storage
        self.media = media
        self.staging = staging
        self.settings = settings

    async def upload_video(
        self,
        session: AsyncSession,
        video: Video,
        source: BinaryIO,
        content_type: str | None,
    ) -> Video:
        media_type = accept_media_type(content_type, VIDEO_MEDIA_TYPES)

        with self.staging.acquire(suffix=".mp4") as raw:
            size = await stage(source, raw, self.settings.max_video_upload_bytes)
            logger.info("Staged %d bytes for video %s", size, video.id)

            with raw.derive(FAST_START_SUFFIX) as processed:
                await asyncio.to_thread(
                    self.media.remux_for_fast_start, raw.path, processed.path
                )
                geometry = await asyncio.to_thread(self.media.probe_geometry, processed.path)
                key = derive_object_key(media_type, geometry)
                await self.storage.upload_file(processed.path, key, media_type)

        reference = ObjectReference(bucket=self.storage.bucket, key=key)
        logger.info("Stored video %s as %s (%s)", video.id, reference.key, geometry.value)

        video.video_url = reference.to_stored()
        return await save_video(session, video)

    async def upload_thumbnail(
        self,
        session: AsyncSession,
        video: Video,
        source: BinaryIO,
        content_type: str | None,
    ) -> Video:
        media_type = accept_media_type(content_type, THUMBNAIL_MEDIA_TYPES)

        with self.staging.acquire() as raw:
            size = await stage(source, raw, self.settings.max_thumbnail_upload_bytes)
            key = derive_object_key(media_type)
            await self.storage.upload_file(raw.path, key, media_type)

        reference = ObjectReference(bucket=self.storage.bucket, key=key)
        logger.info("Stored %d byte thumbnail for video %s as %s", size, video.id, key)

        video.thumbnail_url = reference.to_stored()
        return await save_video(session, video)

    async def discard_assets(self, video: Video) -> None:
        """Delete the stored objects of a removed video; failures are only logged."""
        for stored in (video.video_url, video.thumbnail_url):
            if stored is None:
                continue
            try:
                reference = ObjectReference.parse(stored)
                await self.storage.delete_object(reference.key, bucket=reference.bucket)
            except StorageFaultError:
                logger.exception("Failed to delete stored object %s for video %s", stored, video.id)
