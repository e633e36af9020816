"""
Upload Pipeline Service for Tubely

Runs the thumbnail and video upload pipelines for an authenticated user:

    parse id -> fetch record -> ownership gate -> stage body part
    -> validate media type -> [probe aspect ratio -> remux faststart] (video)
    -> publish blob -> commit URL -> (optional) delete superseded blob

Guarantees:
- The ownership gate runs before any body byte is read, so a request for a
  video the user does not own never creates a staging directory, spawns a
  media tool, publishes, or mutates the record.
- The blob is published before the record references it. If the commit
  fails the blob is left orphaned and the record is unchanged.
- Every staged file, including the normalized video, lives in one
  request-scoped directory that is removed on every exit path.
"""

import logging
from pathlib import Path
from uuid import UUID

from starlette.requests import Request

from tubely.config import Settings
from tubely.core.exceptions import ProbeFailure, UploadFailure, WriteFailure
from tubely.models.video import AspectBucket, AssetKind, VideoRecord
from tubely.services.media_service import MediaNormalizer, MediaProbe
from tubely.services.storage_service import BlobPublisher, thumbnail_key, video_key
from tubely.services.upload_intake import read_upload
from tubely.services.video_service import (
    VideoStore,
    commit_asset_url,
    ensure_owner,
    parse_video_id,
)
from tubely.utils.file_validator import (
    extension_for_media_type,
    validate_media_type,
    verify_content_signature,
)
from tubely.utils.logger import ContextLoggerAdapter, add_log_context


logger = logging.getLogger(__name__)


class UploadService:
    """
    Orchestrates asset uploads for existing video records.

    Attributes:
        settings: Application settings (size ceilings, staging, policies)
        store: Video record store
        thumbnail_publisher: Destination for thumbnails (local assets)
        video_publisher: Destination for videos (S3)
        probe: Aspect-ratio inspector for videos
        normalizer: Fast-start remuxer for videos

    Example:
        ```python
        service = UploadService(settings, store, local_publisher, s3_publisher, probe, normalizer)
        record = await service.upload_video(request, "0b6d2a2e-...", user_id)
        ```
    """

    def __init__(
        self,
        settings: Settings,
        store: VideoStore,
        thumbnail_publisher: BlobPublisher,
        video_publisher: BlobPublisher,
        probe: MediaProbe,
        normalizer: MediaNormalizer,
    ) -> None:
        self.settings = settings
        self.store = store
        self.thumbnail_publisher = thumbnail_publisher
        self.video_publisher = video_publisher
        self.probe = probe
        self.normalizer = normalizer

    def max_upload_bytes(self, kind: AssetKind) -> int:
        if kind is AssetKind.THUMBNAIL:
            return self.settings.max_thumbnail_upload_bytes
        return self.settings.max_video_upload_bytes

    def publisher_for(self, kind: AssetKind) -> BlobPublisher:
        if kind is AssetKind.THUMBNAIL:
            return self.thumbnail_publisher
        return self.video_publisher

    async def upload_thumbnail(
        self, request: Request, raw_video_id: str, user_id: UUID
    ) -> VideoRecord:
        """Upload the ``thumbnail`` form part as a video's thumbnail."""
        return await self._upload(request, raw_video_id, user_id, AssetKind.THUMBNAIL)

    async def upload_video(self, request: Request, raw_video_id: str, user_id: UUID) -> VideoRecord:
        """Upload the ``video`` form part as a video's media file."""
        return await self._upload(request, raw_video_id, user_id, AssetKind.VIDEO)

    async def get_owned_video(self, raw_video_id: str, user_id: UUID) -> VideoRecord:
        """Fetch a video record the user owns."""
        record = await self.store.get_video(parse_video_id(raw_video_id))
        ensure_owner(record, user_id)
        return record

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _upload(
        self,
        request: Request,
        raw_video_id: str,
        user_id: UUID,
        kind: AssetKind,
    ) -> VideoRecord:
        video_id = parse_video_id(raw_video_id)
        ctx_logger = add_log_context(
            logger, video_id=str(video_id), user_id=str(user_id), asset_kind=kind.value
        )

        record = await self.store.get_video(video_id)
        ensure_owner(record, user_id)

        publisher = self.publisher_for(kind)

        async with read_upload(
            request,
            kind.field_name,
            self.max_upload_bytes(kind),
            self.settings.staging_dir,
        ) as staged:
            media_type = validate_media_type(staged.content_type, kind)
            if self.settings.verify_content_signature:
                await verify_content_signature(staged.path, media_type)

            ctx_logger.info(
                "Staged %s upload",
                kind.value,
                extra={"bytes": staged.size, "content_type": media_type},
            )

            if kind is AssetKind.THUMBNAIL:
                source_path: Path = staged.path
                size = staged.size
                key = thumbnail_key(video_id, extension_for_media_type(media_type))
            else:
                aspect_bucket = await self._inspect(staged.path, ctx_logger)
                source_path = await self.normalizer.process_for_fast_start(staged.path)
                size = source_path.stat().st_size
                key = video_key(aspect_bucket)

            url = await publisher.publish(source_path, key, media_type, size)

        previous_url = record.get_asset_url(kind)
        updated = await commit_asset_url(self.store, record, kind, url)

        if self.settings.delete_superseded_assets:
            await self._delete_superseded(publisher, previous_url, key, ctx_logger)

        ctx_logger.info("Completed %s upload", kind.value, extra={"key": key})
        return updated

    async def _inspect(self, path: Path, ctx_logger: ContextLoggerAdapter) -> AspectBucket:
        """Probe a staged video, applying the configured probe failure policy."""
        try:
            return await self.probe.get_aspect_ratio(path)
        except ProbeFailure:
            if not self.settings.falls_back_on_probe_failure:
                raise
            ctx_logger.warning(
                "Probe failed; classifying video as '%s'",
                AspectBucket.OTHER.value,
                exc_info=True,
            )
            return AspectBucket.OTHER

    async def _delete_superseded(
        self,
        publisher: BlobPublisher,
        previous_url: str | None,
        new_key: str,
        ctx_logger: ContextLoggerAdapter,
    ) -> None:
        """Best-effort removal of the blob the record referenced before this upload."""
        old_key = publisher.key_from_url(previous_url)
        if old_key is None or old_key == new_key:
            return

        try:
            await publisher.delete(old_key)
        except (WriteFailure, UploadFailure):
            ctx_logger.warning(
                "Failed to delete superseded asset", extra={"key": old_key}, exc_info=True
            )
            return

        ctx_logger.info("Deleted superseded asset", extra={"key": old_key})
