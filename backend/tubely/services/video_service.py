"""
Video Record Service for Tubely

Locates video records and commits published asset URLs back onto them.

- parse_video_id: path identifier -> UUID
- VideoStore: record store interface (get_video / update_video), with
  MongoVideoStore as the MongoDB implementation
- ensure_owner: ownership gate, run before any upload bytes are read
- commit_asset_url: set thumbnail_url / video_url and persist
"""

import logging
from typing import Protocol
from uuid import UUID

from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from tubely.core.exceptions import (
    Forbidden,
    MalformedIdentifier,
    NotFound,
    PersistFailure,
    StoreFailure,
)
from tubely.models.video import AssetKind, VideoRecord


# Configure module logger
logger = logging.getLogger(__name__)


def parse_video_id(raw: str) -> UUID:
    """
    Parse a path identifier into a video id.

    Raises:
        MalformedIdentifier: If ``raw`` is not a UUID.
    """
    try:
        return UUID(raw)
    except (ValueError, TypeError, AttributeError) as e:
        raise MalformedIdentifier(f"'{raw}' is not a valid video id") from e


# =============================================================================
# Record Store
# =============================================================================


class VideoStore(Protocol):
    """Record store holding video metadata."""

    async def get_video(self, video_id: UUID) -> VideoRecord: ...

    async def update_video(self, record: VideoRecord) -> None: ...


class MongoVideoStore:
    """
    VideoStore backed by the MongoDB ``videos`` collection.

    Args:
        collection: Motor collection holding video documents.
    """

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    async def get_video(self, video_id: UUID) -> VideoRecord:
        """
        Fetch one video record.

        Raises:
            NotFound: If no record has this id.
            StoreFailure: If the store cannot be read or holds an invalid document.
        """
        try:
            document = await self.collection.find_one({"_id": str(video_id)})
        except PyMongoError as e:
            raise StoreFailure(f"Couldn't read video {video_id}: {e!s}") from e

        if document is None:
            raise NotFound(f"Video {video_id} does not exist")

        try:
            return VideoRecord.from_document(document)
        except ValidationError as e:
            raise StoreFailure(f"Video {video_id} has an invalid document: {e!s}") from e

    async def update_video(self, record: VideoRecord) -> None:
        """
        Persist a record's mutable fields.

        Raises:
            PersistFailure: If the write fails or the record no longer exists.
        """
        document = record.to_document()
        document.pop("_id")
        document.pop("created_at", None)

        try:
            result = await self.collection.update_one({"_id": str(record.id)}, {"$set": document})
        except PyMongoError as e:
            raise PersistFailure(f"Couldn't update video {record.id}: {e!s}") from e

        if result.matched_count == 0:
            raise PersistFailure(f"Video {record.id} disappeared before update")


# =============================================================================
# Ownership and Commit
# =============================================================================


def ensure_owner(record: VideoRecord, user_id: UUID) -> None:
    """
    Require that ``user_id`` owns ``record``.

    Raises:
        Forbidden: If the record belongs to another user.
    """
    if not record.is_owned_by(user_id):
        logger.warning(
            "Rejected upload for video owned by another user",
            extra={"video_id": record.id, "user_id": user_id},
        )
        raise Forbidden(f"User {user_id} does not own video {record.id}")


async def commit_asset_url(
    store: VideoStore,
    record: VideoRecord,
    kind: AssetKind,
    url: str,
) -> VideoRecord:
    """
    Record a published asset URL on a video and persist it.

    The in-memory record is only changed once the store accepts the update,
    so callers still hold the previous state when PersistFailure is raised.

    Returns:
        VideoRecord: The updated record.

    Raises:
        PersistFailure: If the store rejects the update.
    """
    updated = record.model_copy(deep=True)
    updated.set_asset_url(kind, url)

    await store.update_video(updated)

    logger.info(
        "Committed %s URL",
        kind.value,
        extra={"video_id": updated.id, "url": url},
    )
    return updated
