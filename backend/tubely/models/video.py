"""
Video Models for Tubely

This module defines the Pydantic model for video metadata records together
with the enums used by the upload pipeline:

- VideoRecord: one uploaded video and the URLs of its published assets
- AssetKind: the two uploadable asset kinds (thumbnail, video)
- AspectBucket: coarse aspect-ratio classification used in video keys

Video records are created outside this service; the upload pipeline only
reads them and sets ``thumbnail_url`` or ``video_url`` on the owner's behalf.
In MongoDB the record id is stored as ``_id`` in its canonical string form.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================


class AssetKind(str, Enum):
    """
    Uploadable asset kinds.

    The value doubles as the multipart field name carrying the file.
    """

    THUMBNAIL = "thumbnail"
    VIDEO = "video"

    @property
    def field_name(self) -> str:
        """Multipart form field that carries the file for this kind."""
        return self.value

    @property
    def record_field(self) -> str:
        """VideoRecord attribute holding the published URL for this kind."""
        return f"{self.value}_url"


class AspectBucket(str, Enum):
    """Aspect-ratio classes used as the prefix of published video keys."""

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


# =============================================================================
# MODELS
# =============================================================================


class VideoRecord(BaseModel):
    """
    Pydantic model for a video metadata record.

    Attributes:
        id: Record identifier (stored as ``_id`` in MongoDB)
        user_id: Identifier of the owning user
        title: Display title
        description: Optional free-text description
        thumbnail_url: Public URL of the current thumbnail, if any
        video_url: Public URL of the current video file, if any
        created_at: Creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
    """

    id: UUID = Field(
        ...,
        validation_alias=AliasChoices("_id", "id"),
        description="Unique video identifier",
    )
    user_id: UUID = Field(..., description="Identifier of the owning user")
    title: str = Field(default="", max_length=500, description="Video title")
    description: str | None = Field(default=None, description="Video description")
    thumbnail_url: str | None = Field(default=None, description="Published thumbnail URL")
    video_url: str | None = Field(default=None, description="Published video URL")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Creation timestamp (UTC)"
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Last modification timestamp (UTC)"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "0b6d2a2e-6c55-4bb1-9a53-3f9b54b9f0a1",
                "user_id": "7d1d7c9c-2f1e-4b7e-9f5a-6a4c1b0e8d22",
                "title": "Boots on the trail",
                "description": "A short hiking clip",
                "thumbnail_url": "http://localhost:8091/assets/0b6d2a2e-6c55-4bb1-9a53-3f9b54b9f0a1.jpeg",
                "video_url": "https://tubely-videos.s3.us-east-1.amazonaws.com/landscape/ab12.mp4",
                "created_at": "2025-01-15T10:30:00Z",
                "updated_at": "2025-01-15T10:31:00Z",
            }
        },
    )

    def is_owned_by(self, user_id: UUID) -> bool:
        """Return True when ``user_id`` owns this record."""
        return self.user_id == user_id

    def get_asset_url(self, kind: AssetKind) -> str | None:
        """Return the URL currently recorded for an asset kind."""
        return getattr(self, kind.record_field)

    def set_asset_url(self, kind: AssetKind, url: str) -> None:
        """Record a published asset URL and refresh ``updated_at``."""
        setattr(self, kind.record_field, url)
        self.updated_at = datetime.now(UTC)

    def to_document(self) -> dict[str, Any]:
        """Serialize for MongoDB: string identifiers, ``_id`` key, native datetimes."""
        document = self.model_dump()
        document["_id"] = str(document.pop("id"))
        document["user_id"] = str(document["user_id"])
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "VideoRecord":
        """Build a record from a MongoDB document."""
        return cls.model_validate(document)
