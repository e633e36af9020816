"""
Video API Endpoints for Tubely

Endpoints:
- GET  /videos/{video_id}            Fetch a video record owned by the caller
- POST /videos/{video_id}/thumbnail  Upload a thumbnail (multipart field ``thumbnail``)
- POST /videos/{video_id}/video      Upload the video file (multipart field ``video``)

Upload handlers take the raw Request rather than an UploadFile parameter: a
File() parameter would make FastAPI read and spool the whole body before the
handler runs, ahead of the ownership check and the size ceiling. The upload
service reads the body itself once the caller is known to own the record.

All endpoints require ``Authorization: Bearer <token>``. Errors are returned
as ``{"error": "<message>"}`` by the application exception handler.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from tubely.config import Settings, get_settings
from tubely.core.auth import get_current_user_id
from tubely.core.database import get_db_client
from tubely.core.storage import get_storage_client
from tubely.models.video import VideoRecord
from tubely.services.media_service import FFmpegMediaNormalizer, FFprobeMediaProbe
from tubely.services.storage_service import LocalAssetPublisher, S3VideoPublisher
from tubely.services.upload_service import UploadService
from tubely.services.video_service import MongoVideoStore


# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Error body returned for every failed request."""

    error: str = Field(..., description="Generic, client-safe error message")


def _multipart_body(field_name: str, description: str) -> dict[str, Any]:
    """OpenAPI request body for a single-file multipart upload."""
    return {
        "requestBody": {
            "required": True,
            "content": {
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "required": [field_name],
                        "properties": {
                            field_name: {
                                "type": "string",
                                "format": "binary",
                                "description": description,
                            }
                        },
                    }
                }
            },
        }
    }


# ============================================================================
# Dependency Injection
# ============================================================================


def get_upload_service(settings: Settings = Depends(get_settings)) -> UploadService:
    """
    Dependency injection for UploadService.

    Wires the MongoDB record store, the local thumbnail publisher, the S3
    video publisher and the ffprobe/ffmpeg tools from settings.
    """
    store = MongoVideoStore(get_db_client().get_videos_collection())
    return UploadService(
        settings=settings,
        store=store,
        thumbnail_publisher=LocalAssetPublisher(settings),
        video_publisher=S3VideoPublisher(get_storage_client(settings)),
        probe=FFprobeMediaProbe(settings),
        normalizer=FFmpegMediaNormalizer(settings),
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "/{video_id}",
    response_model=VideoRecord,
    summary="Get video",
    description="Return a video record owned by the authenticated user.",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid video id"},
        401: {"model": ErrorResponse, "description": "Missing or invalid credentials, or not the owner"},
        404: {"model": ErrorResponse, "description": "Video not found"},
    },
)
async def get_video(
    video_id: str,
    user_id: UUID = Depends(get_current_user_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> VideoRecord:
    """Return the caller's video record, including any committed asset URLs."""
    return await upload_service.get_owned_video(video_id, user_id)


@router.post(
    "/{video_id}/thumbnail",
    response_model=VideoRecord,
    summary="Upload thumbnail",
    description="Upload a JPEG or PNG thumbnail (max 10 MiB) for a video you own.",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid video id or form data"},
        401: {"model": ErrorResponse, "description": "Missing or invalid credentials, or not the owner"},
        404: {"model": ErrorResponse, "description": "Video not found"},
        413: {"model": ErrorResponse, "description": "Upload too large"},
        415: {"model": ErrorResponse, "description": "Unsupported media type"},
        500: {"model": ErrorResponse, "description": "Storage or database failure"},
    },
    openapi_extra=_multipart_body("thumbnail", "image/jpeg or image/png file"),
)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> VideoRecord:
    """
    Store a thumbnail under ``/assets/{video_id}.{ext}`` and record its URL.

    Returns:
        VideoRecord: The updated record.
    """
    logger.info("Thumbnail upload request for video %s from user %s", video_id, user_id)
    return await upload_service.upload_thumbnail(request, video_id, user_id)


@router.post(
    "/{video_id}/video",
    response_model=VideoRecord,
    summary="Upload video",
    description=(
        "Upload an MP4 (max 1 GiB) for a video you own. The file is remuxed for fast "
        "start and stored in S3 under a key prefixed by its aspect ratio class."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid video id or form data"},
        401: {"model": ErrorResponse, "description": "Missing or invalid credentials, or not the owner"},
        404: {"model": ErrorResponse, "description": "Video not found"},
        413: {"model": ErrorResponse, "description": "Upload too large"},
        415: {"model": ErrorResponse, "description": "Unsupported media type"},
        500: {"model": ErrorResponse, "description": "Processing, storage or database failure"},
    },
    openapi_extra=_multipart_body("video", "video/mp4 file"),
)
async def upload_video(
    video_id: str,
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> VideoRecord:
    """
    Probe, remux and publish a video file, then record its S3 URL.

    Returns:
        VideoRecord: The updated record.
    """
    logger.info("Video upload request for video %s from user %s", video_id, user_id)
    return await upload_service.upload_video(request, video_id, user_id)
