"""
Blob Publishing Service for Tubely

Publishes staged upload bytes to their final home and returns the public URL:

- LocalAssetPublisher: thumbnails, written under ``assets_root`` and served
  by the application at ``{base_url}/assets/{key}``
- S3VideoPublisher: videos, uploaded to the configured bucket and addressed
  as ``https://{bucket}.s3.{region}.amazonaws.com/{key}``

Key helpers:
- thumbnail_key: ``{video_id}.{ext}``, deterministic so a new thumbnail
  replaces the old file in place
- video_key: ``{aspect_bucket}/{64 hex chars}.mp4`` from 32 random bytes

Blocking work (disk copies, boto3 calls) runs in worker threads through
``async_wrap`` so the event loop is never blocked.
"""

import asyncio
import logging
import os
import secrets
import shutil
import tempfile
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar
from uuid import UUID

from botocore.exceptions import BotoCoreError, ClientError

from tubely.config import Settings
from tubely.core.exceptions import UploadFailure, WriteFailure
from tubely.core.storage import StorageClient
from tubely.models.video import AspectBucket


# Set up module-level logger
logger = logging.getLogger(__name__)

# Type variable for generic async wrapper
T = TypeVar("T")

ASSETS_URL_PATH = "/assets"

# Random bytes behind each video key (rendered as 64 hex characters)
VIDEO_KEY_RANDOM_BYTES = 32


def async_wrap(func: Callable[..., T]) -> Callable[..., "asyncio.Future[T]"]:
    """
    Decorator to run a blocking function in a worker thread.

    Args:
        func: The synchronous function to wrap

    Returns:
        An async function that executes the original via asyncio.to_thread
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)

    return wrapper


# =============================================================================
# Key Construction
# =============================================================================


def thumbnail_key(video_id: UUID, extension: str) -> str:
    """Key of a video's thumbnail, e.g. ``"<uuid>.jpeg"``."""
    return f"{video_id}.{extension}"


def video_key(aspect_bucket: AspectBucket) -> str:
    """Fresh random key for a video, e.g. ``"landscape/<64 hex>.mp4"``."""
    return f"{aspect_bucket.value}/{secrets.token_hex(VIDEO_KEY_RANDOM_BYTES)}.mp4"


# =============================================================================
# Publisher Interface
# =============================================================================


class BlobPublisher(Protocol):
    """Destination for published asset bytes."""

    async def publish(self, source_path: Path, key: str, content_type: str, size: int) -> str: ...

    async def delete(self, key: str) -> None: ...

    def url_for(self, key: str) -> str: ...

    def key_from_url(self, url: str | None) -> str | None: ...


# =============================================================================
# Local Asset Publisher
# =============================================================================


class LocalAssetPublisher:
    """
    Publishes files into the local assets directory.

    Each file is copied to a temporary sibling in the destination directory
    and renamed into place, so readers of ``/assets`` never observe a
    partially written file.

    Example:
        ```python
        publisher = LocalAssetPublisher(settings)
        url = await publisher.publish(staged.path, "<uuid>.png", "image/png", staged.size)
        ```
    """

    def __init__(self, settings: Settings) -> None:
        self.assets_root = Path(settings.assets_root)
        self.base_url = f"{settings.base_url}{ASSETS_URL_PATH}"

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def key_from_url(self, url: str | None) -> str | None:
        """Return the key of a URL produced by this publisher, else None."""
        prefix = f"{self.base_url}/"
        if url and url.startswith(prefix) and len(url) > len(prefix):
            return url[len(prefix) :]
        return None

    def _resolve(self, key: str) -> Path:
        root = self.assets_root.resolve()
        destination = (root / key).resolve()
        if root not in destination.parents:
            raise WriteFailure(f"Asset key '{key}' escapes the assets directory")
        return destination

    @async_wrap
    def _copy_into_place(self, source_path: Path, destination: Path) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.", suffix=".partial", dir=destination.parent
        )
        try:
            with os.fdopen(fd, "wb") as temp_file, open(source_path, "rb") as source:
                shutil.copyfileobj(source, temp_file)
            os.replace(temp_name, destination)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    async def publish(self, source_path: Path, key: str, content_type: str, size: int) -> str:
        """
        Copy a staged file to ``assets_root/key``.

        Returns:
            str: Public URL of the asset.

        Raises:
            WriteFailure: If the file cannot be written.
        """
        destination = self._resolve(key)
        try:
            await self._copy_into_place(source_path, destination)
        except OSError as e:
            logger.exception("Failed to write asset", extra={"key": key})
            raise WriteFailure(f"Couldn't write asset '{key}': {e!s}") from e

        logger.info(
            "Published local asset",
            extra={"key": key, "content_type": content_type, "bytes": size},
        )
        return self.url_for(key)

    async def delete(self, key: str) -> None:
        """Remove a published asset; a missing file is not an error."""
        destination = self._resolve(key)
        try:
            await asyncio.to_thread(destination.unlink, missing_ok=True)
        except OSError as e:
            raise WriteFailure(f"Couldn't delete asset '{key}': {e!s}") from e
        logger.info("Deleted local asset", extra={"key": key})


# =============================================================================
# S3 Video Publisher
# =============================================================================


class S3VideoPublisher:
    """
    Publishes files to the S3 video bucket through StorageClient.

    Example:
        ```python
        publisher = S3VideoPublisher(get_storage_client(settings))
        url = await publisher.publish(path, video_key(bucket), "video/mp4", size)
        ```
    """

    def __init__(self, storage: StorageClient) -> None:
        self.storage = storage

    def url_for(self, key: str) -> str:
        return self.storage.object_url(key)

    def key_from_url(self, url: str | None) -> str | None:
        """Return the key of a URL produced by this publisher, else None."""
        prefix = self.storage.object_url("")
        if url and url.startswith(prefix) and len(url) > len(prefix):
            return url[len(prefix) :]
        return None

    async def publish(self, source_path: Path, key: str, content_type: str, size: int) -> str:
        """
        Upload a staged file as ``key``.

        Returns:
            str: Public URL of the object.

        Raises:
            UploadFailure: If the upload fails.
        """
        put_object = async_wrap(self.storage.put_object)
        try:
            await put_object(source_path, key, content_type, size)
        except (ClientError, BotoCoreError, OSError) as e:
            raise UploadFailure(f"Couldn't upload '{key}' to S3: {e!s}") from e

        return self.url_for(key)

    async def delete(self, key: str) -> None:
        """Delete an uploaded object."""
        delete_object = async_wrap(self.storage.delete_object)
        try:
            await delete_object(key)
        except (ClientError, BotoCoreError) as e:
            raise UploadFailure(f"Couldn't delete '{key}' from S3: {e!s}") from e
