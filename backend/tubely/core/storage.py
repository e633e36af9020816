"""
Tubely S3 Storage Client

Thin boto3 wrapper used to publish processed videos. Works against AWS S3
and any S3-compatible endpoint (MinIO, LocalStack) through the configurable
endpoint URL.

Key Features:
- put_object from a staged file with explicit ContentType and ContentLength
- delete_object for superseded video cleanup
- Public object URL construction in the bucket's virtual-hosted form
- Singleton accessor for resource efficiency

All methods are synchronous; callers run them off the event loop
(see ``tubely.services.storage_service.async_wrap``).
"""

import logging
from pathlib import Path

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from tubely.config import Settings


# Configure module-level logger
logger = logging.getLogger(__name__)

# Singleton container for storage client instance
_singleton_container: dict[str, "StorageClient"] = {}


class StorageClient:
    """
    S3 client bound to the configured video bucket.

    Attributes:
        settings: Application settings containing S3 configuration
        s3_client: Initialized boto3 S3 client
        bucket_name: Target bucket for all operations
        region: Bucket region, used in public URLs

    Example usage:
        ```python
        storage = StorageClient(settings)
        storage.put_object(Path("/tmp/v.mp4"), "landscape/ab12.mp4", "video/mp4", 1024)
        url = storage.object_url("landscape/ab12.mp4")
        ```
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.bucket_name = settings.s3_bucket_name
        self.region = settings.s3_region

        client_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path" if settings.s3_endpoint_url else "auto"},
            retries={"max_attempts": 3, "mode": "standard"},
        )

        # When endpoint_url is None, boto3 defaults to AWS S3; unset keys fall
        # back to the default credential chain.
        self.s3_client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=settings.s3_region,
            config=client_config,
        )

        logger.info(
            "S3 storage client initialized",
            extra={
                "bucket": self.bucket_name,
                "region": self.region,
                "endpoint": settings.s3_endpoint_url or "AWS S3 (default)",
            },
        )

    def put_object(
        self,
        file_path: Path,
        key: str,
        content_type: str,
        content_length: int,
    ) -> None:
        """
        Upload a local file as a single S3 object.

        Args:
            file_path: Staged file to upload.
            key: Destination object key, e.g. "landscape/ab12...ef.mp4".
            content_type: Media type recorded on the object.
            content_length: Exact byte length of the file.

        Raises:
            ClientError, BotoCoreError: If the upload fails.
            OSError: If the staged file cannot be read.
        """
        try:
            with open(file_path, "rb") as body:
                self.s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=key,
                    Body=body,
                    ContentType=content_type,
                    ContentLength=content_length,
                )
        except (ClientError, BotoCoreError):
            logger.exception(
                "Failed to upload object to S3",
                extra={"key": key, "bucket": self.bucket_name},
            )
            raise

        logger.info(
            "Uploaded object to S3",
            extra={"key": key, "bucket": self.bucket_name, "content_length": content_length},
        )

    def delete_object(self, key: str) -> None:
        """
        Delete an object. Deleting a missing key is not an error in S3.

        Raises:
            ClientError, BotoCoreError: If the delete fails.
        """
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError):
            logger.exception("Failed to delete object from S3", extra={"key": key})
            raise

        logger.info("Deleted object from S3", extra={"key": key})

    def object_url(self, key: str) -> str:
        """Public URL of an object in this bucket."""
        return f"{self.settings.s3_public_base_url}/{key}"


def get_storage_client(settings: Settings) -> StorageClient:
    """
    Get the singleton StorageClient instance.

    The boto3 client is thread-safe, so one instance is shared by all
    requests and worker threads.
    """
    if "instance" not in _singleton_container:
        _singleton_container["instance"] = StorageClient(settings)
        logger.info("Created new StorageClient singleton instance")

    return _singleton_container["instance"]
