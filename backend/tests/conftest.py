"""
Pytest Configuration and Test Fixtures for the Tubely Upload Service

This module provides shared test fixtures including:
- Isolated Settings with temporary asset and staging directories
- Signed and expired JWTs for owner and non-owner users
- An in-memory VideoStore holding one owned video record
- Mocked S3 storage client, ffprobe probe and ffmpeg normalizer
- Starlette Request builders for raw multipart bodies
- FastAPI TestClient with dependency overrides
- Sample JPEG and PNG images generated with Pillow
"""

import os
import shutil
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from io import BytesIO
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from PIL import Image
from starlette.requests import Request

from tubely.api.v1.videos import get_upload_service
from tubely.config import Settings, get_settings
from tubely.core.exceptions import NotFound, PersistFailure
from tubely.core.storage import StorageClient
from tubely.main import create_app
from tubely.models.video import AspectBucket, VideoRecord
from tubely.services.storage_service import LocalAssetPublisher, S3VideoPublisher
from tubely.services.upload_service import UploadService


TEST_JWT_SECRET = "test-secret-key-for-jwt-signing-minimum-32-chars"
TEST_BOUNDARY = "tubely-test-boundary"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: test requiring external binaries")


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def mock_settings(tmp_path: Path) -> Settings:
    """
    Create a Settings instance with test-specific configuration values.

    Asset and staging directories live under pytest's tmp_path; libmagic
    sniffing is off so tests can upload arbitrary bytes.
    """
    return Settings(
        app_env="testing",
        app_name="Tubely-Test",
        debug=True,
        json_logs=False,
        base_url="http://testserver",
        jwt_secret=TEST_JWT_SECRET,
        jwt_algorithm="HS256",
        mongodb_uri="mongodb://localhost:27017",
        mongodb_db_name="test_tubely",
        s3_bucket_name="test-bucket",
        s3_region="us-east-1",
        s3_access_key_id="test-access-key",
        s3_secret_access_key="test-secret-key",
        assets_root=tmp_path / "assets",
        staging_dir=tmp_path / "staging",
        verify_content_signature=False,
        probe_failure_policy="fail",
        delete_superseded_assets=False,
    )


# ==============================================================================
# Authentication Fixtures
# ==============================================================================


def create_test_token(
    user_id: UUID | str,
    secret: str = TEST_JWT_SECRET,
    expires_delta: timedelta = timedelta(hours=1),
    **claims: Any,
) -> str:
    """Sign an HS256 JWT for ``user_id``."""
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "iss": "tubely-access",
        "iat": now,
        "exp": now + expires_delta,
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory signing test JWTs; see create_test_token for arguments."""
    return create_test_token


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_user_id() -> UUID:
    return uuid4()


@pytest.fixture
def owner_token(owner_id: UUID) -> str:
    return create_test_token(owner_id)


@pytest.fixture
def other_user_token(other_user_id: UUID) -> str:
    return create_test_token(other_user_id)


@pytest.fixture
def expired_token(owner_id: UUID) -> str:
    return create_test_token(owner_id, expires_delta=timedelta(hours=-1))


@pytest.fixture
def auth_headers(owner_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {owner_token}"}


# ==============================================================================
# Record Store Fixtures
# ==============================================================================


class InMemoryVideoStore:
    """
    VideoStore keeping records in a dict.

    Stored records are deep copies, so a test can compare what the store
    holds against what the pipeline returned. Set ``fail_updates`` to make
    update_video raise PersistFailure.
    """

    def __init__(self, records: list[VideoRecord] | None = None) -> None:
        self.records: dict[UUID, VideoRecord] = {}
        self.update_calls: list[VideoRecord] = []
        self.fail_updates = False
        for record in records or []:
            self.records[record.id] = record.model_copy(deep=True)

    async def get_video(self, video_id: UUID) -> VideoRecord:
        if video_id not in self.records:
            raise NotFound(f"Video {video_id} does not exist")
        return self.records[video_id].model_copy(deep=True)

    async def update_video(self, record: VideoRecord) -> None:
        self.update_calls.append(record.model_copy(deep=True))
        if self.fail_updates:
            raise PersistFailure("store rejected update")
        self.records[record.id] = record.model_copy(deep=True)


@pytest.fixture
def video_record(owner_id: UUID) -> VideoRecord:
    return VideoRecord(
        id=uuid4(),
        user_id=owner_id,
        title="Boots on the trail",
        description="A short hiking clip",
    )


@pytest.fixture
def video_store(video_record: VideoRecord) -> InMemoryVideoStore:
    return InMemoryVideoStore([video_record])


# ==============================================================================
# Storage and Media Fixtures
# ==============================================================================


@pytest.fixture
def mock_storage(mock_settings: Settings) -> Mock:
    """Create a mocked S3 StorageClient that accepts every upload."""
    mock = Mock(spec=StorageClient)
    mock.bucket_name = mock_settings.s3_bucket_name
    mock.put_object = Mock(return_value=None)
    mock.delete_object = Mock(return_value=None)
    mock.object_url = Mock(
        side_effect=lambda key: f"{mock_settings.s3_public_base_url}/{key}"
    )
    return mock


@pytest.fixture
def thumbnail_publisher(mock_settings: Settings) -> LocalAssetPublisher:
    return LocalAssetPublisher(mock_settings)


@pytest.fixture
def video_publisher(mock_storage: Mock) -> S3VideoPublisher:
    return S3VideoPublisher(mock_storage)


@pytest.fixture
def mock_probe() -> AsyncMock:
    """MediaProbe reporting every video as landscape."""
    probe = AsyncMock()
    probe.get_aspect_ratio = AsyncMock(return_value=AspectBucket.LANDSCAPE)
    return probe


@pytest.fixture
def mock_normalizer() -> AsyncMock:
    """MediaNormalizer that copies the input to ``<input>.processing``."""

    async def fake_fast_start(file_path: Path) -> Path:
        output_path = file_path.with_name(file_path.name + ".processing")
        shutil.copyfile(file_path, output_path)
        return output_path

    normalizer = AsyncMock()
    normalizer.process_for_fast_start = AsyncMock(side_effect=fake_fast_start)
    return normalizer


@pytest.fixture
def upload_service(
    mock_settings: Settings,
    video_store: InMemoryVideoStore,
    thumbnail_publisher: LocalAssetPublisher,
    video_publisher: S3VideoPublisher,
    mock_probe: AsyncMock,
    mock_normalizer: AsyncMock,
) -> UploadService:
    return UploadService(
        settings=mock_settings,
        store=video_store,
        thumbnail_publisher=thumbnail_publisher,
        video_publisher=video_publisher,
        probe=mock_probe,
        normalizer=mock_normalizer,
    )


# ==============================================================================
# Request Fixtures
# ==============================================================================


def build_multipart_body(
    parts: list[tuple[str, str | None, bytes, str | None]],
    boundary: str = TEST_BOUNDARY,
) -> bytes:
    """
    Encode multipart/form-data parts.

    Each part is ``(field name, filename or None, payload, content type or None)``.
    """
    body = BytesIO()
    for name, filename, payload, content_type in parts:
        body.write(f"--{boundary}\r\n".encode())
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        body.write(f"Content-Disposition: {disposition}\r\n".encode())
        if content_type is not None:
            body.write(f"Content-Type: {content_type}\r\n".encode())
        body.write(b"\r\n")
        body.write(payload)
        body.write(b"\r\n")
    body.write(f"--{boundary}--\r\n".encode())
    return body.getvalue()


def build_request(
    body: bytes,
    content_type: str = f"multipart/form-data; boundary={TEST_BOUNDARY}",
    chunk_size: int = 1024,
    declare_length: bool = True,
    disconnect_after: int | None = None,
) -> Request:
    """
    Build a Starlette Request that delivers ``body`` in chunks.

    Args:
        body: Raw request body.
        content_type: Request Content-Type header.
        chunk_size: Size of each ``http.request`` message.
        declare_length: Send a Content-Length header.
        disconnect_after: Send ``http.disconnect`` after this many chunks.
    """
    headers = [(b"content-type", content_type.encode())]
    if declare_length:
        headers.append((b"content-length", str(len(body)).encode()))

    chunks = [body[i : i + chunk_size] for i in range(0, len(body), chunk_size)] or [b""]
    messages: list[dict[str, Any]] = []
    for index, chunk in enumerate(chunks):
        if disconnect_after is not None and index >= disconnect_after:
            messages.append({"type": "http.disconnect"})
            break
        messages.append(
            {"type": "http.request", "body": chunk, "more_body": index < len(chunks) - 1}
        )

    async def receive() -> dict[str, Any]:
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "raw_path": b"/",
        "query_string": b"",
        "headers": headers,
    }
    return Request(scope, receive)


@pytest.fixture
def make_upload_request() -> Callable[..., Request]:
    """
    Factory for single-file multipart requests.

    Example:
        ```python
        request = make_upload_request("thumbnail", jpeg_bytes, "image/jpeg")
        ```
    """

    def _make(
        field_name: str,
        payload: bytes,
        content_type: str | None,
        filename: str | None = "upload.bin",
        **request_kwargs: Any,
    ) -> Request:
        body = build_multipart_body([(field_name, filename, payload, content_type)])
        return build_request(body, **request_kwargs)

    return _make


# ==============================================================================
# Image Fixtures
# ==============================================================================


@pytest.fixture
def sample_jpeg_bytes() -> bytes:
    """Small solid-colour JPEG."""
    buffer = BytesIO()
    Image.new("RGB", (64, 36), color=(200, 40, 40)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def sample_png_bytes() -> bytes:
    """Small solid-colour PNG."""
    buffer = BytesIO()
    Image.new("RGBA", (64, 36), color=(40, 200, 40, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def large_jpeg_bytes() -> bytes:
    """Noise JPEG of roughly 2 MB, well below the thumbnail ceiling."""
    width, height = 1024, 768
    image = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()


# ==============================================================================
# FastAPI TestClient
# ==============================================================================


@pytest.fixture
def test_client(
    mock_settings: Settings, upload_service: UploadService
) -> Generator[TestClient, None, None]:
    """
    TestClient for an application built with test settings.

    The lifespan is not run, so no MongoDB connection is attempted; the
    upload service dependency is replaced with the in-memory wiring above.
    """
    app = create_app(mock_settings)
    app.dependency_overrides[get_settings] = lambda: mock_settings
    app.dependency_overrides[get_upload_service] = lambda: upload_service

    client = TestClient(app, raise_server_exceptions=False)
    yield client

    app.dependency_overrides.clear()
