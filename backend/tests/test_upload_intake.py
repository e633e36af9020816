"""
Upload Intake Test Suite for the Tubely Upload Service

Tests cover:
- Declared Content-Length rejection before any body is read
- Streaming byte ceiling without a declared length
- Multipart boundary handling and malformed bodies
- Selecting the named part among several
- Client disconnects mid-body
- Removal of the staging directory on success and on every error
"""

from collections.abc import Callable
from pathlib import Path

import pytest
from starlette.datastructures import Headers
from starlette.requests import Request

from tests.conftest import build_multipart_body, build_request
from tubely.core.exceptions import BodyTooLarge, ClientDisconnected, MalformedForm, MissingPart
from tubely.services.upload_intake import (
    check_content_length,
    get_multipart_boundary,
    read_upload,
)


def _staging_dirs(root: Path) -> list[Path]:
    return list(root.glob("tubely_upload_*")) if root.exists() else []


# =============================================================================
# Header Checks
# =============================================================================


class TestHeaderChecks:
    """Tests for Content-Length and Content-Type checks."""

    def test_declared_length_within_limit(self):
        """A declared length at the ceiling is accepted."""
        check_content_length(Headers({"content-length": "100"}), 100)

    def test_declared_length_over_limit(self):
        """A declared length over the ceiling raises BodyTooLarge."""
        with pytest.raises(BodyTooLarge):
            check_content_length(Headers({"content-length": "101"}), 100)

    def test_invalid_declared_length_ignored(self):
        """An unparseable Content-Length is left to the streaming counter."""
        check_content_length(Headers({"content-length": "lots"}), 100)

    def test_boundary_extracted(self):
        """The boundary parameter is returned as bytes."""
        headers = Headers({"content-type": "multipart/form-data; boundary=abc123"})
        assert get_multipart_boundary(headers) == b"abc123"

    def test_non_multipart_rejected(self):
        """Non-multipart bodies are malformed forms."""
        with pytest.raises(MalformedForm):
            get_multipart_boundary(Headers({"content-type": "application/json"}))

    def test_missing_boundary_rejected(self):
        """A multipart Content-Type without boundary is rejected."""
        with pytest.raises(MalformedForm):
            get_multipart_boundary(Headers({"content-type": "multipart/form-data"}))


# =============================================================================
# Staging
# =============================================================================


class TestReadUpload:
    """Tests for staging a single multipart part."""

    @pytest.mark.asyncio
    async def test_stages_named_part(
        self, tmp_path: Path, make_upload_request: Callable[..., Request]
    ):
        """The requested part's bytes are staged with its declared type and filename."""
        payload = b"\x89PNG\r\n\x1a\n" + b"x" * 5000
        request = make_upload_request("thumbnail", payload, "image/png", filename="boots.png")

        async with read_upload(request, "thumbnail", 1 << 20, tmp_path) as staged:
            assert staged.path.read_bytes() == payload
            assert staged.size == len(payload)
            assert staged.content_type == "image/png"
            assert staged.filename == "boots.png"
            assert staged.path.parent == staged.staging_dir
            staging_dir = staged.staging_dir

        assert not staging_dir.exists()

    @pytest.mark.asyncio
    async def test_other_parts_discarded(self, tmp_path: Path):
        """Only the named part is staged."""
        body = build_multipart_body(
            [
                ("title", None, b"ignored", None),
                ("video", "clip.mp4", b"VIDEOBYTES", "video/mp4"),
                ("thumbnail", "t.png", b"PNGBYTES", "image/png"),
            ]
        )
        request = build_request(body, chunk_size=7)

        async with read_upload(request, "video", 1 << 20, tmp_path) as staged:
            assert staged.path.read_bytes() == b"VIDEOBYTES"
            assert staged.content_type == "video/mp4"

    @pytest.mark.asyncio
    async def test_first_matching_part_wins(self, tmp_path: Path):
        """A repeated field name stages only its first occurrence."""
        body = build_multipart_body(
            [
                ("thumbnail", "a.png", b"FIRST", "image/png"),
                ("thumbnail", "b.png", b"SECOND", "image/png"),
            ]
        )

        async with read_upload(build_request(body), "thumbnail", 1 << 20, tmp_path) as staged:
            assert staged.path.read_bytes() == b"FIRST"

    @pytest.mark.asyncio
    async def test_part_without_content_type(
        self, tmp_path: Path, make_upload_request: Callable[..., Request]
    ):
        """A part with no Content-Type is staged with content_type None."""
        request = make_upload_request("thumbnail", b"data", None)

        async with read_upload(request, "thumbnail", 1 << 20, tmp_path) as staged:
            assert staged.content_type is None

    @pytest.mark.asyncio
    async def test_declared_oversize_reads_nothing(
        self, tmp_path: Path, make_upload_request: Callable[..., Request]
    ):
        """A declared oversize body is rejected before any staging directory exists."""
        request = make_upload_request("video", b"x" * 4096, "video/mp4")

        with pytest.raises(BodyTooLarge):
            async with read_upload(request, "video", 1024, tmp_path):
                pytest.fail("body should not be staged")

        assert _staging_dirs(tmp_path) == []

    @pytest.mark.asyncio
    async def test_streamed_oversize_rejected(
        self, tmp_path: Path, make_upload_request: Callable[..., Request]
    ):
        """Without Content-Length the running byte count enforces the ceiling."""
        request = make_upload_request(
            "video", b"x" * 4096, "video/mp4", declare_length=False, chunk_size=512
        )

        with pytest.raises(BodyTooLarge):
            async with read_upload(request, "video", 1024, tmp_path):
                pytest.fail("body should not be staged")

        assert _staging_dirs(tmp_path) == []

    @pytest.mark.asyncio
    async def test_missing_part(self, tmp_path: Path, make_upload_request: Callable[..., Request]):
        """A form without the named part raises MissingPart."""
        request = make_upload_request("image", b"data", "image/png")

        with pytest.raises(MissingPart):
            async with read_upload(request, "thumbnail", 1 << 20, tmp_path):
                pytest.fail("nothing should be staged")

        assert _staging_dirs(tmp_path) == []

    @pytest.mark.asyncio
    async def test_truncated_body_is_malformed(self, tmp_path: Path):
        """A body that ends inside the target part is a malformed form."""
        body = build_multipart_body([("video", "clip.mp4", b"y" * 2048, "video/mp4")])
        truncated = body[: len(body) // 2]

        with pytest.raises(MalformedForm):
            async with read_upload(build_request(truncated), "video", 1 << 20, tmp_path):
                pytest.fail("nothing should be staged")

        assert _staging_dirs(tmp_path) == []

    @pytest.mark.asyncio
    async def test_garbage_body_is_malformed(self, tmp_path: Path):
        """Bytes that do not start with the boundary are rejected."""
        request = build_request(b"this is not multipart at all\r\n" * 10)

        with pytest.raises(MalformedForm):
            async with read_upload(request, "video", 1 << 20, tmp_path):
                pytest.fail("nothing should be staged")

    @pytest.mark.asyncio
    async def test_client_disconnect(
        self, tmp_path: Path, make_upload_request: Callable[..., Request]
    ):
        """A disconnect mid-body raises ClientDisconnected and cleans up."""
        request = make_upload_request(
            "video", b"z" * 8192, "video/mp4", chunk_size=1024, disconnect_after=3
        )

        with pytest.raises(ClientDisconnected):
            async with read_upload(request, "video", 1 << 20, tmp_path):
                pytest.fail("nothing should be staged")

        assert _staging_dirs(tmp_path) == []

    @pytest.mark.asyncio
    async def test_error_inside_block_still_cleans_up(
        self, tmp_path: Path, make_upload_request: Callable[..., Request]
    ):
        """Exceptions raised by the caller propagate after the directory is removed."""
        request = make_upload_request("thumbnail", b"data", "image/png")

        with pytest.raises(RuntimeError, match="downstream"):
            async with read_upload(request, "thumbnail", 1 << 20, tmp_path) as staged:
                derived = staged.staging_dir / "derived.processing"
                derived.write_bytes(b"partial")
                raise RuntimeError("downstream failure")

        assert _staging_dirs(tmp_path) == []
