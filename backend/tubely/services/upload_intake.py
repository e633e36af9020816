"""
Upload Intake Service for Tubely

Reads a multipart/form-data request body incrementally and stages a single
named file part on disk, enforcing a byte ceiling on the whole body.

The body is never parsed by the framework: the upload routes receive the raw
Request so that authentication and ownership are checked before a single
body byte is consumed. Intake then:

1. Rejects the request up front when a declared Content-Length exceeds the
   ceiling.
2. Streams ``request.stream()`` through a counter that raises BodyTooLarge as
   soon as the running total passes the ceiling.
3. Feeds each chunk to python-multipart's MultipartParser and writes only the
   requested field's bytes to a staged file with aiofiles; other parts are
   discarded.
4. Removes the per-request staging directory, and everything written into
   it, when the ``read_upload`` context exits, on success and on every error.

Usage:
    ```python
    async with read_upload(request, "video", settings.max_video_upload_bytes) as staged:
        await probe.get_aspect_ratio(staged.path)
    # staged.path and its directory are gone here
    ```
"""

import logging
import shutil
import tempfile
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiofiles
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect, Request

from tubely.core.exceptions import BodyTooLarge, ClientDisconnected, MalformedForm, MissingPart


# Configure module logger
logger = logging.getLogger(__name__)

STAGING_DIR_PREFIX = "tubely_upload_"
STAGED_FILENAME = "tubely-upload"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class StagedUpload:
    """
    A file part staged on disk for the duration of one request.

    Attributes:
        path: Location of the staged bytes
        content_type: Content-Type declared on the part, if any
        filename: Original client filename, if any
        size: Number of bytes staged
        staging_dir: Request-scoped directory; derived files (e.g. the
            normalized video) are written here so they share its cleanup
    """

    path: Path
    content_type: str | None
    filename: str | None
    size: int
    staging_dir: Path


# =============================================================================
# Header Checks
# =============================================================================


def check_content_length(headers: Mapping[str, str], max_bytes: int) -> None:
    """
    Reject a request whose declared Content-Length exceeds ``max_bytes``.

    A missing or unparseable header is not an error here; the streamed byte
    count is still enforced while reading.

    Raises:
        BodyTooLarge: If the declared length exceeds the ceiling.
    """
    content_length = headers.get("content-length")
    if not content_length:
        return

    try:
        declared_length = int(content_length)
    except ValueError:
        logger.warning("Ignoring invalid Content-Length header: %s", content_length)
        return

    if declared_length > max_bytes:
        raise BodyTooLarge(
            f"Declared body size {declared_length} exceeds limit of {max_bytes} bytes"
        )


def get_multipart_boundary(headers: Mapping[str, str]) -> bytes:
    """
    Return the multipart boundary from the request Content-Type.

    Raises:
        MalformedForm: If the body is not multipart/form-data or has no boundary.
    """
    content_type, params = parse_options_header(headers.get("content-type"))
    if content_type != b"multipart/form-data":
        raise MalformedForm(f"Expected multipart/form-data, got '{content_type.decode('latin-1')}'")

    boundary = params.get(b"boundary")
    if not boundary:
        raise MalformedForm("Multipart Content-Type has no boundary")
    return boundary


# =============================================================================
# Multipart Event Collection
# =============================================================================


class _PartEventCollector:
    """
    Collects MultipartParser callbacks as a queue of events.

    The parser's callbacks are synchronous, so they only record what happened;
    the async reader drains the queue after each write and performs the
    staged-file I/O.
    """

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []
        self._headers: dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""

    @property
    def callbacks(self) -> dict[str, Any]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
        }

    def on_part_begin(self) -> None:
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        self.events.append(("headers", self._headers))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self.events.append(("data", data[start:end]))

    def on_part_end(self) -> None:
        self.events.append(("end", None))

    def drain(self) -> list[tuple[str, Any]]:
        events, self.events = self.events, []
        return events


def _describe_part(headers: dict[bytes, bytes]) -> tuple[str | None, str | None, str | None]:
    """Return (field name, filename, content type) from part headers."""
    _, disposition = parse_options_header(headers.get(b"content-disposition"))
    name = disposition.get(b"name")
    filename = disposition.get(b"filename")
    content_type = headers.get(b"content-type")
    return (
        name.decode("utf-8", errors="replace") if name is not None else None,
        filename.decode("utf-8", errors="replace") if filename is not None else None,
        content_type.decode("latin-1").strip() if content_type is not None else None,
    )


# =============================================================================
# Intake
# =============================================================================


async def _stage_form_part(
    body: AsyncIterator[bytes],
    boundary: bytes,
    field_name: str,
    max_bytes: int,
    staging_dir: Path,
) -> StagedUpload:
    """Stream ``body`` through the multipart parser, staging ``field_name``."""
    collector = _PartEventCollector()
    parser = MultipartParser(boundary, collector.callbacks)

    staged_path = staging_dir / STAGED_FILENAME
    staged: StagedUpload | None = None
    out_file = None
    in_target_part = False
    received = 0

    try:
        async for chunk in body:
            received += len(chunk)
            if received > max_bytes:
                raise BodyTooLarge(f"Body exceeded limit of {max_bytes} bytes while streaming")

            try:
                parser.write(chunk)
            except MultipartParseError as e:
                raise MalformedForm(f"Couldn't decode multipart body: {e!s}") from e

            for event, payload in collector.drain():
                if event == "headers":
                    name, filename, content_type = _describe_part(payload)
                    in_target_part = name == field_name and staged is None and out_file is None
                    if in_target_part:
                        out_file = await aiofiles.open(staged_path, "wb")
                        staged = StagedUpload(
                            path=staged_path,
                            content_type=content_type,
                            filename=filename,
                            size=0,
                            staging_dir=staging_dir,
                        )
                elif event == "data" and in_target_part:
                    await out_file.write(payload)
                    staged.size += len(payload)
                elif event == "end" and in_target_part:
                    await out_file.close()
                    out_file = None
                    in_target_part = False

        parser.finalize()

    except ClientDisconnect as e:
        logger.info("Client disconnected after %s bytes", received)
        raise ClientDisconnected(f"Client disconnected after {received} bytes") from e

    finally:
        if out_file is not None:
            await out_file.close()

    if staged is None:
        raise MissingPart(f"Form has no '{field_name}' part")
    if in_target_part:
        raise MalformedForm(f"Body ended inside the '{field_name}' part")

    logger.debug(
        "Staged form part",
        extra={"field": field_name, "bytes": staged.size, "body_bytes": received},
    )
    return staged


def remove_staging_dir(staging_dir: Path) -> None:
    """Delete a request staging directory and everything in it."""
    try:
        shutil.rmtree(staging_dir)
        logger.debug("Cleaned up staging directory: %s", staging_dir)
    except FileNotFoundError:
        pass
    except OSError as cleanup_error:
        logger.warning(
            "Failed to clean up staging directory '%s': %s",
            staging_dir,
            str(cleanup_error),
        )


@asynccontextmanager
async def read_upload(
    request: Request,
    field_name: str,
    max_bytes: int,
    staging_root: Path | None = None,
) -> AsyncIterator[StagedUpload]:
    """
    Stage one file part of a multipart request for the duration of a block.

    Args:
        request: Incoming request whose body has not been read.
        field_name: Multipart field carrying the file.
        max_bytes: Ceiling on the total request body size.
        staging_root: Parent directory for the staging directory
            (system temp directory if None).

    Yields:
        StagedUpload: The staged part.

    Raises:
        BodyTooLarge: Declared or streamed body size exceeds ``max_bytes``.
        MalformedForm: The body is not a decodable multipart form.
        MissingPart: No part named ``field_name`` was sent.
        ClientDisconnected: The client went away mid-body.
    """
    check_content_length(request.headers, max_bytes)
    boundary = get_multipart_boundary(request.headers)

    if staging_root is not None:
        staging_root.mkdir(parents=True, exist_ok=True)
    staging_dir = Path(tempfile.mkdtemp(prefix=STAGING_DIR_PREFIX, dir=staging_root))

    try:
        staged = await _stage_form_part(
            request.stream(), boundary, field_name, max_bytes, staging_dir
        )
        yield staged
    finally:
        remove_staging_dir(staging_dir)
