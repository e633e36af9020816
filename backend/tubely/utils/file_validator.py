"""
Content Validation Utilities for Tubely

This module checks what a client claims to be uploading before any of it is
published:

- Media type parsing of a part's declared Content-Type header (parameters
  are stripped and the type is lower-cased)
- Per-asset-kind allow-lists: image/jpeg and image/png for thumbnails,
  video/mp4 for videos (exact match)
- Extension derivation from the media subtype ("jpeg", "png", "mp4")
- Optional content sniffing of the staged bytes with libmagic to reject
  files whose signature contradicts the declared type

All failures raise UnsupportedMediaType (HTTP 415).
"""

import logging
from pathlib import Path

import aiofiles
import magic
from python_multipart.multipart import parse_options_header

from tubely.core.exceptions import UnsupportedMediaType
from tubely.models.video import AssetKind


# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

ALLOWED_MEDIA_TYPES: dict[AssetKind, frozenset[str]] = {
    AssetKind.THUMBNAIL: frozenset({"image/jpeg", "image/png"}),
    AssetKind.VIDEO: frozenset({"video/mp4"}),
}

# libmagic results accepted for each declared type. ISO base media files are
# reported differently depending on the major brand and libmagic version.
CONTENT_SIGNATURES: dict[str, frozenset[str]] = {
    "image/jpeg": frozenset({"image/jpeg"}),
    "image/png": frozenset({"image/png"}),
    "video/mp4": frozenset({"video/mp4", "application/mp4", "video/quicktime", "video/x-m4v"}),
}

# Bytes read from the head of a staged file for signature detection
SNIFF_BYTES = 8192

# RFC 2045 token characters allowed in type and subtype
_TSPECIALS = set('()<>@,;:\\"/[]?= \t')


# =============================================================================
# MEDIA TYPE PARSING
# =============================================================================


def _is_token(value: str) -> bool:
    return bool(value) and all(
        33 <= ord(char) < 127 and char not in _TSPECIALS for char in value
    )


def parse_media_type(header: str | None) -> str:
    """
    Parse a Content-Type header value into a bare ``type/subtype``.

    Args:
        header: Raw header value, e.g. ``"image/JPEG; charset=binary"``.

    Returns:
        str: Lower-cased media type without parameters, e.g. ``"image/jpeg"``.

    Raises:
        UnsupportedMediaType: If the header is empty or not a media type.

    Example:
        >>> parse_media_type("video/MP4; codecs=avc1")
        'video/mp4'
    """
    if not header or not header.strip():
        raise UnsupportedMediaType("Part has no Content-Type")

    raw_type, _ = parse_options_header(header)
    media_type = raw_type.decode("latin-1").strip().lower()

    main_type, sep, sub_type = media_type.partition("/")
    if not sep or not _is_token(main_type) or not _is_token(sub_type):
        raise UnsupportedMediaType(f"Malformed Content-Type '{header}'")

    return media_type


def validate_media_type(declared: str | None, kind: AssetKind) -> str:
    """
    Check a declared Content-Type against the allow-list for an asset kind.

    Args:
        declared: The part's Content-Type header value.
        kind: Asset kind being uploaded.

    Returns:
        str: The canonical allowed media type.

    Raises:
        UnsupportedMediaType: If the type cannot be parsed or is not allowed.
    """
    media_type = parse_media_type(declared)
    allowed = ALLOWED_MEDIA_TYPES[kind]

    if media_type not in allowed:
        logger.info(
            "Rejected %s upload with media type %s",
            kind.value,
            media_type,
            extra={"allowed": sorted(allowed)},
        )
        raise UnsupportedMediaType(
            f"Media type '{media_type}' is not allowed for {kind.value} uploads"
        )

    return media_type


def extension_for_media_type(media_type: str) -> str:
    """Return the file extension used for a media type: its subtype."""
    return media_type.partition("/")[2]


# =============================================================================
# CONTENT SNIFFING
# =============================================================================


async def detect_content_type(file_path: Path) -> str:
    """Detect the media type of a staged file from its leading bytes."""
    async with aiofiles.open(file_path, "rb") as staged:
        head = await staged.read(SNIFF_BYTES)

    detected = magic.from_buffer(head, mime=True) or ""
    return detected.lower().strip()


async def verify_content_signature(file_path: Path, media_type: str) -> str:
    """
    Verify that a staged file's content matches its declared media type.

    Args:
        file_path: Path to the staged upload.
        media_type: Declared (already allow-listed) media type.

    Returns:
        str: The media type detected by libmagic.

    Raises:
        UnsupportedMediaType: If the detected type contradicts the declared one.
    """
    detected = await detect_content_type(file_path)
    accepted = CONTENT_SIGNATURES.get(media_type, frozenset({media_type}))

    if detected not in accepted:
        logger.warning(
            "Content signature mismatch: declared %s, detected %s",
            media_type,
            detected or "unknown",
        )
        raise UnsupportedMediaType(
            f"File content type '{detected or 'unknown'}' does not match declared '{media_type}'"
        )

    return detected
