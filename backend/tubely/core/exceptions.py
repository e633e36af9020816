"""
Tubely error taxonomy.

Every failure in the upload pipeline is raised as a subclass of TubelyError.
Each class carries the HTTP status it maps to and a generic public message;
the message passed at raise time is internal detail that is logged
server-side by the application exception handler and never returned to the
client.
"""

from fastapi import status


class TubelyError(Exception):
    """Base exception for upload pipeline errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message


# =============================================================================
# Identity
# =============================================================================


class Unauthenticated(TubelyError):
    """Raised when the Authorization header is absent or not a bearer credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Couldn't find JWT"


class InvalidCredential(TubelyError):
    """Raised when a bearer token fails signature, expiry or claim verification."""

    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Couldn't validate JWT"


class Forbidden(TubelyError):
    """Raised when the requesting user does not own the target video."""

    # Ownership mismatch is reported as 401, matching the reference clients.
    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "You are not authorized to modify this video"


# =============================================================================
# Resource lookup
# =============================================================================


class MalformedIdentifier(TubelyError):
    """Raised when a path identifier is not a UUID."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid ID"


class NotFound(TubelyError):
    """Raised when no video record exists for an identifier."""

    status_code = status.HTTP_404_NOT_FOUND
    public_message = "Couldn't find video"


class StoreFailure(TubelyError):
    """Raised when the record store cannot be read."""

    public_message = "Couldn't get video"


class PersistFailure(TubelyError):
    """Raised when the record store rejects an update."""

    public_message = "Couldn't update video"


# =============================================================================
# Upload intake
# =============================================================================


class MissingPart(TubelyError):
    """Raised when the expected multipart field is absent."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Couldn't get file"


class BodyTooLarge(TubelyError):
    """Raised when the request body exceeds the configured ceiling."""

    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    public_message = "Upload too large"


class MalformedForm(TubelyError):
    """Raised when the body is not a decodable multipart form."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Couldn't parse form data"


class ClientDisconnected(TubelyError):
    """Raised when the client goes away before the body has been read."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Upload aborted"


# =============================================================================
# Content validation
# =============================================================================


class UnsupportedMediaType(TubelyError):
    """Raised when the declared or sniffed media type is not allowed."""

    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    public_message = "Unsupported media type"


# =============================================================================
# Media processing
# =============================================================================


class ProbeFailure(TubelyError):
    """Raised when ffprobe fails or its output cannot be interpreted."""

    public_message = "Couldn't inspect video"


class TranscodeFailure(TubelyError):
    """Raised when ffmpeg fails to remux a staged video."""

    public_message = "Couldn't process video"


# =============================================================================
# Publishing
# =============================================================================


class WriteFailure(TubelyError):
    """Raised when a local asset cannot be written."""

    public_message = "Couldn't write file"


class UploadFailure(TubelyError):
    """Raised when an object store upload fails."""

    public_message = "Couldn't upload video"


__all__ = [
    "TubelyError",
    "Unauthenticated",
    "InvalidCredential",
    "Forbidden",
    "MalformedIdentifier",
    "NotFound",
    "StoreFailure",
    "PersistFailure",
    "MissingPart",
    "BodyTooLarge",
    "MalformedForm",
    "ClientDisconnected",
    "UnsupportedMediaType",
    "ProbeFailure",
    "TranscodeFailure",
    "WriteFailure",
    "UploadFailure",
]
