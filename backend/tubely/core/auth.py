"""
Tubely Authentication Module

Bearer credential handling for the upload routes. Tokens are issued by a
separate login service; this module only validates them:

- get_bearer_token: extract the token from an ``Authorization`` header
- validate_jwt: verify an HS256 token and resolve its ``sub`` claim to a user id
- get_current_user_id: FastAPI dependency combining both

Usage:
    ```python
    from fastapi import Depends
    from tubely.core.auth import get_current_user_id

    @router.get("/protected")
    async def protected_route(user_id: UUID = Depends(get_current_user_id)):
        return {"user_id": str(user_id)}
    ```
"""

import logging
from collections.abc import Mapping
from uuid import UUID

from fastapi import Depends, Request
from jose import JWTError, jwt

from tubely.config import Settings, get_settings
from tubely.core.exceptions import InvalidCredential, Unauthenticated


# Configure module logger
logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


def get_bearer_token(headers: Mapping[str, str]) -> str:
    """
    Extract a bearer token from request headers.

    Args:
        headers: Request headers (case-insensitive mapping, e.g. Starlette Headers).

    Returns:
        str: The raw token string.

    Raises:
        Unauthenticated: If the header is absent, uses another scheme, or
            carries no token.
    """
    authorization = headers.get("authorization")
    if not authorization:
        raise Unauthenticated("Authorization header is missing")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME:
        raise Unauthenticated(f"Unsupported authorization scheme '{scheme}'")

    token = token.strip()
    if not token:
        raise Unauthenticated("Bearer token is empty")
    return token


def validate_jwt(token: str, settings: Settings) -> UUID:
    """
    Validate a JWT and return the user id held in its ``sub`` claim.

    Verifies signature and expiration with the configured shared secret,
    and the ``iss`` claim when ``jwt_issuer`` is configured.

    Args:
        token: The JWT token string to validate.
        settings: Settings instance containing jwt_secret and jwt_algorithm.

    Returns:
        UUID: The authenticated user's id.

    Raises:
        InvalidCredential: If verification fails or the subject is not a UUID.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("JWT has expired")
        raise InvalidCredential("Token has expired") from e
    except JWTError as e:
        logger.warning("JWT validation failed: %s", str(e))
        raise InvalidCredential(f"Token validation failed: {e!s}") from e

    subject = payload.get("sub")
    if not subject:
        raise InvalidCredential("Token has no subject claim")
    try:
        user_id = UUID(str(subject))
    except ValueError as e:
        raise InvalidCredential(f"Token subject '{subject}' is not a user id") from e

    logger.debug("JWT validated for subject: %s", user_id)
    return user_id


async def get_current_user_id(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> UUID:
    """
    FastAPI dependency resolving the authenticated user's id.

    Errors are raised as TubelyError subclasses and translated to 401
    responses (with ``WWW-Authenticate: Bearer``) by the application
    exception handler.
    """
    token = get_bearer_token(request.headers)
    return validate_jwt(token, settings)
