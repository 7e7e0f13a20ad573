"""
Caller authentication.

Bearer tokens are verified against the identity provider's user endpoint
(`GET {supabase_url}/auth/v1/user`); the returned user id becomes the owner
of everything an import creates.
"""

import logging
from typing import Annotated, Any

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ankiport.config import settings
from ankiport.models.failure import ConfigurationError, ImportErrorCode, KnownError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> KnownError:
    return KnownError(
        ImportErrorCode.UNAUTHORIZED,
        "Unauthorized",
        detail=detail,
        status_code=401,
    )


async def fetch_user(token: str, *, timeout: float = 10.0) -> dict[str, Any]:
    """
    Resolve a bearer token to the identity provider's user record.

    Raises:
        KnownError: UNAUTHORIZED if the token is rejected,
            AUTH_SERVICE_ERROR if the provider cannot be reached
        ConfigurationError: If the provider URL or anon key is missing
    """
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise ConfigurationError("Supabase URL or anon key is missing")

    url = f"{settings.supabase_url.rstrip('/')}/auth/v1/user"
    headers = {"Authorization": f"Bearer {token}", "apikey": settings.supabase_anon_key}

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url, headers=headers)
    except httpx.RequestError as exc:
        logger.error("Exception during token verification: %s", exc)
        raise KnownError(
            ImportErrorCode.AUTH_SERVICE_ERROR,
            "Authentication service error",
            detail=str(exc),
            status_code=500,
        ) from exc

    if response.status_code in (401, 403):
        raise _unauthorized("Invalid or expired token")
    if not response.is_success:
        raise KnownError(
            ImportErrorCode.AUTH_SERVICE_ERROR,
            "Authentication service error",
            detail=f"HTTP {response.status_code}",
            status_code=500,
        )

    try:
        user: dict[str, Any] = response.json()
    except ValueError as exc:
        raise _unauthorized("Malformed user response") from exc
    return user


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """FastAPI dependency returning the authenticated caller's user id."""
    if credentials is None or not credentials.credentials:
        logger.warning("Missing or invalid Authorization header")
        raise _unauthorized("Missing or invalid Authorization header")

    user = await fetch_user(credentials.credentials)
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        logger.warning("Token validation failed: user is null")
        raise _unauthorized("Invalid or expired token")
    return user_id
