from __future__ import annotations

"""API-key authentication resolving the calling workspace user."""

from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from chatrag.app.settings import settings

ANONYMOUS_USER = "anonymous"


@dataclass(frozen=True)
class AuthContext:
    """Resolved authentication context for the current request."""
    api_key: str | None
    user_id: str
    user_name: str


async def require_api_key(request: Request) -> AuthContext:
    """Validate the API key or allow anonymous access if configured."""
    key_map = settings.api_key_map
    if not key_map:
        if settings.allow_anonymous:
            return AuthContext(api_key=None, user_id=ANONYMOUS_USER, user_name=ANONYMOUS_USER)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    api_key = _extract_api_key(request)
    entry = key_map.get(api_key) if api_key else None
    if not entry:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AuthContext(api_key=api_key, user_id=entry["user_id"], user_name=entry["user_name"])


def _extract_api_key(request: Request) -> str | None:
    """Extract API key from headers."""
    header_key = request.headers.get("x-api-key")
    if header_key:
        return header_key.strip()
    auth = request.headers.get("authorization")
    if not auth:
        return None
    parts = auth.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None
