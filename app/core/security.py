"""
Shared-token security for the JSON API
"""

import secrets
from typing import Optional
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from app.core.config import Settings, get_settings

admin_token_header = APIKeyHeader(name="x-admin-token", auto_error=False)


def verify_admin_token(
    token: Optional[str] = Security(admin_token_header),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Checks the x-admin-token header against ADMIN_TOKEN.
    When ADMIN_TOKEN is empty the API is open (local development).
    """
    expected = settings.ADMIN_TOKEN
    if not expected:
        return None

    if not token or not secrets.compare_digest(token.encode("utf8"), expected.encode("utf8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return None


def require_auth():
    """
    Dependency to require the admin token
    Usage: app.include_router(router, dependencies=[require_auth()])
    """
    return Depends(verify_admin_token)
