"""
Admin API key check for drop administration
"""

import secrets

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from flashdrop.core.config import Settings, get_settings
from flashdrop.core.enums import ErrorCode

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(
    provided: str = Security(api_key_header),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Requires X-API-Key to match ADMIN_API_KEY when one is configured.
    With no key configured every request is allowed (local development).
    """
    expected = settings.ADMIN_API_KEY
    if not expected:
        return

    if not provided or not secrets.compare_digest(provided.encode("utf8"), expected.encode("utf8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": ErrorCode.UNAUTHORIZED.value, "message": "Invalid or missing API key"},
        )


def require_api_key():
    """
    Dependency to require the admin API key
    Usage: @router.post("/", dependencies=[require_api_key()])
    """
    return Depends(verify_api_key)
