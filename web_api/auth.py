"""
Operator authentication for the admin routes.

Admin calls carry a shared token in the X-Admin-Token header. When
ADMIN_TOKEN is not configured the admin routes are disabled.
"""

import hmac
import os

from fastapi import Header, HTTPException


def get_admin_token() -> str | None:
    return os.environ.get("ADMIN_TOKEN") or None


async def require_admin(x_admin_token: str | None = Header(None)) -> None:
    """
    FastAPI dependency that guards admin endpoints.

    Raises:
        HTTPException: 404 if admin routes are disabled, 401 if the token is
            missing or wrong
    """
    expected = get_admin_token()
    if not expected:
        raise HTTPException(status_code=404, detail="Admin routes are disabled")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Invalid admin token")
