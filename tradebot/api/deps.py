"""Shared API dependencies."""

from fastapi import Header, HTTPException, status

from tradebot.config import settings


def require_api_key(x_api_key: str | None = Header(default=None)):
    """Reject requests without the configured key. A blank key disables the check."""
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
    return True
