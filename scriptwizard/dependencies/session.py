"""
Session dependencies for FastAPI routes.

Extracts the session owner from the X-User-Id header (set by the frontend).
Demo mode (no header) falls back to DEFAULT_USER_ID.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Header

from scriptwizard.config import settings


async def get_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """Return the session owner, or DEFAULT_USER_ID for demo mode."""
    return (x_user_id or "").strip() or settings.DEFAULT_USER_ID
