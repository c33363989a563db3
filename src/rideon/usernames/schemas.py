"""Response schemas for username endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class UsernameAvailabilityResponse(BaseModel):
    """``available`` is None when nothing was looked up (bad format or store error)."""

    username: str
    available: bool | None
    error: str | None = None
