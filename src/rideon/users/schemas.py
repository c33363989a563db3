"""Response schemas for user endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class UserProfileResponse(BaseModel):
    user_id: str
    user_name: str
    email: str
    role: str
    team_id: str | None
    team_name: str | None
    total_miles: float
    total_rides: int
