"""Request/response schemas for invitation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator


class InvitationCheckResponse(BaseModel):
    """Advisory invitation status for the registration form."""

    email: str
    valid: bool
    role: str | None = None
    team_id: str | None = None
    team_name: str | None = None
    requires_team_name: bool = False
    code: str | None = None
    error: str | None = None


class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role: Literal["user", "team_admin", "admin"] = "user"
    team_id: str | None = None
    ttl_days: int | None = Field(None, ge=1, le=90)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class InvitationResponse(BaseModel):
    email: str
    role: str
    team_id: str | None
    team_name: str | None
    expires_at: datetime
    used: bool
