"""Request/response schemas for registration endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class RegisterRequest(BaseModel):
    """Invitation-gated registration. ``team_name`` is needed only for admin invites."""

    email: str = Field("", max_length=254)
    password: str = Field("", max_length=128)
    confirm_password: str = Field("", max_length=128)
    username: str = Field("", max_length=64)
    team_name: str = Field("", max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class RegisterResponse(BaseModel):
    user_id: str
    username: str
    email: str
    role: str
    team_id: str
    team_name: str
    created_team: bool
    id_token: str
