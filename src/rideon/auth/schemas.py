"""Request/response schemas for sign-in."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class LoginRequest(BaseModel):
    """Login with email + password."""

    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class TokenResponse(BaseModel):
    id_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    email: str
