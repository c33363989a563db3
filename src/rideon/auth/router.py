"""Sign-in router: /api/v1/auth/*."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from rideon.auth.schemas import LoginRequest, TokenResponse
from rideon.config import get_settings
from rideon.identity.dependencies import get_identity_provider
from rideon.identity.provider import RedisIdentityProvider

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    provider: RedisIdentityProvider = Depends(get_identity_provider),
) -> TokenResponse:
    """Exchange email + password for an ID token."""
    identity = await provider.sign_in(body.email, body.password)
    logger.info("user_signed_in", uid=identity.uid)
    return TokenResponse(
        id_token=await provider.get_token(),
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
        user_id=identity.uid,
        email=identity.email,
    )
