"""FastAPI identity dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rideon.config import get_settings
from rideon.errors import IdentityProviderError
from rideon.identity.provider import Identity, RedisIdentityProvider
from rideon.redis_client import get_redis

_bearer = HTTPBearer()


def get_identity_provider() -> RedisIdentityProvider:
    """A fresh provider session per request."""
    return RedisIdentityProvider(get_redis(), get_settings())


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    provider: RedisIdentityProvider = Depends(get_identity_provider),
) -> Identity:
    """
    Verify the bearer ID token and return the caller's identity.

    Raises 401 on failure.
    """
    try:
        claims = provider.verify_token(credentials.credentials)
    except IdentityProviderError as e:
        raise HTTPException(status_code=401, detail=e.message) from e
    return Identity(
        uid=claims["sub"],
        email=claims.get("email", ""),
        email_verified=bool(claims.get("email_verified", False)),
    )
