"""
Identity token management.

ID tokens carry the identity's email and ``email_verified`` claims; the
document write path relies on them to recognise the caller as the newly
created identity.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from rideon.config import get_settings


def create_id_token(uid: str, email: str, email_verified: bool = False) -> str:
    """
    Create a short-lived ID token for an identity.

    Args:
        uid: The identity's unique id.
        email: The identity's email address.
        email_verified: Whether the email has been verified.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": uid,
        "email": email,
        "email_verified": email_verified,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "id",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an ID token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or wrong type.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != "id":
        msg = f"Expected token type 'id', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    return payload
