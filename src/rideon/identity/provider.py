"""
Identity provider interface and a Redis-backed implementation.

A provider instance models one client session: it knows the currently
signed-in identity, notifies listeners when that changes, and mints ID
tokens for it. Identities themselves are stored in Redis:

    identity:email:<email>  -> uid              (claimed with SET NX)
    identity:user:<uid>     -> hash of the identity record
"""

from __future__ import annotations

import abc
import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import jwt
import structlog
from email_validator import EmailNotValidError, validate_email
from redis.asyncio import Redis
from redis.exceptions import RedisError

from rideon.config import Settings, get_settings
from rideon.errors import IdentityNotReady, IdentityProviderError
from rideon.identity.jwt import create_id_token, verify_token as _verify_jwt
from rideon.identity.password import (
    PasswordStrengthError,
    hash_password,
    needs_rehash,
    validate_password_strength,
    verify_password,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class Identity:
    """An authenticated identity."""

    uid: str
    email: str
    email_verified: bool = False


IdentityListener = Callable[[Identity | None], None]


class IdentityProvider(abc.ABC):
    """Session-scoped view of an external identity provider."""

    def __init__(self) -> None:
        self._current: Identity | None = None
        self._listeners: list[IdentityListener] = []
        self._token: str | None = None

    # -- session state ------------------------------------------------------

    def current_identity(self) -> Identity | None:
        return self._current

    def on_identity_change(self, callback: IdentityListener) -> Callable[[], None]:
        """Subscribe to identity changes. The callback also fires once with the current state.

        Returns an unsubscribe function.
        """
        self._listeners.append(callback)
        loop = asyncio.get_running_loop()
        loop.call_soon(self._deliver, callback, self._current)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _deliver(self, callback: IdentityListener, identity: Identity | None) -> None:
        if callback in self._listeners:
            callback(identity)

    def _set_current(self, identity: Identity | None) -> None:
        self._current = identity
        self._token = None
        loop = asyncio.get_running_loop()
        for callback in list(self._listeners):
            loop.call_soon(self._deliver, callback, identity)

    async def get_token(self, force_refresh: bool = False) -> str:
        """Return an ID token for the current identity, minting a new one if asked."""
        if self._current is None:
            raise IdentityProviderError("invalid-token")
        if self._token is None or force_refresh:
            self._token = create_id_token(
                self._current.uid, self._current.email, self._current.email_verified,
            )
        return self._token

    def sign_out(self) -> None:
        self._set_current(None)

    # -- provider operations --------------------------------------------------

    @abc.abstractmethod
    async def create_identity(self, email: str, password: str) -> Identity:
        """Create a new identity and make it the current one."""

    @abc.abstractmethod
    async def sign_in(self, email: str, password: str) -> Identity:
        """Authenticate an existing identity and make it the current one."""

    def verify_token(self, token: str) -> dict[str, Any]:
        """Decode an ID token, raising IdentityProviderError('invalid-token') if it is bad."""
        try:
            return _verify_jwt(token)
        except jwt.InvalidTokenError as e:
            raise IdentityProviderError("invalid-token") from e


async def wait_for_identity(provider: IdentityProvider, uid: str, timeout: float) -> Identity:
    """Wait until ``uid`` is the provider's active identity."""
    ready = asyncio.Event()
    seen: list[Identity] = []

    def _on_change(identity: Identity | None) -> None:
        if identity is not None and identity.uid == uid:
            seen.append(identity)
            ready.set()

    unsubscribe = provider.on_identity_change(_on_change)
    try:
        await asyncio.wait_for(ready.wait(), timeout)
    except asyncio.TimeoutError as e:
        logger.warning("identity_not_ready", uid=uid, timeout=timeout)
        raise IdentityNotReady() from e
    finally:
        unsubscribe()
    return seen[0]


def _email_key(email: str) -> str:
    return f"identity:email:{email.lower()}"


def _user_key(uid: str) -> str:
    return f"identity:user:{uid}"


class RedisIdentityProvider(IdentityProvider):
    """Email/password identities with argon2id hashes kept in Redis."""

    def __init__(self, redis: Redis, settings: Settings | None = None) -> None:
        super().__init__()
        self._redis = redis
        self._settings = settings or get_settings()

    async def create_identity(self, email: str, password: str) -> Identity:
        if not self._settings.email_password_signup_enabled:
            raise IdentityProviderError("operation-not-allowed")
        try:
            email = validate_email(email, check_deliverability=False).normalized.lower()
        except EmailNotValidError as e:
            raise IdentityProviderError("invalid-email") from e
        try:
            validate_password_strength(password, self._settings.password_min_length)
        except PasswordStrengthError as e:
            raise IdentityProviderError("weak-password") from e

        uid = uuid.uuid4().hex
        try:
            claimed = await self._redis.set(_email_key(email), uid, nx=True)
            if not claimed:
                raise IdentityProviderError("email-already-in-use")
            await self._redis.hset(_user_key(uid), mapping={
                "uid": uid,
                "email": email,
                "password_hash": hash_password(password),
                "email_verified": "0",
                "created_at": datetime.now(timezone.utc).isoformat(),
            })
        except RedisError as e:
            logger.error("identity_store_error", email=email, error=str(e))
            raise IdentityProviderError("internal-error", "Failed to create account. Please try again.") from e

        identity = Identity(uid=uid, email=email)
        logger.info("identity_created", uid=uid, email=email)
        self._set_current(identity)
        return identity

    async def sign_in(self, email: str, password: str) -> Identity:
        try:
            uid = await self._redis.get(_email_key(email))
            record = await self._redis.hgetall(_user_key(uid)) if uid else {}
        except RedisError as e:
            logger.error("identity_store_error", email=email, error=str(e))
            raise IdentityProviderError("internal-error", "Sign-in is unavailable. Please try again.") from e

        if not record or not verify_password(password, record.get("password_hash", "")):
            raise IdentityProviderError("invalid-credential")
        if needs_rehash(record["password_hash"]):
            try:
                await self._redis.hset(_user_key(record["uid"]), "password_hash", hash_password(password))
            except RedisError as e:
                logger.warning("password_rehash_failed", uid=record["uid"], error=str(e))

        identity = Identity(
            uid=record["uid"],
            email=record["email"],
            email_verified=record.get("email_verified") == "1",
        )
        self._set_current(identity)
        return identity
