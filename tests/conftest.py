"""Shared test fixtures.

Redis is replaced by an in-process fakeredis server, so the document store
and identity provider run their real Redis code paths.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from rideon.config import get_settings
from rideon.identity.provider import RedisIdentityProvider
from rideon.invitations.service import Invitation, issue_invitation
from rideon.main import create_app
from rideon.redis_client import close_redis, set_redis
from rideon.store import RedisDocumentStore, doc_path
from rideon.store.collections import TEAMS


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    """Fresh fake Redis installed as the shared pool; flushed before and after."""
    rc = fakeredis.FakeAsyncRedis(decode_responses=True)
    await rc.flushall()
    set_redis(rc)
    yield rc
    await rc.flushall()
    await close_redis()


@pytest.fixture
def store(redis_client) -> RedisDocumentStore:
    return RedisDocumentStore(redis_client)


@pytest.fixture
def provider(redis_client) -> RedisIdentityProvider:
    return RedisIdentityProvider(redis_client, get_settings())


@pytest_asyncio.fixture
async def client(redis_client) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, backed by the fake Redis."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_team(store) -> Callable[..., Awaitable[str]]:
    """Create a team document directly; returns its id."""

    async def _make_team(
        team_id: str = "team-1",
        name: str = "Road Runners",
        member_count: int = 1,
        **fields: Any,
    ) -> str:
        data = {
            "name": name,
            "description": "A new cycling team",
            "adminIds": [],
            "memberIds": [f"member-{i}" for i in range(member_count)],
            "memberCount": member_count,
            "totalMiles": 0,
            "totalRides": 0,
            "isActive": True,
        }
        data.update(fields)
        await store.set(doc_path(TEAMS, team_id), data)
        return team_id

    return _make_team


@pytest.fixture
def invite(store) -> Callable[..., Awaitable[Invitation]]:
    """Issue an invitation (authoritative record plus public view)."""

    async def _invite(email: str, role: str = "user", team_id: str | None = None, **kwargs: Any) -> Invitation:
        return await issue_invitation(store, email, role=role, team_id=team_id, invited_by="admin-uid", **kwargs)

    return _invite


@pytest.fixture
def register_user(client) -> Callable[..., Awaitable[dict]]:
    """POST /api/v1/register and return the decoded body."""

    async def _register(email: str, username: str, password: str = "pedal-hard", team_name: str = "") -> dict:
        response = await client.post("/api/v1/register", json={
            "email": email,
            "password": password,
            "confirm_password": password,
            "username": username,
            "team_name": team_name,
        })
        assert response.status_code == 201, response.text
        return response.json()

    return _register
