"""Invitation check/issue and username availability endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from rideon.store import doc_path
from rideon.store.collections import INVITATIONS, INVITATIONS_PUBLIC_VIEW


@pytest.mark.asyncio
async def test_check_valid_invitation(client: AsyncClient, invite) -> None:
    await invite("alice@example.com", role="admin")
    response = await client.get("/api/v1/invitations/check", params={"email": "Alice@Example.com"})
    data = response.json()
    assert data["valid"] is True
    assert data["role"] == "admin"
    assert data["requires_team_name"] is True


@pytest.mark.asyncio
async def test_check_expired_invitation(client: AsyncClient, invite) -> None:
    await invite("late@example.com", role="admin", now=datetime.now(timezone.utc) - timedelta(days=30))
    data = (await client.get("/api/v1/invitations/check", params={"email": "late@example.com"})).json()
    assert data["valid"] is False
    assert data["code"] == "invitation_expired"


@pytest.mark.asyncio
async def test_check_unknown_email(client: AsyncClient) -> None:
    data = (await client.get("/api/v1/invitations/check", params={"email": "who@example.com"})).json()
    assert data == {
        "email": "who@example.com",
        "valid": False,
        "role": None,
        "team_id": None,
        "team_name": None,
        "requires_team_name": False,
        "code": "not_invited",
        "error": "This email has not been invited to join. Please contact an administrator.",
    }


@pytest.fixture
def signed_in_as(client: AsyncClient, invite, register_user):
    async def _signed_in_as(email: str, username: str, role: str = "admin", team_id: str | None = None) -> dict:
        await invite(email, role=role, team_id=team_id)
        data = await register_user(email, username, team_name="" if team_id else f"{username} team")
        client.headers["Authorization"] = f"Bearer {data['id_token']}"
        return data

    return _signed_in_as


@pytest.mark.asyncio
async def test_admin_issues_invitation(client: AsyncClient, signed_in_as, store) -> None:
    admin = await signed_in_as("boss@example.com", "boss")

    response = await client.post("/api/v1/invitations", json={
        "email": "New.Rider@Example.com", "role": "user", "team_id": admin["team_id"],
    })

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "new.rider@example.com"
    assert data["team_name"] == "boss team"
    assert (await store.get(doc_path(INVITATIONS, "new.rider@example.com"))).get("invitedBy") == admin["user_id"]
    assert await store.exists(doc_path(INVITATIONS_PUBLIC_VIEW, "new.rider@example.com"))


@pytest.mark.asyncio
async def test_team_admin_limited_to_own_team(client: AsyncClient, signed_in_as, make_team) -> None:
    captain = await signed_in_as("cap@example.com", "captain", role="team_admin")
    await make_team("other-team")

    own = await client.post("/api/v1/invitations", json={
        "email": "mate@example.com", "team_id": captain["team_id"],
    })
    assert own.status_code == 201

    other = await client.post("/api/v1/invitations", json={"email": "spy@example.com", "team_id": "other-team"})
    assert other.status_code == 403
    assert other.json()["code"] == "not_authorized"

    admin = await client.post("/api/v1/invitations", json={"email": "boss2@example.com", "role": "admin"})
    assert admin.status_code == 403


@pytest.mark.asyncio
async def test_member_invitation_needs_team(client: AsyncClient, signed_in_as) -> None:
    await signed_in_as("boss@example.com", "boss")
    response = await client.post("/api/v1/invitations", json={"email": "x@example.com", "role": "user"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_username_availability(client: AsyncClient, invite, make_team, register_user) -> None:
    await make_team("team-T")
    await invite("alice@example.com", team_id="team-T")
    await register_user("alice@example.com", "Alice")

    taken = (await client.get("/api/v1/usernames/ALICE/availability")).json()
    assert taken == {"username": "ALICE", "available": False, "error": None}

    free = (await client.get("/api/v1/usernames/bob_rides/availability")).json()
    assert free["available"] is True

    bad = (await client.get("/api/v1/usernames/-bob/availability")).json()
    assert bad["available"] is None
    assert bad["error"] == "Username cannot start or end with underscores or hyphens"
