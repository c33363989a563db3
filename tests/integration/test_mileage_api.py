"""Mileage logging and leaderboard endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from rideon.mileage.week_utils import get_current_week_id


@pytest.fixture
def rider(client: AsyncClient, invite, make_team, register_user):
    """Register a rider on team-T and authorize the client as them."""

    async def _rider(email: str = "bob@example.com", username: str = "bob") -> dict:
        await invite(email, team_id="team-T")
        data = await register_user(email, username)
        client.headers["Authorization"] = f"Bearer {data['id_token']}"
        return data

    return _rider


@pytest.mark.asyncio
async def test_log_miles_updates_totals(client: AsyncClient, make_team, rider) -> None:
    await make_team("team-T", member_count=2)
    await rider()

    response = await client.post("/api/v1/miles", json={"miles": 5.5, "notes": "commute"})
    assert response.status_code == 201
    data = response.json()
    assert data["week_id"] == get_current_week_id()
    assert data["aggregate_failures"] == []

    await client.post("/api/v1/miles", json={"miles": 4.5, "date": "2024-03-05"})
    profile = (await client.get("/api/v1/users/me")).json()
    assert profile["total_miles"] == 10.0
    assert profile["total_rides"] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("miles", [0, -2])
async def test_non_positive_miles_rejected(client: AsyncClient, make_team, rider, miles) -> None:
    await make_team("team-T")
    await rider()
    response = await client.post("/api/v1/miles", json={"miles": miles})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_miles_above_limit_rejected(client: AsyncClient, make_team, rider) -> None:
    await make_team("team-T")
    await rider()
    response = await client.post("/api/v1/miles", json={"miles": 1500})
    assert response.status_code == 422
    assert response.json()["code"] == "invalid_mileage"


@pytest.mark.asyncio
async def test_log_miles_requires_profile(client: AsyncClient, provider) -> None:
    await provider.create_identity("orphan@example.com", "pedal-hard")
    client.headers["Authorization"] = f"Bearer {await provider.get_token()}"
    response = await client.post("/api/v1/miles", json={"miles": 3})
    assert response.status_code == 404
    assert response.json()["detail"] == "Unable to log miles: User profile not loaded"


@pytest.mark.asyncio
async def test_leaderboard_both_scopes(client: AsyncClient, make_team, rider) -> None:
    await make_team("team-T", name="Tandem", member_count=1)
    await make_team("team-E", name="Empty", member_count=0)
    await rider()
    await client.post("/api/v1/miles", json={"miles": 12})

    response = await client.get("/api/v1/leaderboard")
    assert response.status_code == 200
    data = response.json()
    assert data["sort"] == "totalMiles"
    assert [t["name"] for t in data["teams"]] == ["Tandem"]
    assert data["teams"][0]["value"] == 12
    assert data["teams"][0]["medal"] == "gold"
    assert data["individuals"][0]["name"] == "bob"
    assert data["individuals"][0]["rank"] == 1


@pytest.mark.asyncio
async def test_leaderboard_weekly_single_scope(client: AsyncClient, make_team, rider) -> None:
    await make_team("team-T", name="Tandem", member_count=2)
    await make_team("team-Q", name="Quiet", member_count=3)
    await rider()
    await client.post("/api/v1/miles", json={"miles": 8})

    response = await client.get("/api/v1/leaderboard", params={"sort": "weeklyMiles", "scope": "teams"})
    data = response.json()
    assert data["individuals"] is None
    assert data["week_id"] == get_current_week_id()
    assert [(t["name"], t["weekly_miles"]) for t in data["teams"]] == [("Tandem", 8), ("Quiet", 0)]
    # memberCount went from 2 to 3 when bob joined
    assert data["teams"][0]["average_miles_per_member"] == 2.7
