"""Response schemas for leaderboard endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class LeaderboardEntryResponse(BaseModel):
    rank: int
    medal: str | None = None
    id: str
    name: str
    value: float
    total_miles: float
    total_rides: int
    weekly_miles: float | None = None
    member_count: int | None = None
    average_miles_per_member: float | None = None
    team_name: str | None = None


class LeaderboardResponse(BaseModel):
    sort: str
    week_id: str
    teams: list[LeaderboardEntryResponse] | None = None
    individuals: list[LeaderboardEntryResponse] | None = None
