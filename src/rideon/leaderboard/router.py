"""Leaderboard router: /api/v1/leaderboard."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query

from rideon.dependencies import get_store
from rideon.leaderboard.schemas import LeaderboardEntryResponse, LeaderboardResponse
from rideon.leaderboard.service import (
    SCOPE_INDIVIDUALS,
    SCOPE_TEAMS,
    Leaderboard,
    get_leaderboard,
)
from rideon.store import DocumentStore

router = APIRouter(prefix="/api/v1", tags=["Leaderboard"])


def _entries(board: Leaderboard) -> list[LeaderboardEntryResponse]:
    return [
        LeaderboardEntryResponse(
            rank=e.rank,
            medal=e.medal,
            id=e.id,
            name=e.name,
            value=e.value(board.sort_key),
            total_miles=e.total_miles,
            total_rides=e.total_rides,
            weekly_miles=e.weekly_miles,
            member_count=e.member_count,
            average_miles_per_member=e.average_miles_per_member,
            team_name=e.team_name,
        )
        for e in board.entries
    ]


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    sort: Literal["totalMiles", "totalRides", "weeklyMiles"] = Query("totalMiles"),
    scope: Literal["teams", "individuals"] | None = Query(None, description="Omit for both"),
    store: DocumentStore = Depends(get_store),
) -> LeaderboardResponse:
    """Team and/or individual standings sorted by total miles, total rides or this week's miles."""
    scopes = [scope] if scope else [SCOPE_TEAMS, SCOPE_INDIVIDUALS]
    response = LeaderboardResponse(sort=sort, week_id="")
    for name in scopes:
        board = await get_leaderboard(store, sort_key=sort, scope=name)
        response.week_id = board.week_id
        setattr(response, name, _entries(board))
    return response
