"""Leaderboard service: standings read from denormalized aggregates.

Total standings are read pre-sorted from the store. Weekly standings join
the current week's stat documents onto the entity list in memory and then
re-sort; an entity without a stat document counts as 0 for the week.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from rideon.config import Settings, get_settings
from rideon.mileage.week_utils import get_current_week_id
from rideon.store import Document, DocumentStore, Filter, StoreError
from rideon.store.collections import TEAMS, USERS, WEEKLY_TEAM_STATS, WEEKLY_USER_STATS

logger = structlog.get_logger()

SORT_TOTAL_MILES = "totalMiles"
SORT_TOTAL_RIDES = "totalRides"
SORT_WEEKLY_MILES = "weeklyMiles"
SORT_KEYS = (SORT_TOTAL_MILES, SORT_TOTAL_RIDES, SORT_WEEKLY_MILES)

SCOPE_TEAMS = "teams"
SCOPE_INDIVIDUALS = "individuals"
SCOPES = (SCOPE_TEAMS, SCOPE_INDIVIDUALS)

MEDALS: dict[int, str] = {1: "gold", 2: "silver", 3: "bronze"}


@dataclass
class LeaderboardEntry:
    rank: int
    id: str
    name: str
    total_miles: float
    total_rides: int
    weekly_miles: float | None = None
    member_count: int | None = None
    average_miles_per_member: float | None = None
    team_name: str | None = None
    medal: str | None = None

    def value(self, sort_key: str) -> float:
        if sort_key == SORT_TOTAL_RIDES:
            return self.total_rides
        if sort_key == SORT_WEEKLY_MILES:
            return self.weekly_miles or 0
        return self.total_miles


@dataclass
class Leaderboard:
    scope: str
    sort_key: str
    week_id: str
    entries: list[LeaderboardEntry] = field(default_factory=list)


def get_medal(position: int) -> str | None:
    return MEDALS.get(position)


def average_per_member(miles: float, member_count: int) -> float:
    """Miles per member rounded to one decimal; 0 when the team has no members."""
    if member_count <= 0:
        return 0.0
    return round(miles / member_count, 1)


def _number(value: Any) -> float:  # noqa: ANN401
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


async def _weekly_miles_by_id(
    store: DocumentStore, collection: str, id_field: str, week_id: str, limit: int,
) -> dict[str, float]:
    """Map entity id -> weekly miles for ``week_id``; empty on a store failure."""
    try:
        docs = await store.query(collection, [Filter("weekId", "==", week_id)], limit=limit)
    except StoreError as exc:
        logger.error("weekly_stats_fetch_failed", collection=collection, week_id=week_id, error=str(exc))
        return {}
    weekly: dict[str, float] = {}
    for doc in docs:
        entity_id = doc.get(id_field)
        if entity_id:
            weekly[entity_id] = _number(doc.get("weeklyMiles"))
    return weekly


async def _fetch(store: DocumentStore, collection: str, sort_key: str, limit: int) -> list[Document]:
    if sort_key == SORT_WEEKLY_MILES:
        return await store.query(collection, limit=limit)
    return await store.query(collection, order_by=sort_key, descending=True, limit=limit)


def _rank(entries: list[LeaderboardEntry]) -> list[LeaderboardEntry]:
    for index, entry in enumerate(entries):
        entry.rank = index + 1
        entry.medal = get_medal(entry.rank)
    return entries


async def get_team_standings(
    store: DocumentStore, sort_key: str, week_id: str, settings: Settings,
) -> list[LeaderboardEntry]:
    docs = await _fetch(store, TEAMS, sort_key, settings.leaderboard_team_limit)
    entries = []
    for doc in docs:
        member_count = int(_number(doc.get("memberCount")))
        if member_count <= 0:
            continue
        total_miles = _number(doc.get("totalMiles"))
        entries.append(LeaderboardEntry(
            rank=0,
            id=doc.id,
            name=doc.get("name", ""),
            total_miles=total_miles,
            total_rides=int(_number(doc.get("totalRides"))),
            member_count=member_count,
            average_miles_per_member=average_per_member(total_miles, member_count),
        ))

    if sort_key == SORT_WEEKLY_MILES:
        weekly = await _weekly_miles_by_id(
            store, WEEKLY_TEAM_STATS, "teamId", week_id, settings.leaderboard_team_week_limit,
        )
        for entry in entries:
            entry.weekly_miles = weekly.get(entry.id, 0)
            entry.average_miles_per_member = average_per_member(entry.weekly_miles, entry.member_count or 0)
        entries.sort(key=lambda e: e.weekly_miles or 0, reverse=True)

    return _rank(entries)


async def get_individual_standings(
    store: DocumentStore, sort_key: str, week_id: str, settings: Settings,
) -> list[LeaderboardEntry]:
    docs = await _fetch(store, USERS, sort_key, settings.leaderboard_user_limit)
    entries = [
        LeaderboardEntry(
            rank=0,
            id=doc.id,
            name=doc.get("userName", ""),
            total_miles=_number(doc.get("totalMiles")),
            total_rides=int(_number(doc.get("totalRides"))),
            team_name=doc.get("teamName"),
        )
        for doc in docs
    ]

    if sort_key == SORT_WEEKLY_MILES:
        weekly = await _weekly_miles_by_id(
            store, WEEKLY_USER_STATS, "userId", week_id, settings.leaderboard_user_week_limit,
        )
        for entry in entries:
            entry.weekly_miles = weekly.get(entry.id, 0)
        entries.sort(key=lambda e: e.weekly_miles or 0, reverse=True)

    return _rank(entries)


async def get_leaderboard(
    store: DocumentStore,
    sort_key: str = SORT_TOTAL_MILES,
    scope: str = SCOPE_TEAMS,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> Leaderboard:
    """Standings for one scope ordered by ``sort_key``. Ranks are positional."""
    if sort_key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_key}")
    if scope not in SCOPES:
        raise ValueError(f"Unknown scope: {scope}")
    settings = settings or get_settings()
    week_id = get_current_week_id(now)

    if scope == SCOPE_TEAMS:
        entries = await get_team_standings(store, sort_key, week_id, settings)
    else:
        entries = await get_individual_standings(store, sort_key, week_id, settings)

    logger.debug("leaderboard_built", scope=scope, sort_key=sort_key, entries=len(entries))
    return Leaderboard(scope=scope, sort_key=sort_key, week_id=week_id, entries=entries)
