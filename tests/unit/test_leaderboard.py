"""Leaderboard standings: totals, weekly join, ranking."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from rideon.config import Settings
from rideon.leaderboard.service import average_per_member, get_leaderboard, get_medal
from rideon.store import StoreError, doc_path
from rideon.store.collections import TEAMS, USERS, WEEKLY_TEAM_STATS, WEEKLY_USER_STATS

NOW = datetime(2024, 3, 6, 12, tzinfo=timezone.utc)
WEEK_ID = "2024-W09"


async def _team_week(store, team_id, miles, week_id=WEEK_ID):
    await store.set(doc_path(WEEKLY_TEAM_STATS, f"{team_id}-{week_id}"), {
        "teamId": team_id, "weekId": week_id, "weeklyMiles": miles, "weeklyRides": 1,
    })


async def _user(store, uid, miles, rides, team_name="Road Runners"):
    await store.set(doc_path(USERS, uid), {
        "userId": uid, "userName": uid, "teamName": team_name, "totalMiles": miles, "totalRides": rides,
    })


class TestHelpers:
    def test_medals(self):
        assert [get_medal(i) for i in range(1, 5)] == ["gold", "silver", "bronze", None]

    def test_average_per_member(self):
        assert average_per_member(100, 3) == 33.3
        assert average_per_member(10, 0) == 0


class TestTeamStandings:
    @pytest.mark.asyncio
    async def test_total_miles(self, store, make_team):
        await make_team("a", name="Alpha", member_count=2, totalMiles=50.0, totalRides=5)
        await make_team("b", name="Bravo", member_count=3, totalMiles=100.0, totalRides=4)
        await make_team("c", name="Charlie", member_count=1, totalMiles=75.0, totalRides=9)
        await make_team("d", name="Delta", member_count=4, totalMiles=10.0, totalRides=1)

        board = await get_leaderboard(store, "totalMiles", "teams", now=NOW)

        assert board.week_id == WEEK_ID
        assert [e.id for e in board.entries] == ["b", "c", "a", "d"]
        assert [e.rank for e in board.entries] == [1, 2, 3, 4]
        assert [e.medal for e in board.entries] == ["gold", "silver", "bronze", None]
        assert board.entries[0].average_miles_per_member == 33.3
        assert board.entries[0].value("totalMiles") == 100.0

    @pytest.mark.asyncio
    async def test_total_rides(self, store, make_team):
        await make_team("a", member_count=1, totalMiles=50.0, totalRides=5)
        await make_team("b", member_count=1, totalMiles=100.0, totalRides=4)
        board = await get_leaderboard(store, "totalRides", "teams", now=NOW)
        assert [e.id for e in board.entries] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_teams_excluded(self, store, make_team):
        await make_team("a", member_count=0, totalMiles=500.0)
        await make_team("b", member_count=2, totalMiles=5.0)
        board = await get_leaderboard(store, "totalMiles", "teams", now=NOW)
        assert [e.id for e in board.entries] == ["b"]

    @pytest.mark.asyncio
    async def test_limit(self, store, make_team):
        for i in range(5):
            await make_team(f"t{i}", member_count=1, totalMiles=float(i))
        board = await get_leaderboard(
            store, "totalMiles", "teams", now=NOW, settings=Settings(leaderboard_team_limit=3),
        )
        assert [e.id for e in board.entries] == ["t4", "t3", "t2"]


class TestWeeklyStandings:
    @pytest.mark.asyncio
    async def test_team_without_weekly_stat_ranks_with_zero(self, store, make_team):
        await make_team("x", name="X-Men", member_count=2, totalMiles=900.0)
        await make_team("y", name="Yaks", member_count=2, totalMiles=10.0)
        await make_team("z", name="Zebras", member_count=4, totalMiles=20.0)
        await _team_week(store, "y", 30.0)
        await _team_week(store, "x", 99.0, week_id="2024-W08")

        board = await get_leaderboard(store, "weeklyMiles", "teams", now=NOW)

        assert board.entries[0].id == "y"
        assert board.entries[0].weekly_miles == 30.0
        assert board.entries[0].average_miles_per_member == 15.0
        zero_ids = [e.id for e in board.entries[1:]]
        assert sorted(zero_ids) == ["x", "z"]
        store_order = [d.id for d in await store.query(TEAMS) if d.id in ("x", "z")]
        assert zero_ids == store_order
        x = next(e for e in board.entries if e.id == "x")
        assert x.weekly_miles == 0
        assert x.average_miles_per_member == 0

    @pytest.mark.asyncio
    async def test_individuals_by_weekly_miles(self, store):
        await _user(store, "ann", 100.0, 10)
        await _user(store, "ben", 5.0, 1)
        await store.set(doc_path(WEEKLY_USER_STATS, f"ben-{WEEK_ID}"), {
            "userId": "ben", "weekId": WEEK_ID, "weeklyMiles": 12.0,
        })

        board = await get_leaderboard(store, "weeklyMiles", "individuals", now=NOW)

        assert [(e.id, e.weekly_miles) for e in board.entries] == [("ben", 12.0), ("ann", 0)]
        assert board.entries[0].team_name == "Road Runners"
        assert board.entries[0].value("weeklyMiles") == 12.0

    @pytest.mark.asyncio
    async def test_weekly_read_failure_falls_back_to_zero(self, store, make_team, monkeypatch):
        await make_team("a", member_count=1)
        await make_team("b", member_count=1)
        await _team_week(store, "b", 50.0)
        real_query = store.query

        async def flaky_query(collection, *args, **kwargs):
            if collection == WEEKLY_TEAM_STATS:
                raise StoreError("down", collection)
            return await real_query(collection, *args, **kwargs)

        monkeypatch.setattr(store, "query", flaky_query)
        board = await get_leaderboard(store, "weeklyMiles", "teams", now=NOW)
        assert {e.id: e.weekly_miles for e in board.entries} == {"a": 0, "b": 0}


class TestIndividualStandings:
    @pytest.mark.asyncio
    async def test_total_miles_with_ties_in_store_order(self, store):
        await _user(store, "ann", 20.0, 2)
        await _user(store, "ben", 30.0, 3)
        await _user(store, "cat", 20.0, 5)
        board = await get_leaderboard(store, "totalMiles", "individuals", now=NOW)
        assert board.entries[0].id == "ben"
        ties = [e.id for e in board.entries[1:]]
        assert ties == [d.id for d in await store.query(USERS) if d.id in ("ann", "cat")]


class TestValidation:
    @pytest.mark.asyncio
    async def test_unknown_sort_key(self, store):
        with pytest.raises(ValueError):
            await get_leaderboard(store, "fastest", "teams")

    @pytest.mark.asyncio
    async def test_unknown_scope(self, store):
        with pytest.raises(ValueError):
            await get_leaderboard(store, "totalMiles", "galaxies")
