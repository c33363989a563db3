"""
Mileage ingestion.

The mileage entry is the record of truth and the only mandatory write.
Four denormalized aggregates are then bumped independently: user totals,
team totals, the user's weekly stat and the team's weekly stat. A failed
aggregate update is logged and skipped; it never fails the call once the
entry exists.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

import structlog

from rideon.config import Settings, get_settings
from rideon.errors import DocumentWriteError, InvalidMileage, ProfileNotLoaded
from rideon.mileage.week_utils import get_current_week_id, to_local
from rideon.store import SERVER_TIMESTAMP, DocumentStore, Increment, StoreError, doc_path
from rideon.store.collections import MILE_LOGS, TEAMS, USERS, WEEKLY_TEAM_STATS, WEEKLY_USER_STATS
from rideon.users.service import UserProfile

logger = structlog.get_logger()


@dataclass(frozen=True)
class MileLogResult:
    entry_id: str
    week_id: str
    miles: float
    aggregate_failures: list[str] = field(default_factory=list)


def weekly_user_stat_id(user_id: str, week_id: str) -> str:
    return f"{user_id}-{week_id}"


def weekly_team_stat_id(team_id: str, week_id: str) -> str:
    return f"{team_id}-{week_id}"


def validate_miles(miles: float, max_miles: float) -> float:
    try:
        value = float(miles)
    except (TypeError, ValueError) as e:
        raise InvalidMileage("Please enter a valid number of miles") from e
    if not value > 0:
        raise InvalidMileage()
    if value > max_miles:
        raise InvalidMileage(f"Miles must be {max_miles:g} or less")
    return value


async def log_miles(
    store: DocumentStore,
    profile: UserProfile | None,
    miles: float,
    ride_date: date | None = None,
    notes: str = "",
    user_email: str | None = None,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> MileLogResult:
    """
    Record one ride and fan out aggregate updates.

    Raises:
        ProfileNotLoaded: No profile was supplied; nothing is written.
        InvalidMileage: ``miles`` is not in (0, max]; nothing is written.
        DocumentWriteError: The mileage entry itself could not be stored.
    """
    settings = settings or get_settings()
    if profile is None:
        raise ProfileNotLoaded()
    amount = validate_miles(miles, settings.max_miles_per_entry)

    now = now or datetime.now(timezone.utc)
    week_id = get_current_week_id(now)
    ride_date = ride_date or to_local(now).date()

    entry = {
        "userId": profile.user_id,
        "userName": profile.user_name,
        "userEmail": user_email or profile.email,
        "teamId": profile.team_id,
        "teamName": profile.team_name,
        "miles": amount,
        "date": ride_date.isoformat(),
        "location": "",
        "notes": notes,
        "createdAt": SERVER_TIMESTAMP,
    }
    try:
        doc = await store.add(MILE_LOGS, entry)
    except StoreError as e:
        logger.error("mile_log_create_failed", user_id=profile.user_id, miles=amount, error=str(e))
        raise DocumentWriteError("Error logging miles. Please try again.") from e
    logger.info("mile_log_created", entry_id=doc.id, user_id=profile.user_id, miles=amount, week_id=week_id)

    steps: list[tuple[str, Callable[[], Awaitable[None]]]] = [
        ("user_totals", lambda: store.update(doc_path(USERS, profile.user_id), {
            "totalMiles": Increment(amount),
            "totalRides": Increment(1),
        })),
    ]
    if profile.team_id:
        steps.append(("team_totals", lambda: store.update(doc_path(TEAMS, profile.team_id), {
            "totalMiles": Increment(amount),
            "totalRides": Increment(1),
            "lastUpdated": SERVER_TIMESTAMP,
        })))
    steps.append(("user_weekly", lambda: store.set(
        doc_path(WEEKLY_USER_STATS, weekly_user_stat_id(profile.user_id, week_id)),
        {
            "userId": profile.user_id,
            "userName": profile.user_name,
            "teamId": profile.team_id,
            "teamName": profile.team_name,
            "weekId": week_id,
            "weeklyMiles": Increment(amount),
            "weeklyRides": Increment(1),
            "lastUpdated": SERVER_TIMESTAMP,
        },
        merge=True,
    )))
    if profile.team_id:
        steps.append(("team_weekly", lambda: store.set(
            doc_path(WEEKLY_TEAM_STATS, weekly_team_stat_id(profile.team_id, week_id)),
            {
                "teamId": profile.team_id,
                "teamName": profile.team_name,
                "weekId": week_id,
                "weeklyMiles": Increment(amount),
                "weeklyRides": Increment(1),
                # TODO: refresh when team membership changes mid-week
                "memberCount": profile.member_count or 1,
                "lastUpdated": SERVER_TIMESTAMP,
            },
            merge=True,
        )))

    failures: list[str] = []
    for name, step in steps:
        try:
            await step()
        except StoreError as e:
            failures.append(name)
            logger.error(
                "mileage_aggregate_failed",
                step=name,
                entry_id=doc.id,
                user_id=profile.user_id,
                team_id=profile.team_id,
                role=profile.role,
                error=str(e),
            )
        else:
            logger.debug("mileage_aggregate_updated", step=name, entry_id=doc.id)

    return MileLogResult(entry_id=doc.id, week_id=week_id, miles=amount, aggregate_failures=failures)
