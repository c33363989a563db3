"""User profile reads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from rideon.store import Document, DocumentStore, StoreError, doc_path
from rideon.store.collections import USERS

logger = structlog.get_logger()


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    user_name: str
    email: str
    role: str
    team_id: str | None
    team_name: str | None
    total_miles: float = 0.0
    total_rides: int = 0
    member_count: int | None = None

    @classmethod
    def from_document(cls, doc: Document) -> UserProfile:
        data: dict[str, Any] = doc.data
        return cls(
            user_id=data.get("userId") or doc.id,
            user_name=data.get("userName", ""),
            email=data.get("email", ""),
            role=data.get("role", "user"),
            team_id=data.get("teamId") or None,
            team_name=data.get("teamName") or None,
            total_miles=float(data.get("totalMiles") or 0),
            total_rides=int(data.get("totalRides") or 0),
            member_count=data.get("memberCount"),
        )


async def load_profile(store: DocumentStore, user_id: str) -> UserProfile | None:
    """Fetch a user's profile; None when it is missing or the read fails."""
    try:
        doc = await store.get(doc_path(USERS, user_id))
    except StoreError as e:
        logger.error("profile_fetch_failed", user_id=user_id, error=str(e))
        return None
    if doc is None:
        logger.warning("profile_not_found", user_id=user_id)
        return None
    return UserProfile.from_document(doc)
