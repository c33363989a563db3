"""User profile router: /api/v1/users/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from rideon.dependencies import get_store
from rideon.errors import ProfileNotLoaded
from rideon.identity.dependencies import get_current_identity
from rideon.identity.provider import Identity
from rideon.store import DocumentStore
from rideon.users.schemas import UserProfileResponse
from rideon.users.service import UserProfile, load_profile

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _profile_response(profile: UserProfile) -> UserProfileResponse:
    """Build a UserProfileResponse from a loaded profile."""
    return UserProfileResponse(
        user_id=profile.user_id,
        user_name=profile.user_name,
        email=profile.email,
        role=profile.role,
        team_id=profile.team_id,
        team_name=profile.team_name,
        total_miles=profile.total_miles,
        total_rides=profile.total_rides,
    )


@router.get("/me", response_model=UserProfileResponse)
async def get_my_profile(
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
) -> UserProfileResponse:
    """Get own profile, including running totals."""
    profile = await load_profile(store, identity.uid)
    if profile is None:
        raise ProfileNotLoaded("User profile not found")
    return _profile_response(profile)
