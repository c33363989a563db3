"""Username availability router."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from rideon.dependencies import get_store
from rideon.store import DocumentStore, StoreError
from rideon.usernames.registry import is_username_available, validate_username_format
from rideon.usernames.schemas import UsernameAvailabilityResponse

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/usernames", tags=["Usernames"])


@router.get("/{username}/availability", response_model=UsernameAvailabilityResponse)
async def username_availability(
    username: str,
    store: DocumentStore = Depends(get_store),
) -> UsernameAvailabilityResponse:
    """Advisory availability check used while typing; registration re-checks."""
    username = username.strip()
    error = validate_username_format(username)
    if error or not username:
        return UsernameAvailabilityResponse(username=username, available=None, error=error)
    try:
        available = await is_username_available(store, username)
    except StoreError as e:
        logger.warning("username_check_failed", username=username, error=str(e))
        return UsernameAvailabilityResponse(username=username, available=None)
    return UsernameAvailabilityResponse(username=username, available=available)
