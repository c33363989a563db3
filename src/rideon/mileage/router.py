"""Mileage router: /api/v1/miles."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from rideon.dependencies import get_store
from rideon.identity.dependencies import get_current_identity
from rideon.identity.provider import Identity
from rideon.mileage.ingestor import log_miles
from rideon.mileage.schemas import MileLogRequest, MileLogResponse
from rideon.store import DocumentStore
from rideon.users.service import load_profile

router = APIRouter(prefix="/api/v1/miles", tags=["Mileage"])


@router.post("", response_model=MileLogResponse, status_code=201)
async def create_mile_log(
    body: MileLogRequest,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
) -> MileLogResponse:
    """Record a ride for the caller and update their totals and weekly stats."""
    profile = await load_profile(store, identity.uid)
    result = await log_miles(
        store,
        profile,
        body.miles,
        ride_date=body.date,
        notes=body.notes,
        user_email=identity.email,
    )
    return MileLogResponse(
        entry_id=result.entry_id,
        week_id=result.week_id,
        miles=result.miles,
        aggregate_failures=result.aggregate_failures,
    )
