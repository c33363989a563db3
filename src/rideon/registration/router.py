"""Registration router: /api/v1/register."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from rideon.dependencies import get_store
from rideon.identity.dependencies import get_identity_provider
from rideon.identity.provider import RedisIdentityProvider
from rideon.registration.form import RegistrationForm
from rideon.registration.orchestrator import RegistrationOrchestrator
from rideon.registration.schemas import RegisterRequest, RegisterResponse
from rideon.store import DocumentStore

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["Registration"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    store: DocumentStore = Depends(get_store),
    provider: RedisIdentityProvider = Depends(get_identity_provider),
) -> RegisterResponse:
    """Register an invited email: identity, profile, username and team membership."""
    orchestrator = RegistrationOrchestrator(store, provider)
    result = await orchestrator.register(RegistrationForm(
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
        username=body.username,
        team_name=body.team_name,
    ))
    return RegisterResponse(
        user_id=result.user_id,
        username=result.username,
        email=result.email,
        role=result.role,
        team_id=result.team_id,
        team_name=result.team_name,
        created_team=result.created_team,
        id_token=await provider.get_token(),
    )
