"""Invitation router: /api/v1/invitations/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from rideon.config import get_settings
from rideon.dependencies import get_store
from rideon.errors import ProfileNotLoaded
from rideon.identity.dependencies import get_current_identity
from rideon.identity.provider import Identity
from rideon.invitations.schemas import (
    InvitationCheckResponse,
    InvitationCreateRequest,
    InvitationResponse,
)
from rideon.invitations.service import authorize_invitation, issue_invitation, validate_invitation
from rideon.store import DocumentStore, doc_path
from rideon.store.collections import USERS

router = APIRouter(prefix="/api/v1/invitations", tags=["Invitations"])


@router.get("/check", response_model=InvitationCheckResponse)
async def check_invitation(
    email: str = Query(..., max_length=254),
    store: DocumentStore = Depends(get_store),
) -> InvitationCheckResponse:
    """Check whether an email has a live invitation (advisory; re-checked at registration)."""
    check = await validate_invitation(store, email)
    invitation = check.invitation
    return InvitationCheckResponse(
        email=email.strip().lower(),
        valid=check.valid,
        role=invitation.role if invitation else None,
        team_id=invitation.team_id if invitation else None,
        team_name=invitation.team_name if invitation else None,
        requires_team_name=bool(invitation and invitation.creates_team),
        code=check.error.code if check.error else None,
        error=check.error.message if check.error else None,
    )


@router.post("", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    body: InvitationCreateRequest,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
) -> InvitationResponse:
    """Invite an email. Admins invite any role; team admins invite members to their team."""
    issuer = await store.get(doc_path(USERS, identity.uid))
    if issuer is None:
        raise ProfileNotLoaded("Your profile could not be loaded.")
    authorize_invitation(issuer.data, body.role, body.team_id)

    try:
        invitation = await issue_invitation(
            store,
            body.email,
            role=body.role,
            team_id=body.team_id,
            invited_by=identity.uid,
            ttl_days=body.ttl_days or get_settings().invitation_ttl_days,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    return InvitationResponse(
        email=invitation.email,
        role=invitation.role,
        team_id=invitation.team_id,
        team_name=invitation.team_name,
        expires_at=invitation.expires_at,
        used=invitation.used,
    )
