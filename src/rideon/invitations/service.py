"""
Invitation lookup, validation and issuing.

Two copies of each invitation exist, both keyed by lower-cased email:
``invitationsPublicView`` is readable before sign-in and backs the advisory
check on the registration form; ``invitations`` is authoritative and is
what registration re-validates and marks used.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from rideon.errors import (
    DocumentWriteError,
    InvitationAlreadyUsed,
    InvitationExpired,
    NotAuthorized,
    NotInvited,
    RideOnError,
    TeamNotFound,
)
from rideon.store import SERVER_TIMESTAMP, DocumentStore, StoreError, doc_path
from rideon.store.collections import INVITATIONS, INVITATIONS_PUBLIC_VIEW, TEAMS

logger = structlog.get_logger()

ROLE_USER = "user"
ROLE_TEAM_ADMIN = "team_admin"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_TEAM_ADMIN, ROLE_ADMIN)
TEAM_CREATING_ROLES = frozenset({ROLE_ADMIN, ROLE_TEAM_ADMIN})


@dataclass(frozen=True)
class Invitation:
    email: str
    role: str
    team_id: str | None
    team_name: str | None
    expires_at: datetime
    used: bool

    @property
    def creates_team(self) -> bool:
        return self.role in TEAM_CREATING_ROLES


@dataclass(frozen=True)
class InvitationCheck:
    """Result of an invitation check: ``invitation`` is set only when valid."""

    valid: bool
    invitation: Invitation | None = None
    error: RideOnError | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_timestamp(value: Any) -> datetime:  # noqa: ANN401
    """Parse a stored timestamp (ISO string, datetime or epoch milliseconds) as aware UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        msg = f"Unsupported timestamp value: {value!r}"
        raise ValueError(msg)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def resolve_role(data: dict[str, Any]) -> str:
    """Role granted by an invitation, honouring the legacy boolean flags."""
    if data.get("isAppAdminInvite") or data.get("role") == ROLE_ADMIN:
        return ROLE_ADMIN
    if data.get("isTeamAdminInvite") or data.get("role") == ROLE_TEAM_ADMIN:
        return ROLE_TEAM_ADMIN
    return data.get("role") or ROLE_USER


def invitation_from_document(data: dict[str, Any]) -> Invitation:
    return Invitation(
        email=normalize_email(data.get("email", "")),
        role=resolve_role(data),
        team_id=data.get("teamId") or None,
        team_name=data.get("teamName") or None,
        expires_at=parse_timestamp(data["expiresAt"]),
        used=bool(data.get("used", False)),
    )


def check_invitation_document(data: dict[str, Any] | None, now: datetime) -> Invitation:
    """Validate an invitation document, raising the matching categorized error."""
    if data is None:
        raise NotInvited()
    invitation = invitation_from_document(data)
    if now > invitation.expires_at:
        raise InvitationExpired()
    if invitation.used:
        raise InvitationAlreadyUsed()
    return invitation


async def validate_invitation(
    store: DocumentStore, email: str, now: datetime | None = None,
) -> InvitationCheck:
    """Advisory check against the public view. Pure read; safe to repeat."""
    email = normalize_email(email or "")
    if not email or "@" not in email:
        return InvitationCheck(valid=False, error=NotInvited())
    now = now or datetime.now(timezone.utc)
    try:
        doc = await store.get(doc_path(INVITATIONS_PUBLIC_VIEW, email))
        invitation = check_invitation_document(doc.data if doc else None, now)
    except RideOnError as e:
        return InvitationCheck(valid=False, error=e)
    except (StoreError, KeyError, ValueError) as e:
        logger.error("invitation_check_failed", email=email, error=str(e))
        return InvitationCheck(
            valid=False,
            error=DocumentWriteError("Error validating invitation. Please try again."),
        )
    return InvitationCheck(valid=True, invitation=invitation)


async def get_authoritative_invitation(
    store: DocumentStore, email: str, now: datetime | None = None,
) -> Invitation:
    """Fetch and validate the authoritative invitation; raises on any problem."""
    email = normalize_email(email)
    now = now or datetime.now(timezone.utc)
    try:
        doc = await store.get(doc_path(INVITATIONS, email))
    except StoreError as e:
        logger.error("invitation_fetch_failed", email=email, error=str(e))
        raise DocumentWriteError("Error validating invitation. Please try again.") from e
    try:
        return check_invitation_document(doc.data if doc else None, now)
    except (KeyError, ValueError) as e:
        logger.error("invitation_malformed", email=email, error=str(e))
        raise DocumentWriteError("Error validating invitation. Please try again.") from e


async def delete_public_view(store: DocumentStore, email: str) -> bool:
    """Best-effort removal of the public view. Returns False if it failed."""
    email = normalize_email(email)
    try:
        await store.delete(doc_path(INVITATIONS_PUBLIC_VIEW, email))
    except StoreError as e:
        logger.warning("public_invitation_cleanup_failed", email=email, error=str(e))
        return False
    logger.debug("public_invitation_cleaned_up", email=email)
    return True


# ---------------------------------------------------------------------------
# Issuing
# ---------------------------------------------------------------------------


async def issue_invitation(
    store: DocumentStore,
    email: str,
    role: str = ROLE_USER,
    team_id: str | None = None,
    invited_by: str | None = None,
    ttl_days: int = 7,
    now: datetime | None = None,
) -> Invitation:
    """
    Write an invitation and its public view.

    Re-issuing to the same email replaces the previous invitation.

    Raises:
        ValueError: If the role is unknown or a member invite has no team.
        TeamNotFound: If ``team_id`` does not exist.
    """
    email = normalize_email(email)
    if role not in ROLES:
        msg = f"Unknown role: {role}"
        raise ValueError(msg)
    if role not in TEAM_CREATING_ROLES and not team_id:
        msg = "Member invitations require a team"
        raise ValueError(msg)

    team_name = None
    if team_id:
        team = await store.get(doc_path(TEAMS, team_id))
        if team is None:
            raise TeamNotFound()
        team_name = team.get("name")

    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(days=ttl_days)
    data: dict[str, Any] = {
        "email": email,
        "role": role,
        "teamId": team_id,
        "teamName": team_name,
        "expiresAt": expires_at,
        "used": False,
        "invitedBy": invited_by,
        "createdAt": SERVER_TIMESTAMP,
    }
    public: dict[str, Any] = {
        "email": email,
        "role": role,
        "teamId": team_id,
        "teamName": team_name,
        "expiresAt": expires_at,
        "used": False,
    }
    try:
        await (
            store.batch()
            .set(doc_path(INVITATIONS, email), data)
            .set(doc_path(INVITATIONS_PUBLIC_VIEW, email), public)
            .commit()
        )
    except StoreError as e:
        logger.error("invitation_issue_failed", email=email, error=str(e))
        raise DocumentWriteError() from e

    logger.info("invitation_issued", email=email, role=role, team_id=team_id, invited_by=invited_by)
    return Invitation(
        email=email, role=role, team_id=team_id, team_name=team_name,
        expires_at=expires_at, used=False,
    )


def authorize_invitation(issuer_profile: dict[str, Any] | None, role: str, team_id: str | None) -> None:
    """Admins may invite anyone; team admins only plain members into their own team."""
    issuer_role = (issuer_profile or {}).get("role")
    if issuer_role == ROLE_ADMIN:
        return
    if issuer_role == ROLE_TEAM_ADMIN and role == ROLE_USER and team_id == issuer_profile.get("teamId"):
        return
    raise NotAuthorized("Only administrators can send this invitation.")
