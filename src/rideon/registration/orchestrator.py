"""
Registration workflow.

State progression:
    validating_input -> creating_identity -> resolving_invitation_role
    -> writing_documents -> cleaning_up_public_view -> done
with ``failed`` reachable from every non-terminal state.

The identity is created before any document is written and is never rolled
back here: if the document phase fails, the identity stays behind without a
profile. Document writes go out as one store batch; if Redis applies only
part of it, the documents this call created are deleted again on a
best-effort basis.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from rideon.config import Settings, get_settings
from rideon.errors import (
    DocumentWriteError,
    InvitationAlreadyUsed,
    InvitationExpired,
    NotInvited,
    RideOnError,
    TeamNameRequired,
    TeamNotFound,
    UsernameTaken,
)
from rideon.identity.provider import IdentityProvider, wait_for_identity
from rideon.invitations.service import (
    ROLE_ADMIN,
    Invitation,
    InvitationCheck,
    delete_public_view,
    get_authoritative_invitation,
    normalize_email,
    validate_invitation,
)
from rideon.registration.form import RegistrationForm, registration_form_state
from rideon.store import (
    SERVER_TIMESTAMP,
    ArrayUnion,
    BatchCommitError,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    Increment,
    PreconditionFailedError,
    StoreError,
    doc_path,
)
from rideon.store.collections import INVITATIONS, TEAMS, USERS
from rideon.usernames.registry import (
    is_username_available,
    username_path,
    validate_username_format,
)

logger = structlog.get_logger()


class RegistrationState(str, Enum):
    VALIDATING_INPUT = "validating_input"
    CREATING_IDENTITY = "creating_identity"
    RESOLVING_INVITATION_ROLE = "resolving_invitation_role"
    WRITING_DOCUMENTS = "writing_documents"
    CLEANING_UP_PUBLIC_VIEW = "cleaning_up_public_view"
    DONE = "done"
    FAILED = "failed"


S = RegistrationState

VALID_TRANSITIONS: dict[RegistrationState, list[RegistrationState]] = {
    S.VALIDATING_INPUT: [S.CREATING_IDENTITY, S.FAILED],
    S.CREATING_IDENTITY: [S.RESOLVING_INVITATION_ROLE, S.FAILED],
    S.RESOLVING_INVITATION_ROLE: [S.WRITING_DOCUMENTS, S.FAILED],
    S.WRITING_DOCUMENTS: [S.CLEANING_UP_PUBLIC_VIEW, S.FAILED],
    S.CLEANING_UP_PUBLIC_VIEW: [S.DONE, S.FAILED],
    S.DONE: [],
    S.FAILED: [],
}


def validate_transition(current: RegistrationState, target: RegistrationState) -> None:
    """Validate a state transition. Raises ValueError if invalid."""
    valid = VALID_TRANSITIONS.get(current, [])
    if target not in valid:
        raise ValueError(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Valid transitions: {[s.value for s in valid]}"
        )


@dataclass(frozen=True)
class RegistrationResult:
    user_id: str
    username: str
    email: str
    role: str
    team_id: str
    team_name: str
    created_team: bool
    public_view_removed: bool


@dataclass
class _TeamPlan:
    team_id: str
    team_name: str
    new_team: dict[str, Any] | None


class RegistrationOrchestrator:
    """Drives one registration attempt. Use a new instance per attempt."""

    def __init__(
        self,
        store: DocumentStore,
        identity_provider: IdentityProvider,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.identity_provider = identity_provider
        self.settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = S.VALIDATING_INPUT
        self.history: list[RegistrationState] = [S.VALIDATING_INPUT]
        self.error: RideOnError | None = None

    def _transition(self, target: RegistrationState) -> None:
        validate_transition(self.state, target)
        logger.debug("registration_step", from_state=self.state.value, to_state=target.value)
        self.state = target
        self.history.append(target)

    def _fail(self, error: RideOnError) -> None:
        self.error = error
        if self.state not in (S.DONE, S.FAILED):
            self._transition(S.FAILED)
        logger.warning(
            "registration_failed",
            state=self.history[-2].value if len(self.history) > 1 else self.state.value,
            code=error.code,
            error=error.message,
        )

    async def register(self, form: RegistrationForm) -> RegistrationResult:
        """Run the full registration sequence.

        Raises:
            RideOnError: A categorized failure. Once the identity exists it is
                not rolled back, whatever the failure.
        """
        try:
            return await self._run(form)
        except RideOnError as e:
            self._fail(e)
            raise
        except Exception as e:
            logger.error("registration_crashed", state=self.state.value, error=str(e), exc_info=e)
            self._fail(DocumentWriteError("Failed to create account. Please try again."))
            raise self.error from e

    async def _run(self, form: RegistrationForm) -> RegistrationResult:
        email = normalize_email(form.email)
        username = form.username.strip()
        team_name = form.team_name.strip()

        # -- validating_input ---------------------------------------------------
        await self._validate_input(form)

        # -- creating_identity --------------------------------------------------
        self._transition(S.CREATING_IDENTITY)
        identity = await self.identity_provider.create_identity(email, form.password)
        uid = identity.uid
        await wait_for_identity(
            self.identity_provider, uid, self.settings.identity_ready_timeout_seconds,
        )
        token = await self.identity_provider.get_token(force_refresh=True)
        claims = self.identity_provider.verify_token(token)
        logger.debug(
            "registration_identity_ready",
            uid=uid,
            token_email=claims.get("email"),
            email_verified=claims.get("email_verified"),
        )

        # -- resolving_invitation_role ----------------------------------------
        self._transition(S.RESOLVING_INVITATION_ROLE)
        invitation = await get_authoritative_invitation(self.store, email, self._clock())
        plan = await self._plan_team(invitation, uid, team_name)

        # -- writing_documents ------------------------------------------------
        self._transition(S.WRITING_DOCUMENTS)
        await self._write_documents(email, username, uid, invitation, plan)

        # -- cleaning_up_public_view ------------------------------------------
        self._transition(S.CLEANING_UP_PUBLIC_VIEW)
        removed = await delete_public_view(self.store, email)

        self._transition(S.DONE)
        logger.info(
            "user_registered",
            uid=uid,
            username=username,
            role=invitation.role,
            team_id=plan.team_id,
            created_team=plan.new_team is not None,
        )
        return RegistrationResult(
            user_id=uid,
            username=username,
            email=identity.email,
            role=invitation.role,
            team_id=plan.team_id,
            team_name=plan.team_name,
            created_team=plan.new_team is not None,
            public_view_removed=removed,
        )

    async def _validate_input(self, form: RegistrationForm) -> None:
        """Pre-flight checks. Reads only; nothing is created until they all pass."""
        check = await validate_invitation(self.store, form.email, self._clock())
        if isinstance(check.error, NotInvited) and form.email.strip():
            check = await self._recheck_authoritative(form.email, check)

        available: bool | None = None
        username = form.username.strip()
        if username and validate_username_format(username) is None:
            try:
                available = await is_username_available(self.store, username)
            except StoreError as e:
                logger.error("username_check_failed", username=username, error=str(e))
                raise DocumentWriteError("Error checking username. Please try again.") from e

        state = registration_form_state(
            form, check, available, min_password_length=self.settings.password_min_length,
        )
        if state.error is not None:
            raise state.error

    async def _recheck_authoritative(self, email: str, check: InvitationCheck) -> InvitationCheck:
        """The public view is removed once an invitation is used, so a missing view
        is told apart from a used or expired invitation by the authoritative record.
        """
        try:
            invitation = await get_authoritative_invitation(self.store, email, self._clock())
        except (InvitationAlreadyUsed, InvitationExpired) as e:
            return InvitationCheck(valid=False, error=e)
        except RideOnError:
            return check
        logger.info("public_invitation_missing", email=normalize_email(email))
        return InvitationCheck(valid=True, invitation=invitation)

    async def _plan_team(self, invitation: Invitation, uid: str, team_name: str) -> _TeamPlan:
        if invitation.creates_team:
            if not team_name:
                raise TeamNameRequired()
            team_id = str(uuid.uuid4())
            description = (
                "Application administrators team" if invitation.role == ROLE_ADMIN else "A new cycling team"
            )
            return _TeamPlan(
                team_id=team_id,
                team_name=team_name,
                new_team={
                    "name": team_name,
                    "description": description,
                    "adminIds": [uid],
                    "memberIds": [uid],
                    "memberCount": 1,
                    "totalMiles": 0,
                    "totalRides": 0,
                    "createdAt": SERVER_TIMESTAMP,
                    "createdBy": uid,
                    "isActive": True,
                    "weeklyMiles": 0,
                    "monthlyMiles": 0,
                    "lastUpdated": SERVER_TIMESTAMP,
                },
            )

        if not invitation.team_id:
            raise TeamNotFound()
        try:
            team = await self.store.get(doc_path(TEAMS, invitation.team_id))
        except StoreError as e:
            logger.error("team_lookup_failed", team_id=invitation.team_id, error=str(e))
            raise DocumentWriteError("Failed to create account. Please try again.") from e
        if team is None:
            raise TeamNotFound()
        return _TeamPlan(team_id=team.id, team_name=team.get("name", ""), new_team=None)

    async def _write_documents(
        self,
        email: str,
        username: str,
        uid: str,
        invitation: Invitation,
        plan: _TeamPlan,
    ) -> None:
        team_path = doc_path(TEAMS, plan.team_id)
        user_path = doc_path(USERS, uid)
        name_path = username_path(username)
        invite_path = doc_path(INVITATIONS, email)

        profile = {
            "userId": uid,
            "userName": username,
            "email": email,
            "role": invitation.role,
            "teamId": plan.team_id,
            "teamName": plan.team_name,
            "createdAt": SERVER_TIMESTAMP,
            "totalMiles": 0,
            "totalRides": 0,
            "joinedTeamAt": SERVER_TIMESTAMP,
        }

        batch = self.store.batch()
        created = [user_path, name_path]
        if plan.new_team is not None:
            batch.create(team_path, plan.new_team)
            created.insert(0, team_path)
        batch.create(user_path, profile)
        batch.create(name_path, {"userId": uid, "createdAt": SERVER_TIMESTAMP})
        batch.update(
            invite_path,
            {"used": True, "usedAt": SERVER_TIMESTAMP},
            check=lambda doc: not doc.get("used"),
        )
        if plan.new_team is None:
            batch.update(team_path, {
                "memberIds": ArrayUnion(uid),
                "memberCount": Increment(1),
                "lastUpdated": SERVER_TIMESTAMP,
            })

        try:
            await batch.commit()
        except DocumentExistsError as e:
            if e.path == name_path:
                raise UsernameTaken() from e
            logger.error("registration_write_conflict", uid=uid, path=e.path)
            raise DocumentWriteError("Failed to create account. Please try again.") from e
        except PreconditionFailedError as e:
            raise InvitationAlreadyUsed() from e
        except DocumentNotFoundError as e:
            if e.path == invite_path:
                raise NotInvited() from e
            raise TeamNotFound() from e
        except BatchCommitError as e:
            logger.error(
                "registration_write_partial", uid=uid, applied=e.applied, failed=e.failed, error=str(e),
            )
            await self._compensate([p for p in created if p in e.applied])
            raise DocumentWriteError("Failed to create account. Please try again.") from e
        except StoreError as e:
            logger.error("registration_write_failed", uid=uid, error=str(e))
            raise DocumentWriteError("Failed to create account. Please try again.") from e

    async def _compensate(self, paths: list[str]) -> None:
        """Best-effort delete of documents this attempt created."""
        for path in paths:
            try:
                await self.store.delete(path)
                logger.info("registration_rollback_deleted", path=path)
            except StoreError as e:
                logger.warning("registration_rollback_failed", path=path, error=str(e))
