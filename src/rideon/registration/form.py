"""Registration form validation as a pure function of the current input."""

from __future__ import annotations

from dataclasses import dataclass

from rideon.errors import (
    EmailRequired,
    NotInvited,
    PasswordMismatch,
    PasswordTooWeak,
    RideOnError,
    TeamNameRequired,
    UsernameInvalidFormat,
    UsernameTaken,
)
from rideon.invitations.service import InvitationCheck
from rideon.usernames.registry import validate_username_format


@dataclass(frozen=True)
class RegistrationForm:
    email: str
    password: str
    confirm_password: str
    username: str
    team_name: str = ""


@dataclass(frozen=True)
class FormState:
    """Validation state of the form; ``error`` is the first blocking problem."""

    username_error: str | None
    username_available: bool | None
    invitation_valid: bool
    requires_team_name: bool
    error: RideOnError | None

    @property
    def ready(self) -> bool:
        return self.error is None


def _first_error(
    form: RegistrationForm,
    invitation: InvitationCheck | None,
    username_error: str | None,
    username_available: bool | None,
    requires_team_name: bool,
    min_password_length: int,
) -> RideOnError | None:
    if not form.email.strip():
        return EmailRequired()
    if invitation is None or not invitation.valid:
        if invitation is not None and invitation.error is not None:
            return invitation.error
        return NotInvited("Please enter a valid invited email address")
    if not form.username.strip():
        return UsernameInvalidFormat("Username is required")
    if username_error:
        return UsernameInvalidFormat(username_error)
    if username_available is False:
        return UsernameTaken()
    if not form.password:
        return PasswordTooWeak("Password required")
    if form.password != form.confirm_password:
        return PasswordMismatch()
    if len(form.password) < min_password_length:
        return PasswordTooWeak(f"Password must be at least {min_password_length} characters")
    if requires_team_name and not form.team_name.strip():
        return TeamNameRequired()
    return None


def registration_form_state(
    form: RegistrationForm,
    invitation: InvitationCheck | None,
    username_available: bool | None = None,
    min_password_length: int = 6,
) -> FormState:
    """Recompute the whole validation state from the form and the latest lookups.

    ``invitation`` and ``username_available`` come from the advisory lookups;
    None means "not checked yet".
    """
    username_error = validate_username_format(form.username.strip())
    requires_team_name = bool(
        invitation is not None and invitation.invitation is not None and invitation.invitation.creates_team
    )
    error = _first_error(
        form, invitation, username_error, username_available, requires_team_name, min_password_length,
    )
    return FormState(
        username_error=username_error,
        username_available=username_available,
        invitation_valid=bool(invitation and invitation.valid),
        requires_team_name=requires_team_name,
        error=error,
    )
