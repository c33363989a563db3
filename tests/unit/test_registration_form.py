"""Registration form validation: first blocking error, in field order."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from rideon.errors import (
    EmailRequired,
    InvitationExpired,
    NotInvited,
    PasswordMismatch,
    PasswordTooWeak,
    TeamNameRequired,
    UsernameInvalidFormat,
    UsernameTaken,
)
from rideon.invitations.service import Invitation, InvitationCheck
from rideon.registration.form import RegistrationForm, registration_form_state

EXPIRES = datetime.now(timezone.utc) + timedelta(days=3)


def _check(role: str = "user", team_id: str | None = "team-1") -> InvitationCheck:
    return InvitationCheck(
        valid=True,
        invitation=Invitation(
            email="rider@example.com", role=role, team_id=team_id,
            team_name="Road Runners", expires_at=EXPIRES, used=False,
        ),
    )


def _form(**overrides) -> RegistrationForm:
    values = {
        "email": "rider@example.com",
        "password": "pedal-hard",
        "confirm_password": "pedal-hard",
        "username": "rider_1",
        "team_name": "",
    }
    values.update(overrides)
    return RegistrationForm(**values)


class TestFormState:
    def test_complete_form_is_ready(self):
        state = registration_form_state(_form(), _check(), username_available=True)
        assert state.ready
        assert state.invitation_valid
        assert not state.requires_team_name

    def test_email_required_first(self):
        state = registration_form_state(_form(email=" ", username="", password=""), None)
        assert isinstance(state.error, EmailRequired)

    def test_unchecked_invitation_blocks(self):
        state = registration_form_state(_form(), None)
        assert isinstance(state.error, NotInvited)

    def test_invitation_error_passed_through(self):
        check = InvitationCheck(valid=False, error=InvitationExpired())
        state = registration_form_state(_form(), check)
        assert isinstance(state.error, InvitationExpired)

    def test_username_required(self):
        state = registration_form_state(_form(username="  "), _check())
        assert isinstance(state.error, UsernameInvalidFormat)
        assert state.error.message == "Username is required"

    def test_username_format_before_availability(self):
        state = registration_form_state(_form(username="a b"), _check(), username_available=False)
        assert isinstance(state.error, UsernameInvalidFormat)
        assert state.username_error == "Username cannot contain spaces"

    def test_username_taken(self):
        state = registration_form_state(_form(), _check(), username_available=False)
        assert isinstance(state.error, UsernameTaken)

    def test_unknown_availability_does_not_block(self):
        assert registration_form_state(_form(), _check(), username_available=None).ready

    def test_password_required(self):
        state = registration_form_state(_form(password="", confirm_password=""), _check())
        assert isinstance(state.error, PasswordTooWeak)
        assert state.error.message == "Password required"

    def test_mismatch_reported_before_length(self):
        state = registration_form_state(_form(password="abc", confirm_password="abd"), _check())
        assert isinstance(state.error, PasswordMismatch)

    def test_password_too_short(self):
        state = registration_form_state(_form(password="abc12", confirm_password="abc12"), _check())
        assert isinstance(state.error, PasswordTooWeak)
        assert state.error.message == "Password must be at least 6 characters"

    def test_min_password_length_configurable(self):
        state = registration_form_state(_form(), _check(), min_password_length=12)
        assert isinstance(state.error, PasswordTooWeak)

    @pytest.mark.parametrize("role", ["admin", "team_admin"])
    def test_team_creating_roles_need_team_name(self, role):
        state = registration_form_state(_form(), _check(role=role, team_id=None))
        assert state.requires_team_name
        assert isinstance(state.error, TeamNameRequired)
        assert registration_form_state(_form(team_name="Falcons"), _check(role=role, team_id=None)).ready
