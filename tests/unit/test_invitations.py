"""Invitation validation, issuing and authorization."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from rideon.errors import (
    DocumentWriteError,
    InvitationAlreadyUsed,
    InvitationExpired,
    NotAuthorized,
    NotInvited,
    TeamNotFound,
)
from rideon.invitations.service import (
    authorize_invitation,
    delete_public_view,
    get_authoritative_invitation,
    issue_invitation,
    parse_timestamp,
    resolve_role,
    validate_invitation,
)
from rideon.store import StoreError, doc_path
from rideon.store.collections import INVITATIONS, INVITATIONS_PUBLIC_VIEW

NOW = datetime(2024, 3, 6, 12, tzinfo=timezone.utc)


class TestParsing:
    def test_parse_timestamp_formats(self):
        expected = datetime(2024, 3, 6, 12, tzinfo=timezone.utc)
        assert parse_timestamp("2024-03-06T12:00:00+00:00") == expected
        assert parse_timestamp("2024-03-06T12:00:00Z") == expected
        assert parse_timestamp(expected.timestamp() * 1000) == expected
        assert parse_timestamp(datetime(2024, 3, 6, 12)) == expected

    def test_resolve_role_honours_legacy_flags(self):
        assert resolve_role({"isAppAdminInvite": True}) == "admin"
        assert resolve_role({"isTeamAdminInvite": True, "role": "user"}) == "team_admin"
        assert resolve_role({"role": "user"}) == "user"
        assert resolve_role({}) == "user"


class TestValidateInvitation:
    @pytest.mark.asyncio
    async def test_valid_invitation(self, store, make_team, invite):
        await make_team("team-1", name="Road Runners")
        await invite("Rider@Example.com", team_id="team-1", now=NOW)
        check = await validate_invitation(store, " rider@example.COM ", now=NOW)
        assert check.valid
        assert check.invitation.role == "user"
        assert check.invitation.team_name == "Road Runners"

    @pytest.mark.asyncio
    async def test_not_invited(self, store):
        check = await validate_invitation(store, "stranger@example.com", now=NOW)
        assert not check.valid
        assert isinstance(check.error, NotInvited)

    @pytest.mark.asyncio
    async def test_email_without_at_sign(self, store):
        check = await validate_invitation(store, "not-an-email", now=NOW)
        assert isinstance(check.error, NotInvited)

    @pytest.mark.asyncio
    async def test_expired(self, store, invite):
        await invite("late@example.com", role="admin", ttl_days=1, now=NOW)
        check = await validate_invitation(store, "late@example.com", now=NOW + timedelta(days=2))
        assert isinstance(check.error, InvitationExpired)

    @pytest.mark.asyncio
    async def test_used(self, store, invite):
        await invite("used@example.com", role="admin", now=NOW)
        await store.update(doc_path(INVITATIONS_PUBLIC_VIEW, "used@example.com"), {"used": True})
        check = await validate_invitation(store, "used@example.com", now=NOW)
        assert isinstance(check.error, InvitationAlreadyUsed)

    @pytest.mark.asyncio
    async def test_store_failure_is_reported_not_raised(self, store, monkeypatch):
        async def broken(_path):
            raise StoreError("down")

        monkeypatch.setattr(store, "get", broken)
        check = await validate_invitation(store, "rider@example.com", now=NOW)
        assert not check.valid
        assert isinstance(check.error, DocumentWriteError)
        assert check.error.message.startswith("Error validating invitation")

    @pytest.mark.asyncio
    async def test_authoritative_copy_is_independent_of_public_view(self, store, invite):
        await invite("admin@example.com", role="admin", now=NOW)
        await store.delete(doc_path(INVITATIONS_PUBLIC_VIEW, "admin@example.com"))
        invitation = await get_authoritative_invitation(store, "ADMIN@example.com", NOW)
        assert invitation.creates_team

    @pytest.mark.asyncio
    async def test_authoritative_missing_raises(self, store):
        with pytest.raises(NotInvited):
            await get_authoritative_invitation(store, "nobody@example.com", NOW)

    @pytest.mark.asyncio
    async def test_authoritative_without_expiry_is_a_write_error(self, store):
        await store.set(doc_path(INVITATIONS, "bob@example.com"), {"email": "bob@example.com", "used": False})
        with pytest.raises(DocumentWriteError):
            await get_authoritative_invitation(store, "bob@example.com", NOW)


class TestIssueInvitation:
    @pytest.mark.asyncio
    async def test_writes_both_copies(self, store, make_team):
        await make_team("team-1", name="Road Runners")
        invitation = await issue_invitation(store, "New@Example.com", team_id="team-1", ttl_days=7, now=NOW)
        assert invitation.email == "new@example.com"
        assert invitation.expires_at == NOW + timedelta(days=7)
        private = await store.get(doc_path(INVITATIONS, "new@example.com"))
        public = await store.get(doc_path(INVITATIONS_PUBLIC_VIEW, "new@example.com"))
        assert private.get("teamName") == public.get("teamName") == "Road Runners"
        assert private.get("used") is False
        assert "invitedBy" not in public.data

    @pytest.mark.asyncio
    async def test_member_invite_requires_team(self, store):
        with pytest.raises(ValueError):
            await issue_invitation(store, "x@example.com", role="user")

    @pytest.mark.asyncio
    async def test_unknown_team(self, store):
        with pytest.raises(TeamNotFound):
            await issue_invitation(store, "x@example.com", team_id="ghost")

    @pytest.mark.asyncio
    async def test_unknown_role(self, store):
        with pytest.raises(ValueError):
            await issue_invitation(store, "x@example.com", role="owner")

    @pytest.mark.asyncio
    async def test_delete_public_view(self, store, invite):
        await invite("a@example.com", role="admin", now=NOW)
        assert await delete_public_view(store, "A@example.com") is True
        assert await store.get(doc_path(INVITATIONS_PUBLIC_VIEW, "a@example.com")) is None


class TestAuthorizeInvitation:
    def test_admin_may_invite_any_role(self):
        for role in ("user", "team_admin", "admin"):
            authorize_invitation({"role": "admin"}, role, None)

    def test_team_admin_invites_members_into_own_team(self):
        authorize_invitation({"role": "team_admin", "teamId": "t1"}, "user", "t1")

    @pytest.mark.parametrize(
        ("profile", "role", "team_id"),
        [
            ({"role": "team_admin", "teamId": "t1"}, "user", "t2"),
            ({"role": "team_admin", "teamId": "t1"}, "admin", None),
            ({"role": "user", "teamId": "t1"}, "user", "t1"),
            (None, "user", "t1"),
        ],
    )
    def test_everyone_else_is_refused(self, profile, role, team_id):
        with pytest.raises(NotAuthorized):
            authorize_invitation(profile, role, team_id)
