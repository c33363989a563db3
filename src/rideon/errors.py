"""
Domain error taxonomy.

Every error carries a stable machine ``code``, the HTTP status the API maps
it to, and a short message that is safe to show an end user. Diagnostic
detail (provider codes, failing step, store exceptions) goes to the log,
never into ``message``.
"""

from __future__ import annotations


class RideOnError(Exception):
    """Base class for all categorized workflow errors."""

    code = "error"
    status_code = 400
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


class EmailRequired(RideOnError):
    code = "email_required"
    default_message = "Email is required"


class NotInvited(RideOnError):
    code = "not_invited"
    status_code = 403
    default_message = "This email has not been invited to join. Please contact an administrator."


class InvitationExpired(RideOnError):
    code = "invitation_expired"
    status_code = 403
    default_message = "This invitation has expired. Please request a new invitation."


class InvitationAlreadyUsed(RideOnError):
    code = "invitation_already_used"
    status_code = 409
    default_message = "This invitation has already been used."


# ---------------------------------------------------------------------------
# Registration input
# ---------------------------------------------------------------------------


class UsernameInvalidFormat(RideOnError):
    code = "username_invalid_format"
    status_code = 422
    default_message = "Username is required"


class UsernameTaken(RideOnError):
    code = "username_taken"
    status_code = 409
    default_message = "This username is already taken."


class PasswordTooWeak(RideOnError):
    code = "password_too_weak"
    status_code = 422
    default_message = "Password too short"


class PasswordMismatch(RideOnError):
    code = "password_mismatch"
    status_code = 422
    default_message = "Passwords do not match"


class TeamNameRequired(RideOnError):
    code = "team_name_required"
    status_code = 422
    default_message = "Team name is required"


class TeamNotFound(RideOnError):
    code = "team_not_found"
    status_code = 404
    default_message = "The team for this invitation no longer exists. Please contact support."


# ---------------------------------------------------------------------------
# Mileage
# ---------------------------------------------------------------------------


class ProfileNotLoaded(RideOnError):
    code = "profile_not_loaded"
    status_code = 404
    default_message = "Unable to log miles: User profile not loaded"


class InvalidMileage(RideOnError):
    code = "invalid_mileage"
    status_code = 422
    default_message = "Miles must be greater than 0"


# ---------------------------------------------------------------------------
# Identity and storage
# ---------------------------------------------------------------------------


class NotAuthorized(RideOnError):
    code = "not_authorized"
    status_code = 403
    default_message = "You are not allowed to do that."


class IdentityProviderError(RideOnError):
    """Wraps a provider-specific failure code."""

    code = "identity_provider_error"
    status_code = 400
    default_message = "Failed to create account"

    MESSAGES: dict[str, str] = {
        "email-already-in-use": "An account with this email already exists.",
        "weak-password": "Password is too weak. Please choose a stronger password (min 6 characters).",
        "invalid-email": "Please enter a valid email address.",
        "operation-not-allowed": "Email/password accounts are not enabled. Please contact support.",
        "invalid-credential": "Invalid email or password.",
        "invalid-token": "Your session is invalid or has expired. Please sign in again.",
    }

    STATUS_CODES: dict[str, int] = {
        "email-already-in-use": 409,
        "invalid-credential": 401,
        "invalid-token": 401,
        "operation-not-allowed": 403,
        "internal-error": 503,
    }

    def __init__(self, provider_code: str, message: str | None = None) -> None:
        self.provider_code = provider_code
        self.status_code = self.STATUS_CODES.get(provider_code, 400)
        super().__init__(message or self.MESSAGES.get(provider_code))


class IdentityNotReady(RideOnError):
    code = "identity_not_ready"
    status_code = 503
    default_message = "Failed to create account: sign-in did not complete. Please try again."


class DocumentWriteError(RideOnError):
    """Generic document store failure."""

    code = "document_write_error"
    status_code = 503
    default_message = "Failed to save your changes. Please try again."
