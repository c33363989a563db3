"""Username registry: format rules and availability.

Uniqueness lives in the ``usernames`` collection: a document keyed by the
lower-cased username means the name is taken. Profiles are never scanned.
"""

from __future__ import annotations

import re

from rideon.store import DocumentStore, doc_path
from rideon.store.collections import USERNAMES

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
_VALID_USERNAME = re.compile(r"^[a-zA-Z0-9_-]+$")


def normalize_username(username: str) -> str:
    return username.strip().lower()


def username_path(username: str) -> str:
    return doc_path(USERNAMES, normalize_username(username))


def validate_username_format(username: str) -> str | None:
    """Return the first format problem with ``username``, or None if it is fine.

    An empty value has nothing to check and returns None; callers decide
    whether the field is required.
    """
    if not username:
        return None
    if len(username) < USERNAME_MIN_LENGTH:
        return f"Username must be at least {USERNAME_MIN_LENGTH} characters long"
    if len(username) > USERNAME_MAX_LENGTH:
        return f"Username must be {USERNAME_MAX_LENGTH} characters or less"
    if " " in username:
        return "Username cannot contain spaces"
    if not _VALID_USERNAME.match(username):
        return "Username can only contain letters, numbers, underscores, and hyphens"
    if username[0] in "_-" or username[-1] in "_-":
        return "Username cannot start or end with underscores or hyphens"
    return None


async def is_username_available(store: DocumentStore, username: str) -> bool:
    """True when no registry document exists for the lower-cased name."""
    return not await store.exists(username_path(username))
