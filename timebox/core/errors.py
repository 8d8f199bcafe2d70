"""Error taxonomy for the sheet sync core."""

from __future__ import annotations


class TimeboxError(Exception):
    """Base class for sync core errors."""


class ReadFailure(TimeboxError):
    """A remote fetch could not complete. Nothing was cached."""


class WriteFailure(TimeboxError):
    """A remote create/update/delete could not complete.

    Cache entries touched by the optimistic path have been invalidated,
    so the next read reconciles with the remote store.
    """


class NotAuthenticated(TimeboxError):
    """An operation was invoked without a resolved user id."""


class PreloadFailure(TimeboxError):
    """Best-effort cache warming failed. Logged, never propagated."""


def require_user(user_id: str | None) -> str:
    """Fail fast, before touching cache or store, if there is no user."""
    if not user_id:
        raise NotAuthenticated("User not authenticated")
    return user_id
