from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .models.validation import ValidationError


class ContentSyncError(Exception):
    """Base class for every error raised by the sync engine."""


class NetworkError(ContentSyncError):
    """Transient failure talking to the repository (timeout, 5xx, rate limit)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(ContentSyncError):
    """The credential was rejected; the operation needs re-authentication."""


class MissingTokenError(AuthError):
    """No credential was supplied. Never retried."""


class NotFoundError(ContentSyncError):
    """Branch, file or repository does not exist."""


class ConflictError(ContentSyncError):
    """Branch or file already exists, or the write diverged from the remote."""


class CacheCorruptionError(ContentSyncError):
    """A persisted cache record could not be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupt cache entry {key!r}: {reason}")
        self.key = key
        self.reason = reason


class InvalidItemKeyError(ContentSyncError):
    """A page id that cannot be mapped to a repository path."""


class ValidationFailedError(ContentSyncError):
    """Raised at the HTTP boundary when a write is blocked by validation."""

    def __init__(self, errors: Sequence["ValidationError"]) -> None:
        super().__init__(f"{len(errors)} validation error(s)")
        self.errors = list(errors)


__all__ = [
    "ContentSyncError",
    "NetworkError",
    "AuthError",
    "MissingTokenError",
    "NotFoundError",
    "ConflictError",
    "CacheCorruptionError",
    "InvalidItemKeyError",
    "ValidationFailedError",
]
