"""Domain error taxonomy.

Every error carries a stable ``kind`` string and the HTTP status the global
handler maps it to. Store-level conflicts (``StoreConflict``) stay internal:
the awarding policy retries them and surfaces ``ConflictExhausted`` instead.
"""

from __future__ import annotations


class ProgressError(Exception):
    """Base class for errors surfaced to API callers."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message or (self.__class__.__doc__ or self.kind).strip()


# --- NotFound ---


class NotFound(ProgressError):
    """Resource not found."""

    kind = "not_found"
    status_code = 404


class UserNotFound(NotFound):
    """User not found."""

    kind = "user_not_found"


class ProblemNotFound(NotFound):
    """Problem not found."""

    kind = "problem_not_found"

    def __init__(self, slug: str) -> None:
        super().__init__(f"Problem not found: {slug}")
        self.slug = slug


# --- Conflict ---


class Conflict(ProgressError):
    """Conflicting concurrent update."""

    kind = "conflict"
    status_code = 409


class ConflictExhausted(Conflict):
    """Progress update kept conflicting with concurrent writers."""

    kind = "conflict_exhausted"


class DisplayNameTaken(Conflict):
    """Display name already taken."""

    kind = "display_name_taken"


# --- Unauthenticated ---


class Unauthenticated(ProgressError):
    """Authentication required."""

    kind = "unauthenticated"
    status_code = 401


class IdentityUnavailable(Unauthenticated):
    """External identity could not be established."""

    kind = "identity_unavailable"


# --- Validation ---


class ProgressValidationError(ProgressError):
    """Invalid request."""

    kind = "validation_error"
    status_code = 400


class DisplayNameCooldown(ProgressValidationError):
    """Display name was changed too recently."""

    kind = "rate_limited"
    status_code = 429


# --- Store internals ---


class StoreConflict(Exception):
    """Raised by a progress store when a transaction lost a race and can be retried."""
