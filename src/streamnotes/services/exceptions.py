"""Exceptions raised by the vault services."""


class StreamNotesError(Exception):
    """Base exception for streamnotes errors."""


class ItemNotFoundError(StreamNotesError):
    """Raised when an operation targets an id or handle that no longer exists."""


class NameCollisionError(StreamNotesError):
    """Raised when a name is already used by a sibling (case-insensitive)."""


class InvalidMoveError(StreamNotesError):
    """Raised when a reparent would create a cycle or target a non-folder."""


class InvalidUploadError(StreamNotesError):
    """Raised when an upload does not carry a recognized image extension."""


class PermissionDeniedError(StreamNotesError):
    """Raised when the backend grant is refused or revoked."""


class QuotaExceededError(StreamNotesError):
    """Raised when a persisted-mode write does not fit in the store."""


class UserCancelledError(StreamNotesError):
    """Raised when the user dismisses a picker or permission prompt.

    This is not a failure; callers swallow it without notifying.
    """


class BackendError(StreamNotesError):
    """Raised when a physical backend operation fails.

    The in-memory tree is left untouched when this is raised.
    """


class InvalidNameError(StreamNotesError):
    """Raised when a name is empty or contains a path separator."""
