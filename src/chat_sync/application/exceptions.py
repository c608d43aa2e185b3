from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    code = "app_error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    code = "not_found"


class UnknownConversationError(NotFoundError):
    """No conversation (or no participant record) for the given id."""

    code = "unknown_conversation"


class ForbiddenError(AppError):
    code = "forbidden"


class ConflictError(AppError):
    code = "conflict"


class ContentionError(ConflictError):
    """Sequence allocation could not commit within the retry budget.

    The caller must retry the whole append as a new attempt.
    """

    code = "contention"


class ValidationError(AppError):
    code = "invalid_data"


class GapReplayError(AppError):
    """Historical range could not be fully read; client state must be resynced."""

    code = "gap_replay_failed"

    def __init__(self, detail: str = "", *, conversation_id: str | None = None) -> None:
        super().__init__(detail)
        self.conversation_id = conversation_id


class InvariantViolation(AppError):
    """Allocator or reconciler invariant broken. Never corrected silently."""

    code = "invariant_violation"

    def __init__(self, detail: str = "", *, conversation_id: str | None = None) -> None:
        super().__init__(detail)
        self.conversation_id = conversation_id


class MediaUploadError(AppError):
    code = "media_upload_failed"
