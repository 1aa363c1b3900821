"""Error taxonomy for transcript persistence.

Remote and local store failures are converted into one of these classes at
the store boundary; raw backend payloads are logged there and never travel
further.  ``detail`` is always safe to show to the user.
"""

from __future__ import annotations


class TranscriptError(Exception):
    """Domain-level base exception so we can map to JSON responses easily."""

    status_code: int = 500
    kind: str = "error"
    default_detail: str = "Transcript operation failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(TranscriptError):
    """Malformed input, rejected before any I/O and never retried."""

    status_code = 400
    kind = "validation"
    default_detail = "Invalid transcript request"


class AuthError(TranscriptError):
    """Absent or expired session.  The user can recover by signing in again."""

    status_code = 401
    kind = "auth"
    default_detail = "Invalid or expired authentication session"


class OwnerMismatchError(AuthError):
    status_code = 403
    default_detail = "You can only manage transcripts for your own account"


class NotFoundError(TranscriptError):
    """The id does not exist or belongs to somebody else."""

    status_code = 404
    kind = "not_found"
    default_detail = "Transcript not found"


class TransientError(TranscriptError):
    """Network or server fault that may succeed if retried."""

    status_code = 503
    kind = "transient"
    default_detail = "Transcript storage is temporarily unavailable"


class StoreError(TranscriptError):
    """Unclassified backend failure."""

    status_code = 500
    kind = "store"
    default_detail = "Transcript storage failed"


class CompensationFailure(TranscriptError):
    """Cleanup after a half-finished two-phase save failed.

    An empty transcript row may have been left behind in the remote store.
    """

    status_code = 500
    kind = "compensation"
    default_detail = "Saving failed and the partial transcript could not be cleaned up"

    def __init__(self, transcript_id: str, detail: str | None = None) -> None:
        super().__init__(detail)
        self.transcript_id = transcript_id
