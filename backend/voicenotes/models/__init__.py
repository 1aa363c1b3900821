# Namespace for Pydantic & ORM models.
from .schemas import (
    BatchResult,
    ContentRevision,
    SaveResult,
    Transcript,
    TranscriptOrigin,
    TranscriptState,
)
from .transcript import LocalTranscript, LocalTranscriptContent

__all__ = [
    "BatchResult",
    "ContentRevision",
    "LocalTranscript",
    "LocalTranscriptContent",
    "SaveResult",
    "Transcript",
    "TranscriptOrigin",
    "TranscriptState",
]
