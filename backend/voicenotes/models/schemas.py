"""Store-independent transcript types shared by the services and the API."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from voicenotes.utils.text import word_count


class TranscriptOrigin(str, Enum):
    """Which store holds the authoritative copy of a transcript."""

    LOCAL = "local"
    REMOTE = "remote"


class TranscriptState(str, Enum):
    ACTIVE = "ACTIVE"
    TRASHED = "TRASHED"
    PURGED = "PURGED"


class ContentRevision(BaseModel):
    id: str
    transcript_id: str
    content: str
    created_at: datetime


class Transcript(BaseModel):
    """A transcript together with its current content revision."""

    id: str
    title: str
    owner: Optional[str] = None
    language: str = "en-US"
    content: str = ""
    origin: TranscriptOrigin = TranscriptOrigin.LOCAL
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    @computed_field  # type: ignore[misc]
    @property
    def word_count(self) -> int:
        return word_count(self.content)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def state(self) -> TranscriptState:
        return TranscriptState.TRASHED if self.deleted_at is not None else TranscriptState.ACTIVE


class SaveResult(BaseModel):
    """Outcome of :meth:`PersistenceRouter.save`.

    ``location`` always tells the caller where the data ended up, so a
    degraded save can never be mistaken for a synced one.
    """

    success: bool
    transcript_id: Optional[str] = None
    location: TranscriptOrigin
    synced: bool
    auth_required: bool = False
    message: str

    @property
    def saved_locally(self) -> bool:
        return self.location is TranscriptOrigin.LOCAL


class BatchResult(BaseModel):
    """Aggregate outcome of a batch lifecycle operation."""

    requested: int = 0
    succeeded: int = 0
    failed: Dict[str, str] = Field(default_factory=dict)

    @property
    def failed_ids(self) -> List[str]:
        return list(self.failed)

    def summary(self, verb: str) -> str:
        noun = "transcript" if self.succeeded == 1 else "transcripts"
        text = f"{self.succeeded} {noun} {verb}"
        if self.failed:
            text += f", {len(self.failed)} failed"
        return text


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
