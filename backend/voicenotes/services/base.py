"""Capability interface shared by the remote and local transcript stores."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from voicenotes.models.schemas import ContentRevision, Transcript, TranscriptOrigin


class TranscriptStore(ABC):
    """
    Base interface for transcript stores.

    Notes:
    - Every method is scoped to ``owner``.  An id that exists but belongs to
      a different owner is reported exactly like a missing id
      (:class:`~voicenotes.errors.NotFoundError`).
    - Implementations raise only :class:`~voicenotes.errors.TranscriptError`
      subclasses; backend-specific exceptions never escape.
    - Content is append-only: :meth:`add_revision` never overwrites.
    """

    origin: TranscriptOrigin

    @abstractmethod
    async def create_transcript(
        self,
        *,
        owner: Optional[str],
        title: str,
        language: str,
    ) -> Transcript:
        """Insert a transcript row without content and return it."""
        raise NotImplementedError

    @abstractmethod
    async def add_revision(self, transcript_id: str, owner: Optional[str], content: str) -> ContentRevision:
        raise NotImplementedError

    @abstractmethod
    async def touch(self, transcript_id: str, owner: Optional[str], updated_at: datetime) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, transcript_id: str, owner: Optional[str]) -> Transcript:
        """Return the transcript with its current (latest) content."""
        raise NotImplementedError

    @abstractmethod
    async def list(
        self,
        owner: Optional[str],
        *,
        deleted: Optional[bool] = False,
        all_owners: bool = False,
    ) -> List[Transcript]:
        """List transcripts, newest update first.

        ``deleted`` filters on trash state (``None`` returns both);
        ``all_owners`` drops the owner filter and is reserved for sweeps.
        """
        raise NotImplementedError

    @abstractmethod
    async def set_deleted_at(
        self,
        transcript_id: str,
        owner: Optional[str],
        deleted_at: Optional[datetime],
        *,
        updated_at: datetime,
    ) -> Transcript:
        raise NotImplementedError

    @abstractmethod
    async def set_title(
        self,
        transcript_id: str,
        owner: Optional[str],
        title: str,
        *,
        updated_at: datetime,
    ) -> Transcript:
        """Rename the transcript; no content revision is written."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, transcript_id: str, owner: Optional[str]) -> None:
        """Remove the transcript and every content revision."""
        raise NotImplementedError

    @abstractmethod
    async def list_revisions(self, transcript_id: str, owner: Optional[str]) -> List[ContentRevision]:
        """Full content history, newest first."""
        raise NotImplementedError
