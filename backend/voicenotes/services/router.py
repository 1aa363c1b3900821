"""Persistence router: decides which store holds each transcript.

Every "is there a remote copy?" decision lives here.  The lifecycle service
and the API only ever ask the router to :meth:`~PersistenceRouter.locate` a
transcript or to run a remote call with the retry policy.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from voicenotes.config import settings
from voicenotes.errors import (
    AuthError,
    CompensationFailure,
    NotFoundError,
    TranscriptError,
    TransientError,
    ValidationError,
)
from voicenotes.models.schemas import ContentRevision, SaveResult, Transcript, TranscriptOrigin
from voicenotes.models.transcript import utcnow
from voicenotes.services.auth import is_anonymous
from voicenotes.services.base import TranscriptStore
from voicenotes.services.cache import TranscriptCache
from voicenotes.services.local_store import LocalTranscriptStore
from voicenotes.services.retry import Sleep, with_retries
from voicenotes.utils.text import derive_title

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_TITLE_LENGTH = 255


def validate_content(content: Optional[str]) -> str:
    """Reject empty content before any I/O happens."""
    if content is None or not content.strip():
        raise ValidationError("Transcript content is required")
    return content.strip()


def validate_title(title: Optional[str]) -> str:
    if title is None or not title.strip():
        raise ValidationError("Title cannot be empty")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title is limited to {MAX_TITLE_LENGTH} characters")
    return title


class PersistenceRouter:
    """Routes saves, edits and reads to the remote or the local store."""

    def __init__(
        self,
        local: LocalTranscriptStore,
        remote: Optional[TranscriptStore] = None,
        cache: Optional[TranscriptCache] = None,
        *,
        retries: int = settings.SAVE_MAX_RETRIES,
        backoff: float = settings.SAVE_RETRY_BACKOFF_SECONDS,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        default_language: str = settings.DEFAULT_LANGUAGE,
    ) -> None:
        self.local = local
        self.remote = remote
        self.cache = cache if cache is not None else TranscriptCache(settings.CACHE_TTL_SECONDS)
        self.retries = retries
        self.backoff = backoff
        self.clock = clock
        self.default_language = default_language
        self._sleep = sleep

    def is_remote(self, store: TranscriptStore) -> bool:
        return self.remote is not None and store is self.remote

    async def call_remote(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        """Run ``operation`` under the bounded retry policy."""
        return await with_retries(
            operation,
            retries=self.retries,
            backoff=self.backoff,
            sleep=self._sleep,
            description=description,
        )

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    async def save(
        self,
        content: Optional[str],
        language: Optional[str] = None,
        owner_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> SaveResult:
        """Persist a new transcript.

        The result always says where the transcript ended up.  A save that
        had to degrade to the local store is flagged (``synced=False`` and,
        for session problems, ``auth_required=True``) instead of looking
        like a plain success.
        """
        text = validate_content(content)
        language = language or self.default_language
        title = (title or "").strip() or derive_title(text)

        remote = self.remote
        if is_anonymous(owner_id) or remote is None:
            record = await self._save_local(owner_id, title, language, text)
            return SaveResult(
                success=True,
                transcript_id=record.id,
                location=TranscriptOrigin.LOCAL,
                synced=False,
                message="Transcript saved locally (not synced)",
            )

        try:
            record = await self.call_remote(
                lambda: self._write_remote(remote, owner_id, title, language, text),
                description=f"save transcript for {owner_id}",
            )
        except AuthError as exc:
            logger.warning("Remote save rejected for %s (%s); keeping transcript locally", owner_id, exc.detail)
            record = await self._save_local(owner_id, title, language, text)
            return SaveResult(
                success=True,
                transcript_id=record.id,
                location=TranscriptOrigin.LOCAL,
                synced=False,
                auth_required=True,
                message="Session expired; transcript saved locally. Sign in again to sync it.",
            )
        except TransientError:
            logger.warning("Remote store unavailable for %s; falling back to local storage", owner_id)
            record = await self._save_local(owner_id, title, language, text)
            return SaveResult(
                success=True,
                transcript_id=record.id,
                location=TranscriptOrigin.LOCAL,
                synced=False,
                message="Transcript saved locally; it could not be synced right now",
            )

        await self.local.mirror(record)
        logger.info("Saved transcript %s for %s (%d words)", record.id, owner_id, record.word_count)
        return SaveResult(
            success=True,
            transcript_id=record.id,
            location=TranscriptOrigin.REMOTE,
            synced=True,
            message="Transcript saved successfully",
        )

    async def _write_remote(
        self,
        remote: TranscriptStore,
        owner_id: str,
        title: str,
        language: str,
        text: str,
    ) -> Transcript:
        """Two-phase write: transcript row first, then its first revision."""
        record = await remote.create_transcript(owner=owner_id, title=title, language=language)
        try:
            revision = await remote.add_revision(record.id, owner_id, text)
        except TranscriptError as exc:
            logger.error("Content write failed for new transcript %s: %s", record.id, exc.detail)
            await self._compensate(remote, record.id, owner_id)
            raise
        return record.model_copy(update={"content": revision.content})

    async def _compensate(self, remote: TranscriptStore, transcript_id: str, owner_id: str) -> None:
        try:
            await remote.delete(transcript_id, owner_id)
        except NotFoundError:
            logger.info("Orphaned transcript %s was already gone", transcript_id)
        except TranscriptError as exc:
            logger.critical(
                "Could not remove orphaned transcript %s for %s after a failed content write: %s",
                transcript_id,
                owner_id,
                exc.detail,
            )
            raise CompensationFailure(transcript_id) from exc
        else:
            logger.info("Removed orphaned transcript %s", transcript_id)

    async def _save_local(self, owner_id: Optional[str], title: str, language: str, text: str) -> Transcript:
        record = await self.local.create_transcript(owner=owner_id, title=title, language=language)
        await self.local.add_revision(record.id, owner_id, text)
        logger.info("Saved transcript %s locally (owner=%s)", record.id, owner_id)
        return record.model_copy(update={"content": text})

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    async def update(self, transcript_id: str, new_content: Optional[str], owner_id: Optional[str] = None) -> Transcript:
        """Append a new content revision and bump ``updated_at``."""
        text = validate_content(new_content)
        store, record = await self.locate(transcript_id, owner_id)
        now = self.clock()

        # A write that fails halfway may already have landed, so the cached
        # copy goes either way.
        try:
            if self.is_remote(store):
                await self.call_remote(
                    lambda: store.add_revision(transcript_id, owner_id, text),
                    description=f"update transcript {transcript_id}",
                )
                await self.call_remote(
                    lambda: store.touch(transcript_id, owner_id, now),
                    description=f"touch transcript {transcript_id}",
                )
                updated = record.model_copy(update={"content": text, "updated_at": now})
                await self.local.mirror(updated)
            else:
                await store.add_revision(transcript_id, owner_id, text)
                await store.touch(transcript_id, owner_id, now)
                updated = await store.get(transcript_id, owner_id)
        finally:
            self.cache.invalidate(transcript_id)

        logger.info("Updated transcript %s (%d words)", transcript_id, updated.word_count)
        return updated

    async def rename(self, transcript_id: str, title: Optional[str], owner_id: Optional[str] = None) -> Transcript:
        """Change the display title and bump ``updated_at``.  Content is untouched."""
        new_title = validate_title(title)
        store, _ = await self.locate(transcript_id, owner_id)
        now = self.clock()

        try:
            if self.is_remote(store):
                updated = await self.call_remote(
                    lambda: store.set_title(transcript_id, owner_id, new_title, updated_at=now),
                    description=f"rename transcript {transcript_id}",
                )
                await self.local.mirror(updated)
            else:
                updated = await store.set_title(transcript_id, owner_id, new_title, updated_at=now)
        finally:
            self.cache.invalidate(transcript_id)

        logger.info("Renamed transcript %s", transcript_id)
        return updated

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def locate(self, transcript_id: str, owner_id: Optional[str]) -> Tuple[TranscriptStore, Transcript]:
        """Find the authoritative store and current state of a transcript."""
        local_copy = await self.local.find(transcript_id, owner_id)
        if local_copy is not None and local_copy.origin is TranscriptOrigin.LOCAL:
            return self.local, local_copy

        if is_anonymous(owner_id) or self.remote is None:
            if local_copy is not None:
                return self.local, local_copy
            raise NotFoundError()

        remote = self.remote
        try:
            record = await self.call_remote(
                lambda: remote.get(transcript_id, owner_id),
                description=f"fetch transcript {transcript_id}",
            )
        except NotFoundError:
            if local_copy is not None:
                await self.local.discard(transcript_id, owner_id)
                logger.info("Dropped stale local mirror of transcript %s", transcript_id)
            raise
        return remote, record

    async def get(self, transcript_id: str, owner_id: Optional[str]) -> Transcript:
        """Fetch one transcript through the read-through cache."""
        cached = self.cache.peek(transcript_id)
        if cached is not None and cached.owner != owner_id:
            raise NotFoundError()

        async def fetch() -> Transcript:
            store, record = await self.locate(transcript_id, owner_id)
            if self.is_remote(store):
                await self.local.mirror(record)
            return record

        try:
            return await self.cache.get(transcript_id, fetch)
        except TransientError:
            mirror = await self.local.find(transcript_id, owner_id)
            if mirror is None:
                raise
            logger.warning("Remote store unavailable; serving local copy of transcript %s", transcript_id)
            return mirror

    async def list_transcripts(self, owner_id: Optional[str], *, deleted: Optional[bool] = False) -> List[Transcript]:
        """Remote transcripts plus local-only ones, newest update first."""
        local_rows = await self.local.list(owner_id, deleted=deleted)
        if is_anonymous(owner_id) or self.remote is None:
            return local_rows

        remote = self.remote
        try:
            remote_rows = await self.call_remote(
                lambda: remote.list(owner_id, deleted=deleted),
                description=f"list transcripts for {owner_id}",
            )
        except TransientError:
            logger.warning("Remote store unavailable; listing local copies for %s", owner_id)
            return local_rows

        remote_ids = {row.id for row in remote_rows}
        for row in remote_rows:
            await self.local.mirror(row)
        if deleted is None:
            # Only a full listing proves that a mirrored transcript is gone.
            for row in local_rows:
                if row.origin is TranscriptOrigin.REMOTE and row.id not in remote_ids:
                    await self.local.discard(row.id, owner_id)

        local_only = [row for row in local_rows if row.origin is TranscriptOrigin.LOCAL]
        return sorted(remote_rows + local_only, key=lambda row: row.updated_at, reverse=True)

    async def list_revisions(self, transcript_id: str, owner_id: Optional[str]) -> List[ContentRevision]:
        store, _ = await self.locate(transcript_id, owner_id)
        if self.is_remote(store):
            return await self.call_remote(
                lambda: store.list_revisions(transcript_id, owner_id),
                description=f"list revisions of {transcript_id}",
            )
        return await store.list_revisions(transcript_id, owner_id)
