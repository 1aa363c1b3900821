"""Transcript lifecycle: Active -> Trashed -> Purged.

Transitions
-----------
* ``soft_delete``: Active -> Trashed (no-op when already trashed; the
  original ``deleted_at`` is kept so retention is never extended).
* ``restore``: Trashed -> Active (no-op when already active).  A trashed
  transcript past the retention window is purged instead and reported as
  not found.
* ``permanent_delete``: Active or Trashed -> Purged.
* retention sweep: Trashed for longer than the retention window -> Purged.
  Runs lazily on every trash listing and on the scheduled worker sweep.

Every transition is scoped to the requesting owner and evicts the cached
copy of the transcript.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional

from voicenotes.config import settings
from voicenotes.errors import NotFoundError, TranscriptError
from voicenotes.models.schemas import BatchResult, Transcript, TranscriptOrigin, TranscriptState
from voicenotes.services.base import TranscriptStore
from voicenotes.services.router import PersistenceRouter

logger = logging.getLogger(__name__)


class TranscriptLifecycle:
    """State machine for soft delete, restore and purge."""

    def __init__(
        self,
        router: PersistenceRouter,
        *,
        retention: timedelta = timedelta(days=settings.TRASH_RETENTION_DAYS),
    ) -> None:
        self.router = router
        self.retention = retention

    @property
    def clock(self) -> Callable[[], datetime]:
        return self.router.clock

    # ------------------------------------------------------------------
    # Retention helpers
    # ------------------------------------------------------------------

    def is_expired(self, record: Transcript, now: Optional[datetime] = None) -> bool:
        if record.deleted_at is None:
            return False
        now = now or self.clock()
        return now - record.deleted_at > self.retention

    def days_remaining(self, record: Transcript, now: Optional[datetime] = None) -> int:
        """Whole days left before a trashed transcript is purged."""
        if record.deleted_at is None:
            return self.retention.days
        now = now or self.clock()
        left = (record.deleted_at + self.retention - now).total_seconds() / 86400
        return max(0, math.ceil(left))

    def state_of(self, record: Optional[Transcript]) -> TranscriptState:
        if record is None:
            return TranscriptState.PURGED
        return record.state

    # ------------------------------------------------------------------
    # Store plumbing
    # ------------------------------------------------------------------

    async def _run(self, store: TranscriptStore, operation: Callable[[], Awaitable], description: str):
        if self.router.is_remote(store):
            return await self.router.call_remote(operation, description=description)
        return await operation()

    async def _set_deleted_at(
        self,
        store: TranscriptStore,
        record: Transcript,
        deleted_at: Optional[datetime],
        now: datetime,
    ) -> Transcript:
        updated = await self._run(
            store,
            lambda: store.set_deleted_at(record.id, record.owner, deleted_at, updated_at=now),
            description=f"update trash state of {record.id}",
        )
        if self.router.is_remote(store):
            await self.router.local.mirror(updated)
        self.router.cache.invalidate(record.id)
        return updated

    async def _purge(self, store: TranscriptStore, record: Transcript) -> None:
        try:
            await self._run(
                store,
                lambda: store.delete(record.id, record.owner),
                description=f"delete transcript {record.id}",
            )
        finally:
            self.router.cache.invalidate(record.id)
        if self.router.is_remote(store):
            await self.router.local.discard(record.id, record.owner)

    # ------------------------------------------------------------------
    # Single-item transitions
    # ------------------------------------------------------------------

    async def soft_delete(self, transcript_id: str, owner_id: Optional[str]) -> Transcript:
        """Move a transcript to the trash."""
        store, record = await self.router.locate(transcript_id, owner_id)
        if record.deleted_at is not None:
            logger.debug("Transcript %s is already in the trash", transcript_id)
            return record
        now = self.clock()
        updated = await self._set_deleted_at(store, record, now, now)
        logger.info("Moved transcript %s to trash", transcript_id)
        return updated

    async def restore(self, transcript_id: str, owner_id: Optional[str]) -> Transcript:
        """Bring a transcript back from the trash."""
        store, record = await self.router.locate(transcript_id, owner_id)
        if record.deleted_at is None:
            logger.debug("Transcript %s is not in the trash", transcript_id)
            return record
        now = self.clock()
        if self.is_expired(record, now):
            await self._purge(store, record)
            logger.info("Transcript %s expired in the trash and was purged instead of restored", transcript_id)
            raise NotFoundError("Transcript was in the trash for too long and has been deleted")
        updated = await self._set_deleted_at(store, record, None, now)
        logger.info("Restored transcript %s from trash", transcript_id)
        return updated

    async def permanent_delete(self, transcript_id: str, owner_id: Optional[str]) -> None:
        """Delete a transcript and its history, trashed or not."""
        store, record = await self.router.locate(transcript_id, owner_id)
        await self._purge(store, record)
        logger.info("Permanently deleted transcript %s (was %s)", transcript_id, record.state.value)

    # ------------------------------------------------------------------
    # Batch transitions
    # ------------------------------------------------------------------

    async def _batch(
        self,
        transcript_ids: Iterable[str],
        owner_id: Optional[str],
        operation: Callable[[str, Optional[str]], Awaitable],
        verb: str,
    ) -> BatchResult:
        result = BatchResult()
        # dict.fromkeys drops duplicates while keeping order
        for transcript_id in dict.fromkeys(transcript_ids):
            result.requested += 1
            try:
                await operation(transcript_id, owner_id)
            except TranscriptError as exc:
                result.failed[transcript_id] = exc.kind
                logger.warning("Could not %s transcript %s: %s", verb, transcript_id, exc.detail)
            else:
                result.succeeded += 1
        logger.info("Batch %s for %s: %s", verb, owner_id, result.summary(verb))
        return result

    async def restore_many(self, transcript_ids: Iterable[str], owner_id: Optional[str]) -> BatchResult:
        return await self._batch(transcript_ids, owner_id, self.restore, "restored")

    async def permanent_delete_many(self, transcript_ids: Iterable[str], owner_id: Optional[str]) -> BatchResult:
        return await self._batch(transcript_ids, owner_id, self.permanent_delete, "permanently deleted")

    async def empty_trash(self, owner_id: Optional[str]) -> BatchResult:
        trashed = await self.router.list_transcripts(owner_id, deleted=True)
        return await self.permanent_delete_many([record.id for record in trashed], owner_id)

    # ------------------------------------------------------------------
    # Trash listing & retention
    # ------------------------------------------------------------------

    async def list_trash(self, owner_id: Optional[str]) -> List[Transcript]:
        """Trashed transcripts that can still be restored.

        Expired entries are purged first; if a purge fails the entry is still
        left out of the listing.
        """
        trashed = await self.router.list_transcripts(owner_id, deleted=True)
        now = self.clock()
        expired = [record for record in trashed if self.is_expired(record, now)]
        if expired:
            await self._purge_expired(expired)
        return [record for record in trashed if not self.is_expired(record, now)]

    async def sweep_expired(self, owner_id: Optional[str] = None, *, all_owners: bool = False) -> int:
        """Purge every trashed transcript past retention.  Returns the count."""
        now = self.clock()
        if all_owners:
            candidates = await self._all_trashed()
        else:
            candidates = await self.router.list_transcripts(owner_id, deleted=True)
        expired = [record for record in candidates if self.is_expired(record, now)]
        purged = await self._purge_expired(expired)
        if purged:
            logger.info("Retention sweep purged %d transcript(s)", purged)
        return purged

    async def _all_trashed(self) -> List[Transcript]:
        local_rows = await self.router.local.list(None, deleted=True, all_owners=True)
        remote = self.router.remote
        if remote is None or not getattr(remote, "service_role", False):
            return local_rows
        remote_rows = await self.router.call_remote(
            lambda: remote.list(None, deleted=True, all_owners=True),
            description="list trashed transcripts",
        )
        remote_ids = {row.id for row in remote_rows}
        return remote_rows + [row for row in local_rows if row.id not in remote_ids]

    async def _purge_expired(self, records: List[Transcript]) -> int:
        purged = 0
        for record in records:
            store = self._store_for(record)
            try:
                await self._purge(store, record)
            except NotFoundError:
                await self.router.local.discard(record.id, record.owner)
                purged += 1
            except TranscriptError as exc:
                logger.error("Retention purge of transcript %s failed: %s", record.id, exc.detail)
            else:
                purged += 1
        return purged

    def _store_for(self, record: Transcript) -> TranscriptStore:
        if record.origin is TranscriptOrigin.REMOTE and self.router.remote is not None:
            return self.router.remote
        return self.router.local
