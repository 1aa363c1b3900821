"""SQLAlchemy-backed local fallback store.

Keeps local-only transcripts (anonymous use, or saves that could not reach
the remote store) and mirrors of every remote transcript this client has
seen, so the local store is a superset of what the user can read offline.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from voicenotes.db.database import SessionLocal
from voicenotes.errors import NotFoundError, StoreError
from voicenotes.models.schemas import ContentRevision, Transcript, TranscriptOrigin, ensure_utc
from voicenotes.models.transcript import LocalTranscript, LocalTranscriptContent, utcnow
from voicenotes.services.base import TranscriptStore

logger = logging.getLogger(__name__)


def time_based_id() -> str:
    return uuid.uuid1().hex


def _current_revision(row: LocalTranscript) -> Optional[LocalTranscriptContent]:
    if not row.revisions:
        return None
    return max(row.revisions, key=lambda rev: (ensure_utc(rev.created_at), rev.seq))


def _to_revision(rev: LocalTranscriptContent) -> ContentRevision:
    return ContentRevision(
        id=str(rev.seq),
        transcript_id=rev.transcript_id,
        content=rev.content,
        created_at=ensure_utc(rev.created_at),
    )


def _to_transcript(row: LocalTranscript) -> Transcript:
    current = _current_revision(row)
    return Transcript(
        id=row.id,
        title=row.title,
        owner=row.owner,
        language=row.language,
        content=current.content if current else "",
        origin=TranscriptOrigin(row.origin),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        deleted_at=ensure_utc(row.deleted_at),
    )


class LocalTranscriptStore(TranscriptStore):
    """Local store.  Operations are synchronous SQLAlchemy work wrapped in
    coroutines so the store satisfies the same interface as the remote one."""

    origin = TranscriptOrigin.LOCAL

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = time_based_id,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._id_factory = id_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Local store failure: %s", exc, exc_info=True)
            raise StoreError("Local transcript storage failed") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _owned_row(db: Session, transcript_id: str, owner: Optional[str]) -> LocalTranscript:
        row = db.query(LocalTranscript).filter(LocalTranscript.id == transcript_id).first()
        if row is None or row.owner != owner:
            raise NotFoundError()
        return row

    async def create_transcript(
        self,
        *,
        owner: Optional[str],
        title: str,
        language: str,
    ) -> Transcript:
        now = self._clock()
        with self._session() as db:
            row = LocalTranscript(
                id=self._id_factory(),
                title=title,
                owner=owner,
                language=language,
                origin=TranscriptOrigin.LOCAL.value,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.flush()
            result = _to_transcript(row)
        logger.debug("Created local transcript %s (owner=%s)", result.id, owner)
        return result

    async def add_revision(self, transcript_id: str, owner: Optional[str], content: str) -> ContentRevision:
        with self._session() as db:
            self._owned_row(db, transcript_id, owner)
            rev = LocalTranscriptContent(transcript_id=transcript_id, content=content, created_at=self._clock())
            db.add(rev)
            db.flush()
            return _to_revision(rev)

    async def touch(self, transcript_id: str, owner: Optional[str], updated_at: datetime) -> None:
        with self._session() as db:
            row = self._owned_row(db, transcript_id, owner)
            row.updated_at = updated_at

    async def get(self, transcript_id: str, owner: Optional[str]) -> Transcript:
        with self._session() as db:
            return _to_transcript(self._owned_row(db, transcript_id, owner))

    async def find(self, transcript_id: str, owner: Optional[str]) -> Optional[Transcript]:
        """Like :meth:`get` but returns ``None`` instead of raising."""
        try:
            return await self.get(transcript_id, owner)
        except NotFoundError:
            return None

    async def list(
        self,
        owner: Optional[str],
        *,
        deleted: Optional[bool] = False,
        all_owners: bool = False,
        origin: Optional[TranscriptOrigin] = None,
    ) -> List[Transcript]:
        with self._session() as db:
            query = db.query(LocalTranscript)
            if not all_owners:
                if owner is None:
                    query = query.filter(LocalTranscript.owner.is_(None))
                else:
                    query = query.filter(LocalTranscript.owner == owner)
            if deleted is True:
                query = query.filter(LocalTranscript.deleted_at.isnot(None))
            elif deleted is False:
                query = query.filter(LocalTranscript.deleted_at.is_(None))
            if origin is not None:
                query = query.filter(LocalTranscript.origin == origin.value)
            rows = query.order_by(LocalTranscript.updated_at.desc()).all()
            return [_to_transcript(row) for row in rows]

    async def set_deleted_at(
        self,
        transcript_id: str,
        owner: Optional[str],
        deleted_at: Optional[datetime],
        *,
        updated_at: datetime,
    ) -> Transcript:
        with self._session() as db:
            row = self._owned_row(db, transcript_id, owner)
            row.deleted_at = deleted_at
            row.updated_at = updated_at
            db.flush()
            return _to_transcript(row)

    async def set_title(
        self,
        transcript_id: str,
        owner: Optional[str],
        title: str,
        *,
        updated_at: datetime,
    ) -> Transcript:
        with self._session() as db:
            row = self._owned_row(db, transcript_id, owner)
            row.title = title
            row.updated_at = updated_at
            db.flush()
            return _to_transcript(row)

    async def delete(self, transcript_id: str, owner: Optional[str]) -> None:
        with self._session() as db:
            row = self._owned_row(db, transcript_id, owner)
            db.delete(row)
        logger.debug("Deleted local transcript %s", transcript_id)

    async def list_revisions(self, transcript_id: str, owner: Optional[str]) -> List[ContentRevision]:
        with self._session() as db:
            row = self._owned_row(db, transcript_id, owner)
            ordered = sorted(row.revisions, key=lambda rev: (ensure_utc(rev.created_at), rev.seq), reverse=True)
            return [_to_revision(rev) for rev in ordered]

    # ------------------------------------------------------------------
    # Mirror maintenance
    # ------------------------------------------------------------------

    async def mirror(self, transcript: Transcript) -> None:
        """Upsert a remote transcript so it stays readable offline.

        A new revision is appended only when the content differs from the
        mirror's current content.
        """
        with self._session() as db:
            row = db.query(LocalTranscript).filter(LocalTranscript.id == transcript.id).first()
            if row is None:
                row = LocalTranscript(id=transcript.id, created_at=transcript.created_at)
                db.add(row)
            row.title = transcript.title
            row.owner = transcript.owner
            row.language = transcript.language
            row.origin = TranscriptOrigin.REMOTE.value
            row.updated_at = transcript.updated_at
            row.deleted_at = transcript.deleted_at
            db.flush()
            current = _current_revision(row)
            if current is None or current.content != transcript.content:
                row.revisions.append(
                    LocalTranscriptContent(content=transcript.content, created_at=transcript.updated_at)
                )

    async def discard(self, transcript_id: str, owner: Optional[str]) -> bool:
        """Drop a mirror if present.  Returns whether anything was removed."""
        with self._session() as db:
            row = db.query(LocalTranscript).filter(LocalTranscript.id == transcript_id).first()
            if row is None or row.owner != owner:
                return False
            db.delete(row)
            return True
