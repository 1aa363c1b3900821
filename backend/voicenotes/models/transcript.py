"""ORM models for the local fallback store."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from voicenotes.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalTranscript(Base):
    """
    A transcript persisted outside the remote store.

    Holds both local-only transcripts (``origin == "local"``, possibly
    anonymous) and mirrors of remote transcripts (``origin == "remote"``) so
    that previously seen records stay readable while offline.
    """
    __tablename__ = "local_transcripts"

    id = Column(String(64), primary_key=True, comment="Client-generated id for local records, server id for mirrors.")
    title = Column(String(255), nullable=False, comment="Display label; derived from the content when not supplied.")
    owner = Column(String(64), nullable=True, index=True, comment="Authenticated user id; NULL for anonymous records.")
    language = Column(String(35), nullable=False, default="en-US", comment="Recognition locale that produced the text.")
    origin = Column(String(16), nullable=False, default="local", comment="Which store is authoritative: 'local' or 'remote'.")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True, comment="Set when moved to trash; NULL means active.")

    revisions = relationship(
        "LocalTranscriptContent",
        back_populates="transcript",
        cascade="all, delete-orphan",
        order_by="LocalTranscriptContent.seq",
    )


class LocalTranscriptContent(Base):
    """One append-only content revision of a local transcript."""
    __tablename__ = "local_transcript_contents"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    transcript_id = Column(
        String(64),
        ForeignKey("local_transcripts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    transcript = relationship("LocalTranscript", back_populates="revisions")
