"""Shared test doubles: fake clocks, in-memory stores and a stand-in remote store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from sqlalchemy.orm import sessionmaker

from voicenotes.db.base import Base
from voicenotes.db.database import build_engine
from voicenotes.models.schemas import Transcript, TranscriptOrigin
from voicenotes.services.cache import TranscriptCache
from voicenotes.services.lifecycle import TranscriptLifecycle
from voicenotes.services.local_store import LocalTranscriptStore
from voicenotes.services.router import PersistenceRouter

START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock for datetimes that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def session_factory():
    import voicenotes.models  # noqa: F401  registers the tables

    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def make_local_store(clock: FakeClock) -> LocalTranscriptStore:
    return LocalTranscriptStore(session_factory(), clock=clock)


def _as_remote(record: Transcript) -> Transcript:
    return record.model_copy(update={"origin": TranscriptOrigin.REMOTE})


class FakeRemoteStore(LocalTranscriptStore):
    """Remote store double backed by its own in-memory database.

    Tests replace individual coroutine methods with ``AsyncMock`` objects to
    inject failures.
    """

    origin = TranscriptOrigin.REMOTE

    def __init__(self, clock: FakeClock, service_role: bool = False) -> None:
        super().__init__(session_factory(), clock=clock)
        self.service_role = service_role

    async def create_transcript(self, *, owner, title, language):
        return _as_remote(await super().create_transcript(owner=owner, title=title, language=language))

    async def get(self, transcript_id, owner):
        return _as_remote(await super().get(transcript_id, owner))

    async def list(self, owner, *, deleted=False, all_owners=False, origin=None):
        rows = await super().list(owner, deleted=deleted, all_owners=all_owners)
        return [_as_remote(row) for row in rows]

    async def set_deleted_at(self, transcript_id, owner, deleted_at, *, updated_at):
        return _as_remote(await super().set_deleted_at(transcript_id, owner, deleted_at, updated_at=updated_at))

    async def set_title(self, transcript_id, owner, title, *, updated_at):
        return _as_remote(await super().set_title(transcript_id, owner, title, updated_at=updated_at))


def build_services(clock: FakeClock, *, remote: bool = True, cache_clock: FakeMonotonic | None = None):
    """Router + lifecycle wired to in-memory stores and a no-op sleep."""
    local = make_local_store(clock)
    remote_store = FakeRemoteStore(clock) if remote else None
    cache = TranscriptCache(ttl_seconds=300, clock=cache_clock or FakeMonotonic())
    sleep = AsyncMock()
    router = PersistenceRouter(local, remote_store, cache, retries=2, backoff=1.0, sleep=sleep, clock=clock)
    lifecycle = TranscriptLifecycle(router, retention=timedelta(days=30))
    return router, lifecycle, sleep
