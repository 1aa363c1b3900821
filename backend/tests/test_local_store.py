from datetime import datetime, timezone

import pytest

from voicenotes.errors import NotFoundError
from voicenotes.models.schemas import Transcript, TranscriptOrigin
from voicenotes.models.transcript import LocalTranscriptContent

from tests.helpers import FakeClock, make_local_store


async def _create(store, owner="u1", content="hello world"):
    record = await store.create_transcript(owner=owner, title="Note", language="en-US")
    await store.add_revision(record.id, owner, content)
    return record


@pytest.mark.asyncio
async def test_create_and_get_returns_current_content():
    store = make_local_store(FakeClock())
    record = await _create(store)

    fetched = await store.get(record.id, "u1")

    assert fetched.content == "hello world"
    assert fetched.word_count == 2
    assert fetched.origin is TranscriptOrigin.LOCAL
    assert fetched.deleted_at is None
    assert fetched.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_other_owner_cannot_see_record():
    store = make_local_store(FakeClock())
    record = await _create(store, owner="u1")

    with pytest.raises(NotFoundError):
        await store.get(record.id, "u2")
    with pytest.raises(NotFoundError):
        await store.get(record.id, None)
    assert await store.find(record.id, "u2") is None


@pytest.mark.asyncio
async def test_anonymous_records_are_kept_apart():
    store = make_local_store(FakeClock())
    anon = await _create(store, owner=None, content="anonymous note")
    await _create(store, owner="u1")

    rows = await store.list(None)

    assert [row.id for row in rows] == [anon.id]


@pytest.mark.asyncio
async def test_revisions_are_append_only_and_latest_wins():
    clock = FakeClock()
    store = make_local_store(clock)
    record = await _create(store, content="first draft")
    clock.advance(minutes=1)
    await store.add_revision(record.id, "u1", "second draft")

    fetched = await store.get(record.id, "u1")
    history = await store.list_revisions(record.id, "u1")

    assert fetched.content == "second draft"
    assert [rev.content for rev in history] == ["second draft", "first draft"]


@pytest.mark.asyncio
async def test_same_timestamp_revisions_resolve_by_insertion_order():
    store = make_local_store(FakeClock())
    record = await _create(store, content="one")
    await store.add_revision(record.id, "u1", "two")

    assert (await store.get(record.id, "u1")).content == "two"


@pytest.mark.asyncio
async def test_list_filters_on_trash_state():
    clock = FakeClock()
    store = make_local_store(clock)
    active = await _create(store)
    trashed = await _create(store)
    await store.set_deleted_at(trashed.id, "u1", clock(), updated_at=clock())

    assert [r.id for r in await store.list("u1")] == [active.id]
    assert [r.id for r in await store.list("u1", deleted=True)] == [trashed.id]
    assert {r.id for r in await store.list("u1", deleted=None)} == {active.id, trashed.id}


@pytest.mark.asyncio
async def test_delete_removes_every_revision():
    store = make_local_store(FakeClock())
    record = await _create(store)
    await store.add_revision(record.id, "u1", "edited")

    await store.delete(record.id, "u1")

    with pytest.raises(NotFoundError):
        await store.get(record.id, "u1")
    db = store._session_factory()
    try:
        remaining = db.query(LocalTranscriptContent).filter(LocalTranscriptContent.transcript_id == record.id).count()
    finally:
        db.close()
    assert remaining == 0


@pytest.mark.asyncio
async def test_mirror_upserts_and_appends_only_changed_content():
    store = make_local_store(FakeClock())
    now = datetime(2024, 2, 1, tzinfo=timezone.utc)
    remote = Transcript(
        id="remote-1",
        title="Synced",
        owner="u1",
        content="from the server",
        origin=TranscriptOrigin.REMOTE,
        created_at=now,
        updated_at=now,
    )

    await store.mirror(remote)
    await store.mirror(remote)
    await store.mirror(remote.model_copy(update={"content": "edited on another device"}))

    fetched = await store.get("remote-1", "u1")
    assert fetched.origin is TranscriptOrigin.REMOTE
    assert fetched.content == "edited on another device"
    assert len(await store.list_revisions("remote-1", "u1")) == 2


@pytest.mark.asyncio
async def test_discard_is_scoped_and_silent():
    store = make_local_store(FakeClock())
    record = await _create(store)

    assert await store.discard(record.id, "u2") is False
    assert await store.discard("missing", "u1") is False
    assert await store.discard(record.id, "u1") is True


@pytest.mark.asyncio
async def test_set_title_keeps_content_and_bumps_updated_at():
    clock = FakeClock()
    store = make_local_store(clock)
    record = await _create(store)
    clock.advance(hours=1)

    renamed = await store.set_title(record.id, "u1", "Renamed", updated_at=clock())

    assert renamed.title == "Renamed"
    assert renamed.content == "hello world"
    assert renamed.updated_at == clock()
    with pytest.raises(NotFoundError):
        await store.set_title(record.id, "u2", "Nope", updated_at=clock())
