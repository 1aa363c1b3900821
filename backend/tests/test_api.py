from typing import Optional
from unittest.mock import AsyncMock

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from voicenotes.api.dependencies import CLIENT_ID_COOKIE, bearer_token, get_identity, get_router
from voicenotes.errors import AuthError, StoreError
from voicenotes.main import app
from voicenotes.services.auth import Identity

from tests.helpers import FakeClock, build_services

client = TestClient(app)

U1 = {"Authorization": "Bearer u1"}
U2 = {"Authorization": "Bearer u2"}


def _identity_from_token(token: Optional[str] = Depends(bearer_token)) -> Optional[Identity]:
    # Tests use the user id itself as the bearer token.
    return Identity(user_id=token) if token else None


@pytest.fixture
def services():
    clock = FakeClock()
    router, lifecycle, sleep = build_services(clock)
    app.dependency_overrides[get_router] = lambda: router
    app.dependency_overrides[get_identity] = _identity_from_token
    yield router, clock
    app.dependency_overrides.clear()


def _save(text="Hello world this is a test", headers=U1, owner="u1"):
    return client.post("/api/save-transcript", json={"transcript": text, "userId": owner}, headers=headers)


def test_save_transcript_success(services):
    response = _save()

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["savedLocally"] is False
    assert body["message"] == "Transcript saved successfully"
    assert body["transcriptId"]


def test_save_transcript_requires_content(services):
    response = _save(text="   ")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["kind"] == "validation"
    assert body["errorMessage"] == "Transcript content is required"


def test_save_transcript_requires_owner_id(services):
    response = client.post("/api/save-transcript", json={"content": "words"}, headers=U1)

    assert response.status_code == 400
    assert response.json()["errorMessage"] == "User ID is required"


def test_save_transcript_requires_session(services):
    response = _save(headers={})

    assert response.status_code == 401
    assert response.json()["kind"] == "auth"


def test_save_transcript_rejects_other_owner(services):
    response = _save(headers=U2, owner="u1")

    assert response.status_code == 403
    assert response.json()["kind"] == "auth"


def test_save_with_expired_session_keeps_transcript_locally(services):
    router, _ = services
    router.remote.create_transcript = AsyncMock(side_effect=AuthError())

    response = _save()

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["savedLocally"] is True
    assert body["errorMessage"] == "Invalid or expired authentication session"


def test_backend_failure_returns_generic_error_body(services):
    router, _ = services
    router.remote.create_transcript = AsyncMock(side_effect=StoreError())

    response = _save()

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "errorMessage": "Transcript storage failed",
        "kind": "store",
        "detail": "Transcript storage failed",
    }


def test_anonymous_create_is_local(services):
    response = client.post("/api/transcripts", json={"content": "quick note", "language": "de-DE"})

    assert response.status_code == 201
    body = response.json()
    assert body["savedLocally"] is True
    fetched = client.get(f"/api/transcripts/{body['transcriptId']}")
    assert fetched.status_code == 200
    assert fetched.json()["language"] == "de-DE"
    assert fetched.json()["origin"] == "local"


def test_get_edit_and_list_revisions(services):
    _, clock = services
    transcript_id = _save().json()["transcriptId"]

    record = client.get(f"/api/transcripts/{transcript_id}", headers=U1).json()
    assert record["title"] == "Hello world this is a..."
    assert record["word_count"] == 6

    clock.advance(minutes=10)
    edited = client.patch(f"/api/transcripts/{transcript_id}", json={"content": "Hello again"}, headers=U1)
    assert edited.status_code == 200
    assert edited.json()["content"] == "Hello again"
    assert edited.json()["word_count"] == 2

    revisions = client.get(f"/api/transcripts/{transcript_id}/revisions", headers=U1).json()
    assert [rev["content"] for rev in revisions] == ["Hello again", "Hello world this is a test"]


def test_edit_longer_than_limit_is_rejected(services):
    transcript_id = _save().json()["transcriptId"]

    response = client.patch(f"/api/transcripts/{transcript_id}", json={"content": "x" * 5001}, headers=U1)

    assert response.status_code == 400
    assert response.json()["kind"] == "validation"


def test_other_users_transcript_is_not_found(services):
    transcript_id = _save().json()["transcriptId"]

    assert client.get(f"/api/transcripts/{transcript_id}", headers=U2).status_code == 404
    assert client.delete(f"/api/transcripts/{transcript_id}", headers=U2).status_code == 404
    assert client.get(f"/api/transcripts/{transcript_id}").status_code == 404


def test_list_transcripts_returns_only_active(services):
    keep = _save("keep this one").json()["transcriptId"]
    trash = _save("throw this away").json()["transcriptId"]
    client.delete(f"/api/transcripts/{trash}", headers=U1)

    listing = client.get("/api/transcripts", headers=U1).json()

    assert [row["id"] for row in listing] == [keep]


def test_download_sets_attachment_filename(services):
    transcript_id = _save("download me").json()["transcriptId"]

    response = client.get(f"/api/transcripts/{transcript_id}/download", headers=U1)

    assert response.status_code == 200
    assert response.text == "download me"
    assert response.headers["content-type"].startswith("text/plain")
    assert response.headers["content-disposition"] == (
        'attachment; filename="speech-transcript-2024-01-01T12-00-00+00-00.txt"'
    )


def test_trash_restore_and_permanent_delete(services):
    _, clock = services
    transcript_id = _save().json()["transcriptId"]

    trashed = client.delete(f"/api/transcripts/{transcript_id}", headers=U1)
    assert trashed.status_code == 200
    assert trashed.json()["deleted_at"] is not None

    clock.advance(days=4)
    trash = client.get("/api/trash", headers=U1).json()
    assert [item["id"] for item in trash] == [transcript_id]
    assert trash[0]["days_remaining"] == 26

    restored = client.post(f"/api/transcripts/{transcript_id}/restore", headers=U1)
    assert restored.json()["deleted_at"] is None

    gone = client.delete(f"/api/transcripts/{transcript_id}/permanent", headers=U1)
    assert gone.status_code == 204
    assert client.get(f"/api/transcripts/{transcript_id}", headers=U1).status_code == 404


def test_batch_restore_reports_aggregate_result(services):
    ids = [_save(text).json()["transcriptId"] for text in ("one", "two")]
    for transcript_id in ids:
        client.delete(f"/api/transcripts/{transcript_id}", headers=U1)

    response = client.post("/api/trash/restore", json={"ids": ids + ["missing"]}, headers=U1)

    assert response.status_code == 200
    assert response.json() == {
        "requested": 3,
        "succeeded": 2,
        "failed": {"missing": "not_found"},
        "message": "2 transcripts restored, 1 failed",
    }


def test_batch_with_no_ids_is_rejected(services):
    response = client.post("/api/trash/delete", json={"ids": []}, headers=U1)

    assert response.status_code == 400
    assert response.json()["errorMessage"] == "No items selected"


def test_empty_trash(services):
    keep = _save("keep").json()["transcriptId"]
    trash = _save("trash").json()["transcriptId"]
    client.delete(f"/api/transcripts/{trash}", headers=U1)

    response = client.delete("/api/trash", headers=U1)

    assert response.json()["message"] == "1 transcript permanently deleted"
    assert client.get("/api/trash", headers=U1).json() == []
    assert [row["id"] for row in client.get("/api/transcripts", headers=U1).json()] == [keep]


def test_sweep_purges_expired_trash(services):
    _, clock = services
    transcript_id = _save().json()["transcriptId"]
    client.delete(f"/api/transcripts/{transcript_id}", headers=U1)
    clock.advance(days=31)

    response = client.post("/api/trash/sweep", headers=U1)

    assert response.json() == {"purged": 1}
    assert client.get(f"/api/transcripts/{transcript_id}", headers=U1).status_code == 404


def test_signed_out_devices_do_not_share_transcripts(services):
    first, second = TestClient(app), TestClient(app)
    created = first.post("/api/transcripts", json={"content": "private thought"})
    transcript_id = created.json()["transcriptId"]
    assert created.cookies.get(CLIENT_ID_COOKIE)

    assert second.get("/api/transcripts").json() == []
    assert second.get(f"/api/transcripts/{transcript_id}").status_code == 404
    assert second.delete(f"/api/transcripts/{transcript_id}").status_code == 404
    assert second.delete(f"/api/transcripts/{transcript_id}/permanent").status_code == 404

    assert [row["id"] for row in first.get("/api/transcripts").json()] == [transcript_id]
    assert first.get(f"/api/transcripts/{transcript_id}").json()["content"] == "private thought"


def test_client_id_header_scopes_signed_out_requests(services):
    device = {"X-Client-Id": "kitchen-tablet"}
    transcript_id = TestClient(app).post("/api/transcripts", json={"content": "shopping list"}, headers=device).json()[
        "transcriptId"
    ]

    assert TestClient(app).get(f"/api/transcripts/{transcript_id}", headers=device).status_code == 200
    assert TestClient(app).get(f"/api/transcripts/{transcript_id}", headers={"X-Client-Id": "phone"}).status_code == 404
    rejected = TestClient(app).get("/api/transcripts", headers={"X-Client-Id": "x" * 49})
    assert rejected.status_code == 400
    assert rejected.json()["kind"] == "validation"


def test_patch_title_renames_without_new_revision(services):
    transcript_id = _save().json()["transcriptId"]

    renamed = client.patch(f"/api/transcripts/{transcript_id}", json={"title": "Standup notes"}, headers=U1)

    assert renamed.status_code == 200
    assert renamed.json()["title"] == "Standup notes"
    assert renamed.json()["content"] == "Hello world this is a test"
    assert client.get(f"/api/transcripts/{transcript_id}", headers=U1).json()["title"] == "Standup notes"
    assert len(client.get(f"/api/transcripts/{transcript_id}/revisions", headers=U1).json()) == 1


def test_patch_content_and_title_together(services):
    transcript_id = _save().json()["transcriptId"]

    response = client.patch(
        f"/api/transcripts/{transcript_id}", json={"content": "Rewritten", "title": "Draft two"}, headers=U1
    )

    assert response.json()["content"] == "Rewritten"
    assert response.json()["title"] == "Draft two"


@pytest.mark.parametrize("body", [{}, {"title": "   "}, {"title": "t" * 256}])
def test_patch_rejects_empty_or_invalid_title(services, body):
    transcript_id = _save().json()["transcriptId"]

    response = client.patch(f"/api/transcripts/{transcript_id}", json=body, headers=U1)

    assert response.status_code == 400
    assert response.json()["kind"] == "validation"
