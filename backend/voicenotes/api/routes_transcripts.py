"""Single-transcript endpoints under ``/api/transcripts``.

* ``POST ""``: save a transcript; signed-out callers get a local-only one
* ``GET ""``: active transcripts, newest first
* ``GET/PATCH /{id}``: read, or edit content and/or title
* ``GET /{id}/revisions`` and ``GET /{id}/download``
* ``DELETE /{id}`` (to trash), ``POST /{id}/restore``,
  ``DELETE /{id}/permanent``

Signed-out callers are scoped to their device id (``X-Client-Id`` header or
cookie), so they only ever see their own transcripts.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from voicenotes.api.dependencies import get_lifecycle, get_owner_id, get_router
from voicenotes.api.routes_save import SaveTranscriptResponse
from voicenotes.config import settings
from voicenotes.errors import ValidationError
from voicenotes.models.schemas import ContentRevision, Transcript
from voicenotes.services.lifecycle import TranscriptLifecycle
from voicenotes.services.router import MAX_TITLE_LENGTH, PersistenceRouter
from voicenotes.utils.storage import download_filename

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateTranscriptRequest(BaseModel):
    content: Optional[str] = None
    title: Optional[str] = None
    language: Optional[str] = None


class UpdateTranscriptRequest(BaseModel):
    content: Optional[str] = Field(None, max_length=settings.MAX_EDIT_LENGTH)
    title: Optional[str] = Field(None, max_length=MAX_TITLE_LENGTH)


@router.post("", response_model=SaveTranscriptResponse, status_code=status.HTTP_201_CREATED)
async def create_transcript(
    payload: CreateTranscriptRequest,
    response: Response,
    owner_id: Optional[str] = Depends(get_owner_id),
    transcripts: PersistenceRouter = Depends(get_router),
) -> SaveTranscriptResponse:
    """Save a transcript; anonymous callers get a local-only transcript."""
    result = await transcripts.save(payload.content, language=payload.language, owner_id=owner_id, title=payload.title)
    if result.auth_required:
        response.status_code = status.HTTP_401_UNAUTHORIZED
    return SaveTranscriptResponse(
        success=not result.auth_required,
        transcript_id=result.transcript_id,
        saved_locally=result.saved_locally,
        message=result.message,
    )


@router.get("", response_model=List[Transcript])
async def list_transcripts(
    owner_id: Optional[str] = Depends(get_owner_id),
    transcripts: PersistenceRouter = Depends(get_router),
) -> List[Transcript]:
    """Return the caller's active transcripts, newest first."""
    return await transcripts.list_transcripts(owner_id)


@router.get("/{transcript_id}", response_model=Transcript)
async def get_transcript(
    transcript_id: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    transcripts: PersistenceRouter = Depends(get_router),
) -> Transcript:
    return await transcripts.get(transcript_id, owner_id)


@router.patch("/{transcript_id}", response_model=Transcript)
async def update_transcript(
    transcript_id: str,
    payload: UpdateTranscriptRequest,
    owner_id: Optional[str] = Depends(get_owner_id),
    transcripts: PersistenceRouter = Depends(get_router),
) -> Transcript:
    """Store edited text as a new content revision and/or rename the transcript."""
    if payload.content is None and payload.title is None:
        raise ValidationError("Nothing to update")
    record = None
    if payload.content is not None:
        record = await transcripts.update(transcript_id, payload.content, owner_id)
    if payload.title is not None:
        record = await transcripts.rename(transcript_id, payload.title, owner_id)
    return record


@router.get("/{transcript_id}/revisions", response_model=List[ContentRevision])
async def list_revisions(
    transcript_id: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    transcripts: PersistenceRouter = Depends(get_router),
) -> List[ContentRevision]:
    return await transcripts.list_revisions(transcript_id, owner_id)


@router.get("/{transcript_id}/download", response_class=PlainTextResponse)
async def download_transcript(
    transcript_id: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    transcripts: PersistenceRouter = Depends(get_router),
) -> PlainTextResponse:
    """Current content as a plain-text attachment."""
    record = await transcripts.get(transcript_id, owner_id)
    filename = download_filename(record.created_at)
    return PlainTextResponse(
        record.content,
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/{transcript_id}", response_model=Transcript)
async def trash_transcript(
    transcript_id: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    lifecycle: TranscriptLifecycle = Depends(get_lifecycle),
) -> Transcript:
    """Move a transcript to the trash."""
    return await lifecycle.soft_delete(transcript_id, owner_id)


@router.post("/{transcript_id}/restore", response_model=Transcript)
async def restore_transcript(
    transcript_id: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    lifecycle: TranscriptLifecycle = Depends(get_lifecycle),
) -> Transcript:
    return await lifecycle.restore(transcript_id, owner_id)


@router.delete("/{transcript_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transcript_permanently(
    transcript_id: str,
    owner_id: Optional[str] = Depends(get_owner_id),
    lifecycle: TranscriptLifecycle = Depends(get_lifecycle),
) -> Response:
    await lifecycle.permanent_delete(transcript_id, owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
