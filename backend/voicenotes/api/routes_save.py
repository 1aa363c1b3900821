"""Save endpoint used by the recorder page once recognition has finished.

``POST /api/save-transcript``

* 400: missing content or owner id
* 401: no valid session (also when the session is rejected mid-save; the
  transcript is then kept locally and ``savedLocally`` is true)
* 403: the owner id in the body is not the signed-in user
* 500: unclassified backend failure
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from voicenotes.api.dependencies import get_identity, get_router
from voicenotes.errors import AuthError, OwnerMismatchError, ValidationError
from voicenotes.services.auth import Identity
from voicenotes.services.router import PersistenceRouter, validate_content

router = APIRouter()
logger = logging.getLogger(__name__)


class SaveTranscriptRequest(BaseModel):
    # Older clients send ``transcript``/``userId``.
    content: Optional[str] = Field(None, validation_alias=AliasChoices("content", "transcript"))
    title: Optional[str] = None
    owner_id: Optional[str] = Field(None, validation_alias=AliasChoices("ownerId", "userId", "owner_id"))
    language: Optional[str] = None


class SaveTranscriptResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    transcript_id: Optional[str] = None
    saved_locally: bool = False
    message: str
    error_message: Optional[str] = None


@router.post("/save-transcript", response_model=SaveTranscriptResponse)
async def save_transcript(
    payload: SaveTranscriptRequest,
    response: Response,
    identity: Optional[Identity] = Depends(get_identity),
    transcripts: PersistenceRouter = Depends(get_router),
) -> SaveTranscriptResponse:
    """Save a finished transcript for the signed-in user."""
    validate_content(payload.content)
    if not payload.owner_id:
        raise ValidationError("User ID is required")
    if identity is None:
        raise AuthError("You must be logged in to save transcripts")
    if identity.user_id != payload.owner_id:
        logger.error("User ID mismatch. Session user: %s, request user: %s", identity.user_id, payload.owner_id)
        raise OwnerMismatchError("You can only create transcripts for your own account")

    result = await transcripts.save(
        payload.content,
        language=payload.language,
        owner_id=payload.owner_id,
        title=payload.title,
    )

    if result.auth_required:
        response.status_code = status.HTTP_401_UNAUTHORIZED
        return SaveTranscriptResponse(
            success=False,
            transcript_id=result.transcript_id,
            saved_locally=True,
            message=result.message,
            error_message="Invalid or expired authentication session",
        )
    return SaveTranscriptResponse(
        success=True,
        transcript_id=result.transcript_id,
        saved_locally=result.saved_locally,
        message=result.message,
    )
