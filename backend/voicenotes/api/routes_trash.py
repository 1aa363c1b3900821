"""Trash management endpoints.

Batch endpoints process every id independently and answer with a single
aggregate result rather than one message per transcript.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from voicenotes.api.dependencies import get_lifecycle, get_owner_id
from voicenotes.errors import ValidationError
from voicenotes.models.schemas import BatchResult, Transcript
from voicenotes.services.lifecycle import TranscriptLifecycle

router = APIRouter()
logger = logging.getLogger(__name__)


class TrashItem(Transcript):
    days_remaining: int


class BatchRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


class BatchResponse(BaseModel):
    requested: int
    succeeded: int
    failed: Dict[str, str]
    message: str


class SweepResponse(BaseModel):
    purged: int


def _batch_response(result: BatchResult, verb: str) -> BatchResponse:
    return BatchResponse(
        requested=result.requested,
        succeeded=result.succeeded,
        failed=result.failed,
        message=result.summary(verb),
    )


def _require_ids(payload: BatchRequest) -> List[str]:
    if not payload.ids:
        raise ValidationError("No items selected")
    return payload.ids


@router.get("", response_model=List[TrashItem])
async def list_trash(
    owner_id: Optional[str] = Depends(get_owner_id),
    lifecycle: TranscriptLifecycle = Depends(get_lifecycle),
) -> List[TrashItem]:
    """Restorable transcripts; anything past retention is purged first."""
    now = lifecycle.clock()
    records = await lifecycle.list_trash(owner_id)
    return [
        TrashItem(**record.model_dump(exclude={"word_count"}), days_remaining=lifecycle.days_remaining(record, now))
        for record in records
    ]


@router.post("/restore", response_model=BatchResponse)
async def restore_selected(
    payload: BatchRequest,
    owner_id: Optional[str] = Depends(get_owner_id),
    lifecycle: TranscriptLifecycle = Depends(get_lifecycle),
) -> BatchResponse:
    result = await lifecycle.restore_many(_require_ids(payload), owner_id)
    return _batch_response(result, "restored")


@router.post("/delete", response_model=BatchResponse)
async def delete_selected(
    payload: BatchRequest,
    owner_id: Optional[str] = Depends(get_owner_id),
    lifecycle: TranscriptLifecycle = Depends(get_lifecycle),
) -> BatchResponse:
    result = await lifecycle.permanent_delete_many(_require_ids(payload), owner_id)
    return _batch_response(result, "permanently deleted")


@router.delete("", response_model=BatchResponse)
async def empty_trash(
    owner_id: Optional[str] = Depends(get_owner_id),
    lifecycle: TranscriptLifecycle = Depends(get_lifecycle),
) -> BatchResponse:
    result = await lifecycle.empty_trash(owner_id)
    return _batch_response(result, "permanently deleted")


@router.post("/sweep", response_model=SweepResponse)
async def sweep_trash(
    owner_id: Optional[str] = Depends(get_owner_id),
    lifecycle: TranscriptLifecycle = Depends(get_lifecycle),
) -> SweepResponse:
    purged = await lifecycle.sweep_expired(owner_id)
    return SweepResponse(purged=purged)
