"""Wrapper around the hosted PostgREST (Supabase style) transcript tables.

Tables consumed:

* ``transcripts``: ``id, title, user_id, language, created_at, updated_at,
  deleted_at, is_deleted``
* ``transcript_contents``: ``id, transcript_id, content, created_at``
  (``ON DELETE CASCADE`` on ``transcript_id``)

Row-level security on the server restricts every row to
``user_id = auth.uid()``.  Each query here filters on the owner as well, so
a misconfigured policy still cannot leak another user's rows.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from voicenotes.errors import (
    AuthError,
    NotFoundError,
    OwnerMismatchError,
    StoreError,
    TranscriptError,
    TransientError,
)
from voicenotes.models.schemas import ContentRevision, Transcript, TranscriptOrigin
from voicenotes.services.auth import is_anonymous
from voicenotes.services.base import TranscriptStore

logger = logging.getLogger(__name__)

TRANSCRIPTS = "transcripts"
CONTENTS = "transcript_contents"
WITH_CONTENTS = "*,transcript_contents(id,transcript_id,content,created_at)"

RETRYABLE_STATUS = {408, 425, 429}


def classify_response(response: httpx.Response) -> TranscriptError:
    """Convert an error response into a domain error.  The raw body is logged
    here and never forwarded."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    code = str(body.get("code") or "")
    message = str(body.get("message") or body.get("msg") or response.text[:200])
    status_code = response.status_code

    logger.error(
        "Remote store returned HTTP %s for %s %s (code=%s): %s",
        status_code,
        response.request.method,
        response.request.url.path,
        code or "-",
        message,
    )

    if status_code == 401 or "JWT" in message:
        return AuthError()
    if status_code == 403 or code == "42501":
        return OwnerMismatchError()
    if status_code == 404 or code == "PGRST116":
        return NotFoundError()
    if status_code in RETRYABLE_STATUS or status_code >= 500:
        return TransientError()
    return StoreError()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _to_revision(row: Dict[str, Any]) -> ContentRevision:
    return ContentRevision(
        id=str(row["id"]),
        transcript_id=str(row["transcript_id"]),
        content=row.get("content") or "",
        created_at=row["created_at"],
    )


def _to_transcript(row: Dict[str, Any]) -> Transcript:
    revisions = [_to_revision(item) for item in row.get(CONTENTS) or []]
    current = ""
    if revisions:
        # Latest created_at wins; on ties the later row in the payload wins.
        _, latest = max(enumerate(revisions), key=lambda pair: (pair[1].created_at, pair[0]))
        current = latest.content
    return Transcript(
        id=str(row["id"]),
        title=row.get("title") or "New Transcript",
        owner=row.get("user_id"),
        language=row.get("language") or "en-US",
        content=current,
        origin=TranscriptOrigin.REMOTE,
        created_at=row["created_at"],
        updated_at=row.get("updated_at") or row["created_at"],
        deleted_at=row.get("deleted_at"),
    )


class RemoteTranscriptStore(TranscriptStore):
    """Remote store bound to one session token (or the service key)."""

    origin = TranscriptOrigin.REMOTE

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        service_role: bool = False,
    ) -> None:
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._api_key = api_key
        self._access_token = access_token
        self._timeout = timeout
        self._transport = transport
        self.service_role = service_role

    @classmethod
    def for_service(cls, base_url: str, service_key: str, **kwargs: Any) -> "RemoteTranscriptStore":
        """Store that bypasses row-level security; used only by the sweeper."""
        return cls(base_url, service_key, service_key, service_role=True, **kwargs)

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
    ) -> List[Dict[str, Any]]:
        url = f"{self._rest_url}/{table}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=params, json=json, headers=self._headers())
        except httpx.TimeoutException as exc:
            logger.warning("Remote store timed out: %s %s", method, table)
            raise TransientError("Transcript storage timed out") from exc
        except httpx.TransportError as exc:
            logger.warning("Remote store unreachable: %s %s: %s", method, table, exc)
            raise TransientError() from exc

        if response.status_code >= 400:
            raise classify_response(response)
        if not response.content:
            return []
        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Remote store returned a non-JSON body for %s %s", method, table)
            raise StoreError() from exc
        return data if isinstance(data, list) else [data]

    def _scope(self, owner: Optional[str], **filters: str) -> Dict[str, str]:
        params = dict(filters)
        if not is_anonymous(owner):
            params["user_id"] = f"eq.{owner}"
        elif owner is not None or not self.service_role:
            # An anonymous caller can never own remote rows.
            raise NotFoundError()
        return params

    async def create_transcript(
        self,
        *,
        owner: Optional[str],
        title: str,
        language: str,
    ) -> Transcript:
        if is_anonymous(owner):
            raise AuthError("Signing in is required to sync transcripts")
        rows = await self._request(
            "POST",
            TRANSCRIPTS,
            json={"title": title, "user_id": owner, "language": language, "is_deleted": False},
        )
        if not rows:
            logger.error("Remote store created a transcript but returned no representation")
            raise StoreError()
        return _to_transcript(rows[0])

    async def add_revision(self, transcript_id: str, owner: Optional[str], content: str) -> ContentRevision:
        rows = await self._request(
            "POST",
            CONTENTS,
            json={"transcript_id": transcript_id, "content": content},
        )
        if not rows:
            raise StoreError()
        return _to_revision(rows[0])

    async def touch(self, transcript_id: str, owner: Optional[str], updated_at: datetime) -> None:
        rows = await self._request(
            "PATCH",
            TRANSCRIPTS,
            params=self._scope(owner, id=f"eq.{transcript_id}"),
            json={"updated_at": _iso(updated_at)},
        )
        if not rows:
            raise NotFoundError()

    async def get(self, transcript_id: str, owner: Optional[str]) -> Transcript:
        rows = await self._request(
            "GET",
            TRANSCRIPTS,
            params=self._scope(owner, id=f"eq.{transcript_id}", select=WITH_CONTENTS),
        )
        if not rows:
            raise NotFoundError()
        return _to_transcript(rows[0])

    async def list(
        self,
        owner: Optional[str],
        *,
        deleted: Optional[bool] = False,
        all_owners: bool = False,
    ) -> List[Transcript]:
        filters = {"select": WITH_CONTENTS, "order": "updated_at.desc"}
        if deleted is True:
            filters["deleted_at"] = "not.is.null"
        elif deleted is False:
            filters["deleted_at"] = "is.null"
        if all_owners:
            if not self.service_role:
                raise AuthError("Listing every owner's transcripts requires the service key")
            params = filters
        else:
            params = self._scope(owner, **filters)
        rows = await self._request("GET", TRANSCRIPTS, params=params)
        return [_to_transcript(row) for row in rows]

    async def set_deleted_at(
        self,
        transcript_id: str,
        owner: Optional[str],
        deleted_at: Optional[datetime],
        *,
        updated_at: datetime,
    ) -> Transcript:
        rows = await self._request(
            "PATCH",
            TRANSCRIPTS,
            params=self._scope(owner, id=f"eq.{transcript_id}", select=WITH_CONTENTS),
            json={
                "deleted_at": _iso(deleted_at),
                "is_deleted": deleted_at is not None,
                "updated_at": _iso(updated_at),
            },
        )
        if not rows:
            raise NotFoundError()
        return _to_transcript(rows[0])

    async def set_title(
        self,
        transcript_id: str,
        owner: Optional[str],
        title: str,
        *,
        updated_at: datetime,
    ) -> Transcript:
        rows = await self._request(
            "PATCH",
            TRANSCRIPTS,
            params=self._scope(owner, id=f"eq.{transcript_id}", select=WITH_CONTENTS),
            json={"title": title, "updated_at": _iso(updated_at)},
        )
        if not rows:
            raise NotFoundError()
        return _to_transcript(rows[0])

    async def delete(self, transcript_id: str, owner: Optional[str]) -> None:
        rows = await self._request(
            "DELETE",
            TRANSCRIPTS,
            params=self._scope(owner, id=f"eq.{transcript_id}"),
        )
        if not rows:
            raise NotFoundError()

    async def list_revisions(self, transcript_id: str, owner: Optional[str]) -> List[ContentRevision]:
        # Confirms ownership before touching the contents table.
        await self.get(transcript_id, owner)
        rows = await self._request(
            "GET",
            CONTENTS,
            params={"transcript_id": f"eq.{transcript_id}", "order": "created_at.desc"},
        )
        return [_to_revision(row) for row in rows]
