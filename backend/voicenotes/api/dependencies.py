"""FastAPI dependencies that build the per-request transcript services."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Header, Request, Response

from voicenotes.config import settings
from voicenotes.db.database import SessionLocal
from voicenotes.errors import ValidationError
from voicenotes.services.auth import AuthClient, Identity, anonymous_owner
from voicenotes.services.cache import TranscriptCache
from voicenotes.services.lifecycle import TranscriptLifecycle
from voicenotes.services.local_store import LocalTranscriptStore
from voicenotes.services.remote_store import RemoteTranscriptStore
from voicenotes.services.router import PersistenceRouter

CLIENT_ID_COOKIE = "voicenotes_client_id"
CLIENT_ID_MAX_AGE = 365 * 24 * 3600
MAX_CLIENT_ID_LENGTH = 48


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_auth_client() -> Optional[AuthClient]:
    if not settings.remote_enabled:
        return None
    return AuthClient(settings.REMOTE_URL, settings.REMOTE_API_KEY, timeout=settings.REMOTE_TIMEOUT_SECONDS)


async def get_identity(
    token: Optional[str] = Depends(bearer_token),
    auth: Optional[AuthClient] = Depends(get_auth_client),
) -> Optional[Identity]:
    """The signed-in user, or ``None`` for anonymous (local-only) use."""
    if token is None or auth is None:
        return None
    return await auth.get_identity(token)


def resolve_client_id(request: Request, response: Response, header_value: Optional[str]) -> str:
    """Device id for signed-out callers: header first, then cookie, else a new one.

    The id is (re)issued as a cookie so a browser keeps the same local
    transcripts between visits.
    """
    client_id = (header_value or request.cookies.get(CLIENT_ID_COOKIE) or "").strip()
    if not client_id:
        client_id = uuid.uuid4().hex
    elif len(client_id) > MAX_CLIENT_ID_LENGTH or not client_id.isprintable():
        raise ValidationError("Invalid client id")
    if request.cookies.get(CLIENT_ID_COOKIE) != client_id:
        response.set_cookie(
            CLIENT_ID_COOKIE,
            client_id,
            max_age=CLIENT_ID_MAX_AGE,
            httponly=True,
            samesite="lax",
        )
    return client_id


def get_owner_id(
    request: Request,
    response: Response,
    identity: Optional[Identity] = Depends(get_identity),
    x_client_id: Optional[str] = Header(None),
) -> str:
    """Signed-in user id, or the per-device owner of anonymous transcripts."""
    if identity is not None:
        return identity.user_id
    return anonymous_owner(resolve_client_id(request, response, x_client_id))


def get_cache(request: Request) -> TranscriptCache:
    return request.app.state.transcript_cache


def get_local_store() -> LocalTranscriptStore:
    return LocalTranscriptStore(SessionLocal)


def get_remote_store(token: Optional[str] = Depends(bearer_token)) -> Optional[RemoteTranscriptStore]:
    if not settings.remote_enabled or token is None:
        return None
    return RemoteTranscriptStore(
        settings.REMOTE_URL,
        settings.REMOTE_API_KEY,
        token,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
    )


def get_router(
    local: LocalTranscriptStore = Depends(get_local_store),
    remote: Optional[RemoteTranscriptStore] = Depends(get_remote_store),
    cache: TranscriptCache = Depends(get_cache),
) -> PersistenceRouter:
    return PersistenceRouter(local, remote, cache)


def get_lifecycle(router: PersistenceRouter = Depends(get_router)) -> TranscriptLifecycle:
    return TranscriptLifecycle(router)
