"""Authentication collaborator: resolves a session token to an identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from voicenotes.errors import AuthError, StoreError, TransientError

logger = logging.getLogger(__name__)

# Signed-out callers own their local transcripts through a per-device id.
ANONYMOUS_PREFIX = "anon:"


def anonymous_owner(client_id: str) -> str:
    return f"{ANONYMOUS_PREFIX}{client_id}"


def is_anonymous(owner: Optional[str]) -> bool:
    """True for owners that can never have remote transcripts."""
    return owner is None or owner.startswith(ANONYMOUS_PREFIX)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str = ""


class AuthClient:
    """Asks the hosted auth service who a bearer token belongs to."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._user_url = f"{base_url.rstrip('/')}/auth/v1/user"
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def get_identity(self, access_token: Optional[str]) -> Optional[Identity]:
        """Return the identity behind ``access_token``.

        ``None`` when no token was supplied (anonymous use); raises
        :class:`AuthError` when the token is rejected.
        """
        if not access_token:
            return None

        headers = {"apikey": self._api_key, "Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._user_url, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientError("Authentication service timed out") from exc
        except httpx.TransportError as exc:
            logger.warning("Authentication service unreachable: %s", exc)
            raise TransientError("Authentication service is unavailable") from exc

        if response.status_code in (401, 403):
            logger.info("Session token rejected by auth service (HTTP %s)", response.status_code)
            raise AuthError()
        if response.status_code >= 500:
            raise TransientError("Authentication service is unavailable")
        if response.status_code >= 400:
            logger.error("Unexpected auth service response %s: %s", response.status_code, response.text[:200])
            raise StoreError("Could not verify the session")

        data = response.json()
        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise AuthError()
        return Identity(user_id=str(user_id), email=data.get("email") or "")
