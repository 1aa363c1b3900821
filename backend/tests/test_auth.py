import httpx
import pytest

from voicenotes.errors import AuthError, StoreError, TransientError
from voicenotes.services.auth import AuthClient, Identity, anonymous_owner, is_anonymous


def _client(handler):
    return AuthClient("https://project.example.co/", "anon-key", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_valid_token_resolves_identity():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "u1", "email": "ada@example.com"})

    identity = await _client(handler).get_identity("token-123")

    assert identity == Identity(user_id="u1", email="ada@example.com")
    assert seen[0].url.path == "/auth/v1/user"
    assert seen[0].headers["authorization"] == "Bearer token-123"
    assert seen[0].headers["apikey"] == "anon-key"


@pytest.mark.asyncio
async def test_missing_token_is_anonymous():
    def handler(request):
        raise AssertionError("no request expected")

    assert await _client(handler).get_identity(None) is None
    assert await _client(handler).get_identity("") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_token_raises_auth_error(status):
    client = _client(lambda request: httpx.Response(status, json={"msg": "invalid JWT"}))

    with pytest.raises(AuthError):
        await client.get_identity("expired")


@pytest.mark.asyncio
async def test_payload_without_user_id_is_rejected():
    client = _client(lambda request: httpx.Response(200, json={"email": "x@example.com"}))

    with pytest.raises(AuthError):
        await client.get_identity("token")


@pytest.mark.asyncio
async def test_auth_service_outage_is_transient():
    def down(request):
        raise httpx.ConnectError("refused")

    with pytest.raises(TransientError):
        await _client(down).get_identity("token")
    with pytest.raises(TransientError):
        await _client(lambda request: httpx.Response(502)).get_identity("token")


@pytest.mark.asyncio
async def test_unexpected_client_error_is_store_error():
    client = _client(lambda request: httpx.Response(422, json={"msg": "bad"}))

    with pytest.raises(StoreError):
        await client.get_identity("token")


def test_anonymous_owner_helpers():
    owner = anonymous_owner("device-1")

    assert owner == "anon:device-1"
    assert is_anonymous(owner)
    assert is_anonymous(None)
    assert not is_anonymous("u1")
