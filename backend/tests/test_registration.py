import json

import httpx
import pytest

from notifications.errors import RegistrationFailed
from notifications.models import DeviceToken, NotificationType, Platform
from notifications import templates
from notifications.registration import RegistrationClient


def make_client(handler, auth_token_provider=None):
    seen = []

    def transport(request):
        seen.append(request)
        return handler(request)

    client = RegistrationClient(
        "https://api.test/",
        timeout=10.0,
        auth_token_provider=auth_token_provider,
        client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
    )
    return client, seen


@pytest.mark.asyncio
async def test_register_posts_token_with_auth():
    async def auth():
        return "jwt-123"

    client, seen = make_client(lambda request: httpx.Response(201), auth_token_provider=auth)
    token = DeviceToken("ExponentPushToken[abc]", Platform.IOS, "device-1", user_id="rider-1")
    try:
        await client.register(token)
    finally:
        await client.close()

    request = seen[0]
    assert str(request.url) == "https://api.test/api/notifications/register"
    assert request.headers["Authorization"] == "Bearer jwt-123"
    assert json.loads(request.content) == token.to_dict()


@pytest.mark.asyncio
async def test_register_non_2xx_raises_with_status():
    client, _ = make_client(lambda request: httpx.Response(502))
    try:
        with pytest.raises(RegistrationFailed) as exc_info:
            await client.register(DeviceToken("ExponentPushToken[abc]", Platform.ANDROID, "d"))
    finally:
        await client.close()
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_auth_provider_failure_sends_unauthenticated():
    async def broken():
        raise RuntimeError("session expired")

    client, seen = make_client(lambda request: httpx.Response(200), auth_token_provider=broken)
    try:
        await client.register(DeviceToken("ExponentPushToken[abc]", Platform.ANDROID, "d"))
    finally:
        await client.close()
    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_unregister_and_send():
    client, seen = make_client(lambda request: httpx.Response(200))
    try:
        assert await client.unregister("ExponentPushToken[abc]") is True
        data = templates.ride_started("r1", "d1")
        assert await client.send(["u1", "u2"], data.title, data.message, data) is True
    finally:
        await client.close()

    assert json.loads(seen[0].content) == {"token": "ExponentPushToken[abc]"}
    body = json.loads(seen[1].content)
    assert str(seen[1].url).endswith("/api/notifications/send")
    assert body["userIds"] == ["u1", "u2"]
    assert body["data"]["type"] == NotificationType.RIDE_STARTED.value


@pytest.mark.asyncio
async def test_unregister_failure_returns_false():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = make_client(refuse)
    try:
        assert await client.unregister("ExponentPushToken[abc]") is False
    finally:
        await client.close()
