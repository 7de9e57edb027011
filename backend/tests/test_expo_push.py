"""
Tests for the Expo push client and notification templates
"""

import json

import httpx
import pytest

from notifications import templates
from notifications.expo_push import EXPO_PUSH_API_URL, ExpoPushClient, PushMessage, is_expo_push_token
from notifications.models import NotificationType

TOKEN = "ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]"


def make_client(handler, access_token=None):
    sent = []

    def transport(request):
        sent.append(request)
        return handler(request)

    client = ExpoPushClient(
        access_token=access_token,
        client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
    )
    return client, sent


def ok_tickets(request):
    count = len(json.loads(request.content))
    return httpx.Response(200, json={"data": [{"status": "ok", "id": f"t{i}"} for i in range(count)]})


def test_token_format():
    assert is_expo_push_token(TOKEN)
    assert is_expo_push_token("ExpoPushToken[abc]")
    assert not is_expo_push_token("fcm:abc")
    assert not is_expo_push_token(None)


def test_message_uses_channel_id_key():
    doc = PushMessage(to=TOKEN, title="t", body="b", channel_id="chat").to_dict()
    assert doc["channelId"] == "chat"
    assert "data" not in doc


@pytest.mark.asyncio
async def test_send_chat_posts_expected_body():
    client, sent = make_client(ok_tickets, access_token="secret")
    try:
        assert await client.send_chat(TOKEN, "ride-1", "driver-1", "Sam", "Outside") is True
    finally:
        await client.close()

    request = sent[0]
    assert str(request.url) == EXPO_PUSH_API_URL
    assert request.headers["Authorization"] == "Bearer secret"
    [message] = json.loads(request.content)
    assert message["to"] == TOKEN
    assert message["title"] == "New message from Sam"
    assert message["channelId"] == "chat"
    assert message["data"]["type"] == "chat"
    assert message["data"]["rideId"] == "ride-1"


@pytest.mark.asyncio
async def test_invalid_token_not_sent():
    client, sent = make_client(ok_tickets)
    try:
        result = await client.send_to_many(["not-a-token"], templates.promo("SAVE", "10%", "soon"))
    finally:
        await client.close()

    assert result.success == 0
    assert result.failed == 1
    assert sent == []


@pytest.mark.asyncio
async def test_ticket_errors_counted():
    def mixed(request):
        return httpx.Response(
            200,
            json={
                "data": [
                    {"status": "ok", "id": "t1"},
                    {"status": "error", "message": "not registered", "details": {"error": "DeviceNotRegistered"}},
                ]
            },
        )

    client, _ = make_client(mixed)
    try:
        result = await client.send_to_many([TOKEN, "ExpoPushToken[other]"], templates.ride_started("r1", "d1"))
    finally:
        await client.close()

    assert result.success == 1
    assert result.failed == 1
    assert result.errors == ["not registered"]


@pytest.mark.asyncio
async def test_http_error_status():
    client, _ = make_client(lambda request: httpx.Response(500, text="boom"))
    try:
        assert await client.send_ride_completed(TOKEN, "r1", "d1", 18.5) is False
    finally:
        await client.close()


class TestTemplates:
    def test_ride_completed_amount(self):
        data = templates.ride_completed("r1", "d1", 18.5)
        assert data.type == NotificationType.RIDE_COMPLETED
        assert data.message.endswith("Amount: $18.5")
        assert data.amount == 18.5

    def test_payment_failure_variant(self):
        data = templates.payment(False, 10.0, reason="Card declined")
        assert data.type == NotificationType.PAYMENT_FAILED
        assert "Card declined" in data.message

    def test_chat_image_preview(self):
        data = templates.chat("r1", "d1", "Sam", "ignored", message_type="image")
        assert data.message == templates.CHAT_PREVIEWS["image"]
        assert data.channel_id == "chat"

    def test_driver_arrived_uses_progress_channel(self):
        data = templates.driver_arrived("r1", "d1", "Sam", "Main St")
        assert data.channel_id == "ride_progress"
        assert "(Main St)" in data.message


@pytest.mark.asyncio
async def test_promo_sent_as_one_batch():
    client, sent = make_client(ok_tickets)
    try:
        result = await client.send_promo([TOKEN, "ExpoPushToken[other]"], "SAVE10", "10%", "2025-01-01")
    finally:
        await client.close()

    assert result.success == 2
    assert len(sent) == 1
    messages = json.loads(sent[0].content)
    assert {m["data"]["promoCode"] for m in messages} == {"SAVE10"}


@pytest.mark.asyncio
async def test_payment_failure_push():
    client, sent = make_client(ok_tickets)
    try:
        assert await client.send_payment(TOKEN, False, 12.0, reason="Card declined") is True
    finally:
        await client.close()

    [message] = json.loads(sent[0].content)
    assert message["data"]["type"] == "payment_failed"
    assert message["data"]["reason"] == "Card declined"
