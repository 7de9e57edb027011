"""
Expo Push Notifications Client

Sends server-initiated push notifications via the Expo Push API.
https://docs.expo.dev/push-notifications/overview/

Delivery retry is Expo's job: entries that come back with a non-"ok"
status are logged and counted as failed, never re-sent from here.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from . import templates
from .models import NotificationData

logger = logging.getLogger(__name__)

# Expo Push API endpoint
EXPO_PUSH_API_URL = "https://exp.host/--/api/v2/push/send"

TOKEN_PREFIXES = ("ExponentPushToken[", "ExpoPushToken[")


def is_expo_push_token(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(TOKEN_PREFIXES) and value.endswith("]")


@dataclass(frozen=True)
class PushMessage:
    """One message in an Expo push request."""
    to: str
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None
    sound: Optional[str] = "default"
    priority: str = "high"
    channel_id: Optional[str] = "default"

    def to_dict(self) -> Dict[str, Any]:
        doc = {
            "to": self.to,
            "title": self.title,
            "body": self.body,
            "sound": self.sound,
            "priority": self.priority,
        }
        if self.data is not None:
            doc["data"] = self.data
        if self.channel_id:
            doc["channelId"] = self.channel_id
        return doc


@dataclass(frozen=True)
class PushResult:
    """Outcome of one batch."""
    success: int
    failed: int
    errors: List[str]


class ExpoPushClient:
    """Client for sending push notifications via Expo."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Expo push client.

        Args:
            access_token: Optional Expo access token (only needed when push security is enabled)
            client: Optional httpx client (tests inject a mock transport)
        """
        self.access_token = access_token
        self.client = client or httpx.AsyncClient(timeout=10.0)

    async def send_messages(self, messages: List[PushMessage]) -> PushResult:
        """
        Send a batch of messages in a single request.

        Returns:
            PushResult counting "ok" tickets as success and everything else as failed
        """
        valid = [m for m in messages if is_expo_push_token(m.to)]
        skipped = len(messages) - len(valid)
        if skipped:
            logger.warning(f"Skipping {skipped} message(s) with invalid push token format")
        if not valid:
            return PushResult(success=0, failed=skipped, errors=["invalid_token"] * skipped)

        try:
            response = await self.client.post(
                EXPO_PUSH_API_URL,
                json=[m.to_dict() for m in valid],
                headers=self._get_headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to send push notification: {e}")
            return PushResult(success=0, failed=len(messages), errors=[str(e)])

        if response.status_code != 200:
            logger.error(f"Expo push API error: {response.status_code} {response.text}")
            return PushResult(
                success=0, failed=len(messages), errors=[f"http_{response.status_code}"]
            )

        try:
            body = response.json()
            tickets = (body.get("data") if isinstance(body, dict) else None) or []
        except ValueError:
            logger.error("Expo push API returned a non-JSON body")
            return PushResult(success=0, failed=len(messages), errors=["invalid_response"])

        success = 0
        errors: List[str] = []
        for message, ticket in zip(valid, tickets):
            if ticket.get("status") == "ok":
                success += 1
            else:
                error = ticket.get("message") or (ticket.get("details") or {}).get("error") or "Unknown error"
                errors.append(error)
                logger.error(f"Expo push error for {message.to[:30]}...: {error}")

        failed = len(messages) - success
        logger.info(f"Push batch sent: {success} ok, {failed} failed")
        return PushResult(success=success, failed=failed, errors=errors)

    async def send_notification(
        self,
        push_token: str,
        notification: NotificationData,
        sound: Optional[str] = "default",
        priority: str = "high",
    ) -> bool:
        """Send one typed notification to one device."""
        message = PushMessage(
            to=push_token,
            title=notification.title,
            body=notification.message,
            data=notification.to_dict(),
            sound=sound,
            priority=priority,
            channel_id=notification.channel_id or "default",
        )
        result = await self.send_messages([message])
        return result.success == 1

    async def send_to_many(self, push_tokens: List[str], notification: NotificationData) -> PushResult:
        messages = [
            PushMessage(
                to=token,
                title=notification.title,
                body=notification.message,
                data=notification.to_dict(),
                channel_id=notification.channel_id or "default",
            )
            for token in push_tokens
        ]
        return await self.send_messages(messages)

    async def send_ride_request(self, push_token: str, ride_id: str, pickup: str, destination: str) -> bool:
        return await self.send_notification(
            push_token, templates.ride_request(ride_id, pickup, destination)
        )

    async def send_ride_accepted(self, push_token: str, ride_id: str, driver_id: str, driver_name: str, eta: str) -> bool:
        return await self.send_notification(
            push_token, templates.ride_accepted(ride_id, driver_id, driver_name, eta)
        )

    async def send_driver_arrived(self, push_token: str, ride_id: str, driver_id: str, driver_name: str) -> bool:
        return await self.send_notification(
            push_token, templates.driver_arrived(ride_id, driver_id, driver_name)
        )

    async def send_ride_started(self, push_token: str, ride_id: str, driver_id: str) -> bool:
        return await self.send_notification(push_token, templates.ride_started(ride_id, driver_id))

    async def send_ride_completed(self, push_token: str, ride_id: str, driver_id: str, amount: float) -> bool:
        return await self.send_notification(
            push_token, templates.ride_completed(ride_id, driver_id, amount)
        )

    async def send_payment(
        self,
        push_token: str,
        success: bool,
        amount: float,
        transaction_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> bool:
        return await self.send_notification(
            push_token,
            templates.payment(success, amount, transaction_id=transaction_id, reason=reason),
        )

    async def send_promo(self, push_tokens: List[str], promo_code: str, discount: str, valid_until: str) -> PushResult:
        return await self.send_to_many(push_tokens, templates.promo(promo_code, discount, valid_until))

    async def send_chat(self, push_token: str, ride_id: str, sender_id: str, sender_name: str, message: str) -> bool:
        # Chat is always high priority
        return await self.send_notification(
            push_token, templates.chat(ride_id, sender_id, sender_name, message), priority="high"
        )

    def _get_headers(self) -> dict:
        """Get HTTP headers for Expo API."""
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
