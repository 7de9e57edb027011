from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

import httpx
from motor.motor_asyncio import AsyncIOMotorClient

from notifications.config import NotificationSettings
from notifications.errors import TokenFetchFailed
from notifications.models import (
    Channel,
    DisplayHandler,
    EventKind,
    NotificationData,
    NotificationEvent,
    Platform,
    PermissionStatus,
    ScheduledNotification,
    SHOW_ALL,
)

from .contracts import EventListener, KeyValueStore, NotificationRuntime
from .listeners import ListenerSet, ListenerSubscription

logger = logging.getLogger(__name__)

EXPO_TOKEN_API_URL = "https://exp.host/--/api/v2/push/getExpoPushToken"


class MongoKeyValueStore(KeyValueStore):
    """Key-value records in a single MongoDB collection, one document per key."""

    COLLECTION = "notification_state"

    def __init__(self, mongo_url: str, db_name: str) -> None:
        self.client = AsyncIOMotorClient(mongo_url, serverSelectionTimeoutMS=5000)
        self.collection = self.client[db_name][self.COLLECTION]

    async def get_item(self, key: str) -> Optional[str]:
        doc = await self.collection.find_one({"_id": key})
        return doc.get("value") if doc else None

    async def set_item(self, key: str, value: str) -> None:
        await self.collection.update_one(
            {"_id": key},
            {"$set": {"value": value, "updated_at": datetime.now(timezone.utc)}},
            upsert=True,
        )

    async def remove_item(self, key: str) -> None:
        await self.collection.delete_one({"_id": key})

    def close(self) -> None:
        self.client.close()


class LocalNotificationRuntime(NotificationRuntime):
    """
    Notification runtime for headless hosts.

    Local notifications are fired from asyncio timers and delivered to the
    received listeners. The push token is obtained by exchanging the
    configured native device token with Expo.
    """

    def __init__(
        self,
        settings: NotificationSettings,
        platform: Platform = Platform.ANDROID,
        device_id: Optional[str] = None,
        auto_grant: bool = True,
    ) -> None:
        self.settings = settings
        self.platform = platform
        self.device_id = device_id or f"host-{uuid.getnode():012x}"
        self.is_device = True
        self.supports_channels = platform == Platform.ANDROID
        self.auto_grant = auto_grant

        self._permission = PermissionStatus.UNDETERMINED
        self._channels: Dict[str, Channel] = {}
        self._pending: Dict[str, Tuple[ScheduledNotification, asyncio.TimerHandle]] = {}
        self._display_handler: DisplayHandler = SHOW_ALL
        self._received = ListenerSet()
        self._responses = ListenerSet()
        self._deliveries: Set[asyncio.Task] = set()

    async def get_permission_status(self) -> PermissionStatus:
        return self._permission

    async def request_permission(self) -> PermissionStatus:
        self._permission = (
            PermissionStatus.GRANTED if self.auto_grant else PermissionStatus.DENIED
        )
        return self._permission

    async def set_channel(self, channel: Channel) -> None:
        self._channels[channel.id] = channel

    async def get_push_token(self, project_id: str) -> str:
        if not self.settings.device_push_token:
            raise TokenFetchFailed("No native device push token available")
        body = {
            "type": "fcm" if self.platform == Platform.ANDROID else "apns",
            "deviceId": self.device_id.lower(),
            "development": self.settings.mode != "prod",
            "appId": self.settings.app_id,
            "deviceToken": self.settings.device_push_token,
            "projectId": project_id,
        }
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(EXPO_TOKEN_API_URL, json=body)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TokenFetchFailed(f"Expo token exchange failed: {e}") from e
        token = (data.get("data") or {}).get("expoPushToken")
        if not token:
            raise TokenFetchFailed("Expo token exchange returned no token")
        return token

    async def schedule(self, request: ScheduledNotification) -> str:
        loop = asyncio.get_running_loop()
        identifier = str(uuid.uuid4())
        delay = 0 if request.trigger.immediate else request.trigger.seconds
        handle = loop.call_later(delay, self._fire, identifier)
        self._pending[identifier] = (replace(request, id=identifier), handle)
        return identifier

    async def cancel(self, identifier: str) -> None:
        entry = self._pending.pop(identifier, None)
        if entry:
            entry[1].cancel()

    async def cancel_all(self) -> None:
        for _, handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

    async def list_scheduled(self) -> List[ScheduledNotification]:
        return [request for request, _ in self._pending.values()]

    def set_display_handler(self, handler: DisplayHandler) -> None:
        self._display_handler = handler

    def add_received_listener(self, listener: EventListener) -> ListenerSubscription:
        return self._received.add(listener)

    def add_response_listener(self, listener: EventListener) -> ListenerSubscription:
        return self._responses.add(listener)

    async def show_permission_prompt(
        self, title: str, message: str, settings_url: str
    ) -> None:
        logger.warning(f"{title}: {message} (settings: {settings_url})")

    @property
    def pending_deliveries(self) -> int:
        return len(self._deliveries)

    async def respond(self, payload: NotificationData, notification_id: Optional[str] = None) -> None:
        """Report that the user acted on a delivered notification."""
        await self._responses.emit(
            NotificationEvent(EventKind.RESPONDED, payload, notification_id=notification_id)
        )

    def _fire(self, identifier: str) -> None:
        entry = self._pending.pop(identifier, None)
        if entry is None:
            return
        request = entry[0]
        if self._display_handler.show_banner or self._display_handler.show_list:
            logger.info(f"Notification {identifier}: {request.title} - {request.body}")
        payload = request.payload or NotificationData.from_dict(
            {"type": "general", "title": request.title, "message": request.body}
        )
        event = NotificationEvent(EventKind.RECEIVED, payload, notification_id=identifier)
        # The loop only keeps weak references to tasks
        task = asyncio.ensure_future(self._received.emit(event))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
