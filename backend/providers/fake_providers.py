from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Dict, List, Optional

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


class InMemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed store. ``fail_writes``/``fail_reads`` simulate storage errors.

    With ``yield_io`` every call gives up control to the event loop once, the
    way a real async store does, so concurrent callers interleave.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None, yield_io: bool = False) -> None:
        self.data: Dict[str, str] = dict(initial or {})
        self.yield_io = yield_io
        self.fail_writes = False
        self.fail_reads = False
        self.writes = 0

    async def get_item(self, key: str) -> Optional[str]:
        await self._io()
        if self.fail_reads:
            raise OSError(f"read failed for {key}")
        return self.data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await self._io()
        if self.fail_writes:
            raise OSError(f"write failed for {key}")
        self.writes += 1
        self.data[key] = value

    async def remove_item(self, key: str) -> None:
        await self._io()
        if self.fail_writes:
            raise OSError(f"write failed for {key}")
        self.data.pop(key, None)

    async def _io(self) -> None:
        if self.yield_io:
            await asyncio.sleep(0)


class FakeNotificationRuntime(NotificationRuntime):
    """
    Scriptable stand-in for the device notification subsystem.

    Every platform call is counted so tests can assert that a call did
    or did not happen.
    """

    def __init__(
        self,
        permission: PermissionStatus = PermissionStatus.UNDETERMINED,
        grant_on_request: bool = True,
        platform: Platform = Platform.ANDROID,
        device_id: str = "fake-device-001",
        is_device: bool = True,
        supports_channels: bool = True,
    ) -> None:
        self.platform = platform
        self.device_id = device_id
        self.is_device = is_device
        self.supports_channels = supports_channels

        self.permission = permission
        self.grant_on_request = grant_on_request
        self.permission_requests = 0
        self.prompts: List[Dict[str, str]] = []

        self.channels: Dict[str, Channel] = {}
        self.channel_calls = 0

        self.token_values: List[str] = []
        self.token_error: Optional[Exception] = None
        self.token_fetches = 0
        self.issued_tokens = 0

        self.scheduled: Dict[str, ScheduledNotification] = {}
        self.schedule_calls = 0
        self.schedule_error: Optional[Exception] = None
        self.cancel_calls = 0
        self.cancel_all_calls = 0

        self.display_handler: DisplayHandler = SHOW_ALL
        self.display_handler_history: List[DisplayHandler] = []

        self._received = ListenerSet()
        self._responses = ListenerSet()
        self._next_id = 0

    async def get_permission_status(self) -> PermissionStatus:
        return self.permission

    async def request_permission(self) -> PermissionStatus:
        self.permission_requests += 1
        self.permission = (
            PermissionStatus.GRANTED if self.grant_on_request else PermissionStatus.DENIED
        )
        return self.permission

    async def set_channel(self, channel: Channel) -> None:
        self.channel_calls += 1
        self.channels[channel.id] = channel

    async def get_push_token(self, project_id: str) -> str:
        self.token_fetches += 1
        if self.token_error is not None:
            raise self.token_error
        if self.token_values:
            return self.token_values.pop(0)
        self.issued_tokens += 1
        return f"ExponentPushToken[fake-{project_id}-{self.issued_tokens}]"

    async def schedule(self, request: ScheduledNotification) -> str:
        self.schedule_calls += 1
        if self.schedule_error is not None:
            raise self.schedule_error
        self._next_id += 1
        identifier = f"fake-notification-{self._next_id}"
        self.scheduled[identifier] = replace(request, id=identifier)
        return identifier

    async def cancel(self, identifier: str) -> None:
        self.cancel_calls += 1
        self.scheduled.pop(identifier, None)

    async def cancel_all(self) -> None:
        self.cancel_all_calls += 1
        self.scheduled.clear()

    async def list_scheduled(self) -> List[ScheduledNotification]:
        return list(self.scheduled.values())

    def set_display_handler(self, handler: DisplayHandler) -> None:
        self.display_handler = handler
        self.display_handler_history.append(handler)

    def add_received_listener(self, listener: EventListener) -> ListenerSubscription:
        return self._received.add(listener)

    def add_response_listener(self, listener: EventListener) -> ListenerSubscription:
        return self._responses.add(listener)

    @property
    def listener_count(self) -> int:
        return len(self._received) + len(self._responses)

    async def show_permission_prompt(
        self, title: str, message: str, settings_url: str
    ) -> None:
        self.prompts.append({"title": title, "message": message, "settings_url": settings_url})

    # Test drivers

    async def fire(self, identifier: str) -> bool:
        """Deliver a scheduled notification as if its trigger elapsed."""
        request = self.scheduled.pop(identifier, None)
        if request is None:
            return False
        payload = request.payload or NotificationData.from_dict(
            {"type": "general", "title": request.title, "message": request.body}
        )
        await self.emit_received(payload, notification_id=identifier)
        return True

    async def emit_received(self, payload: NotificationData, notification_id: Optional[str] = None) -> None:
        await self._received.emit(
            NotificationEvent(EventKind.RECEIVED, payload, notification_id=notification_id)
        )

    async def emit_response(self, payload: NotificationData, notification_id: Optional[str] = None) -> None:
        await self._responses.emit(
            NotificationEvent(EventKind.RESPONDED, payload, notification_id=notification_id)
        )

    def fail_token_fetch(self, message: str = "push service unavailable") -> None:
        self.token_error = TokenFetchFailed(message)
