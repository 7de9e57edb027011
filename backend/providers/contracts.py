from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Protocol

from notifications.models import (
    Channel,
    DisplayHandler,
    NotificationEvent,
    Platform,
    PermissionStatus,
    ScheduledNotification,
)

EventListener = Callable[[NotificationEvent], Awaitable[None]]


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


class KeyValueStore(Protocol):
    async def get_item(self, key: str) -> Optional[str]:
        ...

    async def set_item(self, key: str, value: str) -> None:
        ...

    async def remove_item(self, key: str) -> None:
        ...


class NotificationRuntime(Protocol):
    platform: Platform
    device_id: str
    is_device: bool
    supports_channels: bool

    async def get_permission_status(self) -> PermissionStatus:
        ...

    async def request_permission(self) -> PermissionStatus:
        ...

    async def set_channel(self, channel: Channel) -> None:
        ...

    async def get_push_token(self, project_id: str) -> str:
        ...

    async def schedule(self, request: ScheduledNotification) -> str:
        ...

    async def cancel(self, identifier: str) -> None:
        ...

    async def cancel_all(self) -> None:
        ...

    async def list_scheduled(self) -> List[ScheduledNotification]:
        ...

    def set_display_handler(self, handler: DisplayHandler) -> None:
        ...

    def add_received_listener(self, listener: EventListener) -> Subscription:
        ...

    def add_response_listener(self, listener: EventListener) -> Subscription:
        ...

    async def show_permission_prompt(
        self, title: str, message: str, settings_url: str
    ) -> None:
        ...
