"""
OS notification permission.

State machine: UNREQUESTED -> REQUESTING -> GRANTED | DENIED. DENIED is
only left by re-querying the OS after the user changed system settings;
nothing is retried automatically.
"""

import asyncio
import logging
from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .channels import DEFAULT_CHANNEL_ID, ChannelRegistry
from .errors import PermissionDenied
from .models import Channel, Importance, PermissionStatus

if TYPE_CHECKING:
    from providers.contracts import NotificationRuntime

logger = logging.getLogger(__name__)


class PermissionState(str, Enum):
    UNREQUESTED = "unrequested"
    REQUESTING = "requesting"
    GRANTED = "granted"
    DENIED = "denied"


class PermissionGate:
    """Requests and caches the notification permission."""

    PROMPT_TITLE = "Notification Permission"
    PROMPT_MESSAGE = "Please enable notifications to receive ride updates and important alerts."

    def __init__(
        self,
        runtime: "NotificationRuntime",
        channels: ChannelRegistry,
        settings_url: str = "app-settings:",
    ):
        self.runtime = runtime
        self.channels = channels
        self.settings_url = settings_url
        self.state = PermissionState.UNREQUESTED
        self.last_error: Optional[Exception] = None
        self._explained = False
        self._inflight: Optional["asyncio.Future[bool]"] = None

    @property
    def is_granted(self) -> bool:
        return self.state == PermissionState.GRANTED

    def require_granted(self) -> None:
        """Raise PermissionDenied unless the permission is known to be granted."""
        if not self.is_granted:
            raise PermissionDenied(f"Notification permission is {self.state.value}")

    async def refresh_status(self) -> PermissionState:
        """Re-query the OS without prompting (e.g. after returning from settings)."""
        status = await self.runtime.get_permission_status()
        if status == PermissionStatus.GRANTED:
            self.state = PermissionState.GRANTED
        elif status == PermissionStatus.DENIED:
            self.state = PermissionState.DENIED
        return self.state

    async def request(self) -> bool:
        """
        Make sure the permission is granted, prompting if needed.

        Concurrent callers share one prompt. Returns True if granted.
        """
        if self._inflight is not None:
            return await asyncio.shield(self._inflight)
        self._inflight = asyncio.ensure_future(self._request())
        try:
            return await self._inflight
        finally:
            self._inflight = None

    async def _request(self) -> bool:
        if not self.runtime.is_device:
            logger.debug("Must use physical device for Push Notifications")
            return False

        try:
            existing = await self.runtime.get_permission_status()
            if existing == PermissionStatus.GRANTED:
                self.state = PermissionState.GRANTED
                return True

            self.state = PermissionState.REQUESTING
            status = await self.runtime.request_permission()
        except Exception as e:
            logger.error(f"Error requesting notification permissions: {e}")
            self.last_error = e
            self.state = PermissionState.UNREQUESTED
            return False

        if status == PermissionStatus.GRANTED:
            self.state = PermissionState.GRANTED
            await self._raise_default_channel()
            logger.info("Notification permission granted")
            return True

        self.state = PermissionState.DENIED
        self.last_error = PermissionDenied()
        logger.warning("Notification permission denied")
        if not self._explained:
            self._explained = True
            try:
                await self.runtime.show_permission_prompt(
                    self.PROMPT_TITLE, self.PROMPT_MESSAGE, self.settings_url
                )
            except Exception as e:
                logger.error(f"Could not show permission explanation: {e}")
        return False

    async def _raise_default_channel(self) -> None:
        # Newly granted: the default channel is promoted to max importance.
        channel = self.channels.get(DEFAULT_CHANNEL_ID) or Channel(
            id=DEFAULT_CHANNEL_ID,
            name="default",
            vibration_pattern=(0, 250, 250, 250),
            light_color="#FF231F7C",
        )
        await self.channels.configure([replace(channel, importance=Importance.MAX)])
