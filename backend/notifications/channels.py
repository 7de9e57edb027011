"""Delivery channel declarations."""

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from .models import Channel, Importance

if TYPE_CHECKING:
    from providers.contracts import NotificationRuntime

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_ID = "default"
LIGHT_COLOR = "#FF231F7C"

DEFAULT_CHANNELS = (
    Channel(
        id="chat",
        name="Chat Messages",
        importance=Importance.HIGH,
        vibration_pattern=(0, 250, 250, 250),
        sound="default",
        badge=True,
        light_color=LIGHT_COLOR,
    ),
    Channel(
        id=DEFAULT_CHANNEL_ID,
        name="Default",
        importance=Importance.DEFAULT,
        vibration_pattern=(0, 250),
        sound="default",
        badge=True,
        light_color=LIGHT_COLOR,
    ),
    Channel(
        id="ride_progress",
        name="Ride Progress Updates",
        importance=Importance.HIGH,
        vibration_pattern=(0, 250, 250, 250),
        sound="default",
        badge=True,
        light_color="#FF6B35",
    ),
    Channel(
        id="pin_confirmation",
        name="Ride PIN Confirmation",
        importance=Importance.HIGH,
        vibration_pattern=(0, 500, 250, 500),
        sound="default",
        badge=False,
        light_color="#4CAF50",
    ),
)


class ChannelRegistry:
    """Idempotent upsert of delivery channels, keyed by id."""

    def __init__(self, runtime: "NotificationRuntime"):
        self.runtime = runtime
        self._channels: Dict[str, Channel] = {}

    async def configure(self, channels: Iterable[Channel] = DEFAULT_CHANNELS) -> bool:
        """
        Declare channels on the platform. Re-declaring an id replaces it.

        On platforms without channels only the local record is kept, so
        schedule-time validation still works.

        Returns:
            True if every channel was registered
        """
        ok = True
        for channel in channels:
            if self.runtime.supports_channels:
                try:
                    await self.runtime.set_channel(channel)
                except Exception as e:
                    logger.error(f"Error setting up notification channel {channel.id}: {e}")
                    ok = False
                    continue
            self._channels[channel.id] = channel
        if ok:
            logger.debug(f"Notification channels ready: {sorted(self._channels)}")
        return ok

    def get(self, channel_id: str) -> Optional[Channel]:
        return self._channels.get(channel_id)

    def has(self, channel_id: str) -> bool:
        return channel_id in self._channels

    def all(self) -> List[Channel]:
        return list(self._channels.values())
