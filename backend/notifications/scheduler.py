"""
Local notification scheduler.

Scheduling is preference-gated: while push is disabled ``schedule``
returns an empty id without touching the platform. Channel references are
validated against the ChannelRegistry before anything is queued.
"""

import logging
from typing import TYPE_CHECKING, Any, List, Optional, Union

from .channels import ChannelRegistry
from .dispatcher import in_dispatch
from .errors import ScheduleFailed
from .models import NotificationData, Priority, ScheduledNotification, Trigger
from .preferences import PreferenceStore

if TYPE_CHECKING:
    from providers.contracts import NotificationRuntime

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """Schedules and cancels local notifications."""

    def __init__(
        self,
        runtime: "NotificationRuntime",
        preferences: PreferenceStore,
        channels: ChannelRegistry,
    ):
        self.runtime = runtime
        self.preferences = preferences
        self.channels = channels

    async def schedule(
        self,
        title: str,
        body: str,
        payload: Optional[NotificationData] = None,
        trigger: Any = None,
        priority: Union[Priority, str] = Priority.NORMAL,
    ) -> str:
        """
        Queue a local notification.

        Args:
            title: Notification title
            body: Notification body
            payload: Typed data delivered with the notification
            trigger: None / Trigger.now() to fire now, Trigger.after(n) or
                {"seconds": n} to fire after n seconds
            priority: "low", "normal" or "high"; high is sticky where supported

        Returns:
            Platform identifier, or "" when push notifications are disabled

        Raises:
            ScheduleFailed: unknown channel, called from a notification
                handler, or the platform rejected the request
        """
        if not await self.preferences.are_enabled():
            logger.debug("Notification not scheduled - disabled by user preference")
            return ""

        if in_dispatch():
            raise ScheduleFailed("Notification handlers must not schedule notifications")

        channel_id = payload.channel_id if payload else None
        if channel_id and not self.channels.has(channel_id):
            raise ScheduleFailed(f"unknown channel: {channel_id}")

        try:
            priority = Priority(priority)
            trigger = Trigger.from_wire(trigger)
        except ValueError as e:
            raise ScheduleFailed(str(e)) from e

        request = ScheduledNotification(
            id="",
            title=title,
            body=body,
            payload=payload,
            channel_id=channel_id,
            priority=priority,
            trigger=trigger,
            sticky=priority == Priority.HIGH,
        )
        try:
            identifier = await self.runtime.schedule(request)
        except Exception as e:
            logger.error(f"Error scheduling {priority.value} priority local notification: {e}")
            raise ScheduleFailed(f"platform rejected notification: {e}") from e

        logger.debug(f"{priority.value} priority local notification scheduled: {identifier}")
        return identifier

    async def schedule_data(
        self,
        data: NotificationData,
        trigger: Any = None,
        priority: Union[Priority, str] = Priority.NORMAL,
    ) -> str:
        """Schedule ``data`` using its own title and message."""
        return await self.schedule(data.title, data.message, data, trigger, priority)

    async def cancel(self, identifier: str) -> bool:
        """Cancel one notification. Unknown or already fired ids are fine."""
        if in_dispatch():
            logger.warning(f"Ignoring cancel of {identifier} from a notification handler")
            return False
        try:
            await self.runtime.cancel(identifier)
        except Exception as e:
            logger.error(f"Error cancelling scheduled notification {identifier}: {e}")
            return False
        logger.debug(f"Scheduled notification cancelled: {identifier}")
        return True

    async def cancel_all(self) -> bool:
        if in_dispatch():
            logger.warning("Ignoring cancel-all from a notification handler")
            return False
        try:
            await self.runtime.cancel_all()
        except Exception as e:
            logger.error(f"Error cancelling all scheduled notifications: {e}")
            return False
        logger.debug("All scheduled notifications cancelled")
        return True

    async def list_scheduled(self) -> List[ScheduledNotification]:
        """Snapshot of the platform queue, for diagnostics."""
        try:
            return list(await self.runtime.list_scheduled())
        except Exception as e:
            logger.error(f"Error listing scheduled notifications: {e}")
            return []
