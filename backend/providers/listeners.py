from __future__ import annotations

import logging
from typing import List

from notifications.models import NotificationEvent

from .contracts import EventListener

logger = logging.getLogger(__name__)


class ListenerSubscription:
    """Handle returned by a runtime for one registered listener."""

    def __init__(self, owner: "ListenerSet", listener: EventListener) -> None:
        self._owner = owner
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._owner.discard(self._listener)
            self.active = False


class ListenerSet:
    def __init__(self) -> None:
        self._listeners: List[EventListener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, listener: EventListener) -> ListenerSubscription:
        self._listeners.append(listener)
        return ListenerSubscription(self, listener)

    def discard(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def emit(self, event: NotificationEvent) -> None:
        # Snapshot so a listener may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception(f"Notification listener failed for {event.kind.value} event")
