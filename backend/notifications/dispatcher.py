"""
Routes platform notification events to per-type handlers.

Two tables are kept, keyed by NotificationType:
- received: side-effect handlers for notifications arriving in the foreground
- responded: navigation intents for notifications the user tapped

Both tables must cover every NotificationType; a missing entry is a
ValueError at construction time, not a silently ignored branch.
While a handler runs the scheduler refuses to schedule or cancel from
that task. Tasks the handler spawns are not restricted.
"""

import asyncio
import contextvars
import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .models import EventKind, NotificationData, NotificationEvent, NotificationType

if TYPE_CHECKING:
    from providers.contracts import NotificationRuntime, Subscription

logger = logging.getLogger(__name__)

Handler = Callable[[NotificationData], Union[None, Awaitable[None]]]

# Holds the task running a handler. Tasks a handler spawns inherit the value
# but are different tasks, so they are not treated as inside the dispatch.
_dispatching: "contextvars.ContextVar[Optional[asyncio.Task]]" = contextvars.ContextVar(
    "notification_dispatching", default=None
)


def in_dispatch() -> bool:
    """True while a notification handler is running."""
    owner = _dispatching.get()
    return owner is not None and owner is asyncio.current_task()


@dataclass(frozen=True)
class NavigationIntent:
    """Screen to open in response to a tapped notification."""
    screen: str
    params: Dict[str, Any] = field(default_factory=dict)


Navigator = Callable[[NavigationIntent], Union[None, Awaitable[None]]]


def _params(data: NotificationData, *names: str) -> Dict[str, Any]:
    return {name: getattr(data, name) for name in names if getattr(data, name) is not None}


NAVIGATION_INTENTS: Dict[NotificationType, Callable[[NotificationData], NavigationIntent]] = {
    NotificationType.RIDE_REQUEST: lambda d: NavigationIntent("RideDetails", _params(d, "ride_id")),
    NotificationType.RIDE_ACCEPTED: lambda d: NavigationIntent("LiveTracking", _params(d, "ride_id")),
    NotificationType.RIDE_ARRIVED: lambda d: NavigationIntent(
        "LiveTracking", dict(_params(d, "ride_id"), driver_arrived=True)
    ),
    NotificationType.RIDE_STARTED: lambda d: NavigationIntent("RideInProgress", _params(d, "ride_id")),
    NotificationType.RIDE_COMPLETED: lambda d: NavigationIntent("RideSummary", _params(d, "ride_id")),
    NotificationType.PAYMENT: lambda d: NavigationIntent("Payment", _params(d, "amount")),
    NotificationType.PAYMENT_FAILED: lambda d: NavigationIntent("Payment", _params(d, "amount")),
    NotificationType.PROMO: lambda d: NavigationIntent("Offers", _params(d, "promo_code")),
    NotificationType.CHAT: lambda d: NavigationIntent("Chat", _params(d, "ride_id", "sender_id")),
    NotificationType.GENERAL: lambda d: NavigationIntent("Home"),
}

RECEIVED_LABELS: Dict[NotificationType, str] = {
    NotificationType.RIDE_REQUEST: "Ride request",
    NotificationType.RIDE_ACCEPTED: "Ride accepted",
    NotificationType.RIDE_ARRIVED: "Driver arrived",
    NotificationType.RIDE_STARTED: "Ride started",
    NotificationType.RIDE_COMPLETED: "Ride completed",
    NotificationType.PAYMENT: "Payment",
    NotificationType.PAYMENT_FAILED: "Payment failed",
    NotificationType.PROMO: "Promo",
    NotificationType.CHAT: "Chat",
    NotificationType.GENERAL: "General",
}


def _check_exhaustive(table: Mapping[NotificationType, Any], name: str) -> None:
    missing = [t.value for t in NotificationType if t not in table]
    if missing:
        raise ValueError(f"{name} table has no handler for: {', '.join(missing)}")


_check_exhaustive(NAVIGATION_INTENTS, "navigation")
_check_exhaustive(RECEIVED_LABELS, "received")


def _log_received(kind: NotificationType) -> Handler:
    label = RECEIVED_LABELS[kind]

    def handler(data: NotificationData) -> None:
        logger.debug(f"{label} notification: {data.title}")

    return handler


def _navigate_to(navigator: Navigator) -> Callable[[NotificationType], Handler]:
    def build(kind: NotificationType) -> Handler:
        intent_for = NAVIGATION_INTENTS[kind]

        def handler(data: NotificationData):
            return navigator(intent_for(data))

        return handler

    return build


def _log_navigation(intent: NavigationIntent) -> None:
    logger.debug(f"Navigate to {intent.screen} {intent.params}")


class EventDispatcher:
    """Dispatches received/responded events by payload type."""

    def __init__(
        self,
        received_handlers: Optional[Mapping[NotificationType, Handler]] = None,
        response_handlers: Optional[Mapping[NotificationType, Handler]] = None,
        navigator: Optional[Navigator] = None,
    ):
        """
        Args:
            received_handlers: Overrides for the received table
            response_handlers: Overrides for the responded table
            navigator: Callback receiving NavigationIntents from the default
                responded handlers
        """
        navigate = _navigate_to(navigator or _log_navigation)
        self._received: Dict[NotificationType, Handler] = {t: _log_received(t) for t in NotificationType}
        self._responded: Dict[NotificationType, Handler] = {t: navigate(t) for t in NotificationType}
        self._received.update(received_handlers or {})
        self._responded.update(response_handlers or {})
        _check_exhaustive(self._received, "received")
        _check_exhaustive(self._responded, "responded")

        self.in_foreground = True
        self.failures = 0
        self._subscriptions: List["Subscription"] = []

    def on(self, kind: NotificationType, handler: Handler, responded: bool = False) -> None:
        """Replace the handler for ``kind`` in the received or responded table."""
        table = self._responded if responded else self._received
        table[NotificationType(kind)] = handler

    def set_foreground(self, in_foreground: bool) -> None:
        self.in_foreground = in_foreground

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    def attach(self, runtime: "NotificationRuntime") -> None:
        """Subscribe to the runtime's events. Attaching twice is a no-op."""
        if self._subscriptions:
            return
        self._subscriptions = [
            runtime.add_received_listener(self.on_received),
            runtime.add_response_listener(self.on_responded),
        ]

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    async def on_received(self, event: NotificationEvent) -> bool:
        if not self.in_foreground:
            logger.debug(f"Ignoring {event.payload.type.value} notification received in background")
            return False
        return await self._dispatch(self._received, event)

    async def on_responded(self, event: NotificationEvent) -> bool:
        return await self._dispatch(self._responded, event)

    async def dispatch(self, event: NotificationEvent) -> bool:
        if event.kind == EventKind.RESPONDED:
            return await self.on_responded(event)
        return await self.on_received(event)

    async def _dispatch(self, table: Mapping[NotificationType, Handler], event: NotificationEvent) -> bool:
        handler = table[event.payload.type]
        token = _dispatching.set(asyncio.current_task())
        try:
            result = handler(event.payload)
            if inspect.isawaitable(result):
                await result
            return True
        except Exception:
            self.failures += 1
            logger.exception(
                f"Notification handler failed for {event.kind.value} {event.payload.type.value}"
            )
            return False
        finally:
            _dispatching.reset(token)
