"""
Tests for notification event routing
"""

import asyncio

import pytest

from notifications import templates
from notifications.channels import ChannelRegistry
from notifications.dispatcher import EventDispatcher, NavigationIntent, in_dispatch
from notifications.errors import ScheduleFailed
from notifications.models import EventKind, NotificationData, NotificationEvent, NotificationType
from notifications.preferences import PreferenceStore
from notifications.scheduler import NotificationScheduler
from providers.fake_providers import FakeNotificationRuntime, InMemoryKeyValueStore


def event(kind, data):
    return NotificationEvent(kind, data)


@pytest.mark.asyncio
async def test_chat_routed_to_chat_handlers_only():
    received, responded = [], []
    dispatcher = EventDispatcher()
    dispatcher.on(NotificationType.CHAT, received.append)
    dispatcher.on(NotificationType.CHAT, responded.append, responded=True)
    dispatcher.on(NotificationType.GENERAL, lambda d: received.append("general"))

    data = templates.chat("ride-1", "driver-1", "Sam", "On my way")
    assert await dispatcher.dispatch(event(EventKind.RECEIVED, data)) is True

    assert received == [data]
    assert responded == []


@pytest.mark.asyncio
async def test_unknown_type_handled_as_general():
    seen = []
    dispatcher = EventDispatcher()
    dispatcher.on(NotificationType.GENERAL, seen.append)

    data = NotificationData.from_dict({"type": "surge_pricing", "title": "t", "message": "m"})
    assert await dispatcher.dispatch(event(EventKind.RECEIVED, data)) is True
    assert len(seen) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data,expected",
    [
        (templates.ride_accepted("r1", "d1", "Sam", "5 min"), NavigationIntent("LiveTracking", {"ride_id": "r1"})),
        (
            templates.driver_arrived("r1", "d1", "Sam"),
            NavigationIntent("LiveTracking", {"ride_id": "r1", "driver_arrived": True}),
        ),
        (templates.ride_completed("r1", "d1", 12.5), NavigationIntent("RideSummary", {"ride_id": "r1"})),
        (templates.payment(False, 9.0, reason="Card declined"), NavigationIntent("Payment", {"amount": 9.0})),
        (templates.promo("SAVE10", "10%", "2025-01-01"), NavigationIntent("Offers", {"promo_code": "SAVE10"})),
        (
            templates.chat("r1", "d1", "Sam", "hi"),
            NavigationIntent("Chat", {"ride_id": "r1", "sender_id": "d1"}),
        ),
    ],
)
async def test_responded_default_navigation(data, expected):
    intents = []
    dispatcher = EventDispatcher(navigator=intents.append)

    await dispatcher.dispatch(event(EventKind.RESPONDED, data))
    assert intents == [expected]


@pytest.mark.asyncio
async def test_background_received_ignored():
    seen = []
    dispatcher = EventDispatcher(received_handlers={NotificationType.PROMO: seen.append})
    dispatcher.set_foreground(False)

    data = templates.promo("SAVE10", "10%", "2025-01-01")
    assert await dispatcher.dispatch(event(EventKind.RECEIVED, data)) is False
    assert seen == []


@pytest.mark.asyncio
async def test_handler_failure_contained():
    def broken(data):
        raise RuntimeError("handler bug")

    dispatcher = EventDispatcher(received_handlers={NotificationType.GENERAL: broken})
    data = NotificationData(type=NotificationType.GENERAL, title="t", message="m")

    assert await dispatcher.dispatch(event(EventKind.RECEIVED, data)) is False
    assert dispatcher.failures == 1
    assert in_dispatch() is False


@pytest.mark.asyncio
async def test_async_handler_awaited():
    seen = []

    async def handler(data):
        seen.append(in_dispatch())

    dispatcher = EventDispatcher(response_handlers={NotificationType.PAYMENT: handler})
    await dispatcher.dispatch(event(EventKind.RESPONDED, templates.payment(True, 20.0)))
    assert seen == [True]


@pytest.mark.asyncio
async def test_handlers_cannot_schedule_or_cancel():
    runtime = FakeNotificationRuntime()
    scheduler = NotificationScheduler(
        runtime, PreferenceStore(InMemoryKeyValueStore(), runtime), ChannelRegistry(runtime)
    )
    outcomes = []

    async def handler(data):
        try:
            await scheduler.schedule("nested", "nested")
        except ScheduleFailed:
            outcomes.append("schedule refused")
        outcomes.append(await scheduler.cancel_all())

    dispatcher = EventDispatcher(received_handlers={NotificationType.GENERAL: handler})
    data = NotificationData(type=NotificationType.GENERAL, title="t", message="m")
    await dispatcher.dispatch(event(EventKind.RECEIVED, data))

    assert outcomes == ["schedule refused", False]
    assert runtime.schedule_calls == 0
    assert runtime.cancel_all_calls == 0


@pytest.mark.asyncio
async def test_task_started_by_handler_may_schedule():
    runtime = FakeNotificationRuntime()
    scheduler = NotificationScheduler(
        runtime, PreferenceStore(InMemoryKeyValueStore(), runtime), ChannelRegistry(runtime)
    )
    spawned = []

    async def follow_up():
        assert not in_dispatch()
        return await scheduler.schedule("Follow-up", "Later")

    async def handler(data):
        assert in_dispatch()
        spawned.append(asyncio.ensure_future(follow_up()))

    dispatcher = EventDispatcher(received_handlers={NotificationType.GENERAL: handler})
    data = NotificationData(type=NotificationType.GENERAL, title="t", message="m")
    await dispatcher.dispatch(event(EventKind.RECEIVED, data))

    assert await spawned[0] != ""
    assert runtime.schedule_calls == 1
    assert dispatcher.failures == 0


@pytest.mark.asyncio
async def test_attach_is_idempotent_and_detach_unsubscribes():
    runtime = FakeNotificationRuntime()
    seen = []
    dispatcher = EventDispatcher(received_handlers={NotificationType.RIDE_STARTED: seen.append})

    dispatcher.attach(runtime)
    dispatcher.attach(runtime)
    assert runtime.listener_count == 2

    await runtime.emit_received(templates.ride_started("r1", "d1"))
    assert len(seen) == 1

    dispatcher.detach()
    assert runtime.listener_count == 0
    await runtime.emit_received(templates.ride_started("r1", "d1"))
    assert len(seen) == 1


def test_incomplete_table_rejected():
    from notifications.dispatcher import _check_exhaustive

    with pytest.raises(ValueError, match="ride_request"):
        _check_exhaustive({NotificationType.GENERAL: None}, "received")
