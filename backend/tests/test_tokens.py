"""
Tests for the push token lifecycle

Registration is exercised against an httpx.MockTransport so every POST
the manager makes is visible to the test.
"""

import asyncio
import json

import httpx
import pytest

from notifications.channels import ChannelRegistry
from notifications.errors import ConfigurationError, RegistrationFailed, TokenFetchFailed
from notifications.models import DeviceToken, PermissionStatus, Platform
from notifications.permissions import PermissionGate
from notifications.preferences import PreferenceStore
from notifications.registration import RegistrationClient
from notifications.tokens import TokenLifecycleManager
from providers.fake_providers import FakeNotificationRuntime, InMemoryKeyValueStore


class RecordingBackend:
    """Registration endpoint answering with a scripted list of status codes."""

    def __init__(self, statuses=None):
        self.statuses = list(statuses or [])
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, json={"ok": status < 400})


def make_manager(
    backend=None,
    permission=PermissionStatus.GRANTED,
    project_id="proj-123",
    storage=None,
):
    runtime = FakeNotificationRuntime(permission=permission, grant_on_request=False)
    storage = storage or InMemoryKeyValueStore()
    backend = backend or RecordingBackend()
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    registration = RegistrationClient("https://api.test", client=client)
    gate = PermissionGate(runtime, ChannelRegistry(runtime))
    preferences = PreferenceStore(storage, runtime)
    manager = TokenLifecycleManager(
        runtime,
        storage,
        gate,
        registration,
        preferences,
        project_id=project_id,
        refresh_interval_seconds=3600,
    )
    return manager, runtime, backend, storage


@pytest.mark.asyncio
async def test_acquire_stores_and_registers():
    manager, runtime, backend, storage = make_manager()
    await manager.permissions.request()

    token = await manager.acquire_and_register()

    assert token.value == "ExponentPushToken[fake-proj-123-1]"
    assert token.platform == Platform.ANDROID
    assert backend.requests == [token.to_dict()]
    stored = json.loads(storage.data[TokenLifecycleManager.STORAGE_KEY])
    assert stored["token"] == token.value
    assert manager.registration_pending is False


@pytest.mark.asyncio
async def test_denied_permission_skips_fetch_and_http():
    manager, runtime, backend, _ = make_manager(permission=PermissionStatus.UNDETERMINED)
    await manager.permissions.request()

    assert await manager.acquire_and_register() is None
    assert runtime.token_fetches == 0
    assert backend.requests == []


@pytest.mark.asyncio
async def test_missing_project_id_is_configuration_error():
    manager, runtime, backend, _ = make_manager(project_id=None)
    await manager.permissions.request()

    assert await manager.acquire_and_register() is None
    assert await manager.acquire_and_register() is None
    assert isinstance(manager.last_error, ConfigurationError)
    assert runtime.token_fetches == 0
    assert backend.requests == []


@pytest.mark.asyncio
async def test_fetch_failure_is_soft():
    manager, runtime, backend, _ = make_manager()
    await manager.permissions.request()
    runtime.fail_token_fetch()

    assert await manager.acquire_and_register() is None
    assert isinstance(manager.last_error, TokenFetchFailed)
    assert backend.requests == []

    runtime.token_error = None
    assert await manager.acquire_and_register() is not None


@pytest.mark.asyncio
async def test_registration_failure_keeps_token_and_retries_without_refetch():
    backend = RecordingBackend(statuses=[500, 200])
    manager, runtime, _, storage = make_manager(backend=backend)
    await manager.permissions.request()

    token = await manager.acquire_and_register()
    assert token is not None
    assert manager.registration_pending is True
    assert isinstance(manager.last_error, RegistrationFailed)
    assert manager.last_error.status_code == 500
    assert TokenLifecycleManager.STORAGE_KEY in storage.data

    refreshed = await manager.refresh()
    assert refreshed == token
    assert runtime.token_fetches == 1
    assert len(backend.requests) == 2
    assert backend.requests[1]["token"] == token.value
    assert manager.registration_pending is False


@pytest.mark.asyncio
async def test_registration_timeout_is_soft():
    def hang(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(hang))
    manager, _, _, _ = make_manager()
    manager.registration = RegistrationClient("https://api.test", timeout=10.0, client=client)
    await manager.permissions.request()

    token = await manager.acquire_and_register()
    assert token is not None
    assert manager.registration_pending is True
    assert "timed out" in str(manager.last_error)


@pytest.mark.asyncio
async def test_refresh_skipped_when_push_disabled():
    manager, runtime, backend, _ = make_manager()
    await manager.permissions.request()
    await manager.preferences.set(push_enabled=False)

    assert await manager.refresh() is None
    assert runtime.token_fetches == 0
    assert backend.requests == []


@pytest.mark.asyncio
async def test_refresh_rechecks_permission():
    manager, runtime, backend, _ = make_manager()
    await manager.permissions.request()
    runtime.permission = PermissionStatus.DENIED

    assert await manager.refresh() is None
    assert runtime.token_fetches == 0


@pytest.mark.asyncio
async def test_superseded_token_keeps_user_id():
    manager, runtime, backend, _ = make_manager()
    await manager.permissions.request()
    await manager.acquire_and_register()
    await manager.update_user_id("rider-42")

    runtime.token_values.append("ExponentPushToken[rotated]")
    token = await manager.acquire_and_register()

    assert token.value == "ExponentPushToken[rotated]"
    assert token.user_id == "rider-42"
    assert backend.requests[-1]["userId"] == "rider-42"


@pytest.mark.asyncio
async def test_unchanged_token_keeps_issued_at():
    manager, runtime, _, _ = make_manager()
    await manager.permissions.request()
    runtime.token_values.extend(["ExponentPushToken[same]", "ExponentPushToken[same]"])

    first = await manager.acquire_and_register()
    second = await manager.acquire_and_register()
    assert second.issued_at == first.issued_at


@pytest.mark.asyncio
async def test_update_user_id_without_token():
    manager, _, backend, _ = make_manager()
    assert await manager.update_user_id("rider-42") is None
    assert backend.requests == []


@pytest.mark.asyncio
async def test_stored_token_loaded_from_storage():
    record = DeviceToken("ExponentPushToken[stored]", Platform.IOS, "device-7").to_dict()
    storage = InMemoryKeyValueStore({TokenLifecycleManager.STORAGE_KEY: json.dumps(record)})
    manager, _, _, _ = make_manager(storage=storage)

    token = await manager.get_stored_token()
    assert token.value == "ExponentPushToken[stored]"
    assert token.platform == Platform.IOS


@pytest.mark.asyncio
async def test_refresh_timer_ticks_and_stops():
    manager, runtime, backend, _ = make_manager()
    await manager.permissions.request()

    manager.start_refresh_timer(period_seconds=0.01)
    manager.start_refresh_timer(period_seconds=0.01)
    assert manager.refresh_running

    for _ in range(100):
        if runtime.token_fetches >= 2:
            break
        await asyncio.sleep(0.01)
    manager.stop()

    assert runtime.token_fetches >= 2
    assert not manager.refresh_running
    fetches = runtime.token_fetches
    await asyncio.sleep(0.05)
    assert runtime.token_fetches == fetches
