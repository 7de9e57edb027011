"""
Device push-token lifecycle.

Obtains the Expo push token for this installation, caches it locally,
registers it with the app backend and keeps it fresh on a fixed period.

Failure handling:
- missing project id is a configuration error, reported once, never retried
- token fetch and registration failures are soft: the cached token stays
  valid and the next refresh tick tries again
"""

import asyncio
import json
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from .errors import (
    ConfigurationError,
    PermissionDenied,
    RegistrationFailed,
    TokenFetchFailed,
)
from .models import DeviceToken
from .permissions import PermissionGate
from .preferences import PreferenceStore
from .registration import RegistrationClient

if TYPE_CHECKING:
    from providers.contracts import KeyValueStore, NotificationRuntime

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_SECONDS = 24 * 60 * 60


class RefreshTask:
    """Runs ``callback`` every ``period`` seconds until cancelled."""

    def __init__(self, period: float, callback: Callable[[], Awaitable[object]]):
        self.period = period
        self.callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.ensure_future(self._run())

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.period)
            try:
                await self.callback()
            except Exception:
                logger.exception("Token refresh tick failed")


class TokenLifecycleManager:
    """Acquires, persists, registers and refreshes the device token."""

    STORAGE_KEY = "pushNotificationToken"

    def __init__(
        self,
        runtime: "NotificationRuntime",
        storage: "KeyValueStore",
        permissions: PermissionGate,
        registration: RegistrationClient,
        preferences: PreferenceStore,
        project_id: Optional[str],
        refresh_interval_seconds: float = DEFAULT_REFRESH_SECONDS,
    ):
        self.runtime = runtime
        self.storage = storage
        self.permissions = permissions
        self.registration = registration
        self.preferences = preferences
        self.project_id = project_id
        self.refresh_interval_seconds = refresh_interval_seconds

        self.last_error: Optional[Exception] = None
        self.registration_pending = False
        self._token: Optional[DeviceToken] = None
        self._config_error_reported = False
        self._timer: Optional[RefreshTask] = None

    async def acquire_and_register(self) -> Optional[DeviceToken]:
        """
        Fetch a token from the platform, cache it and register it.

        Returns:
            The current token, or None if permission is missing, the
            configuration is incomplete or the platform fetch failed
        """
        try:
            self.permissions.require_granted()
        except PermissionDenied as e:
            logger.debug(f"Skipping push token fetch: {e}")
            return None

        if not self.project_id:
            self.last_error = ConfigurationError("Expo project ID not found in configuration")
            if not self._config_error_reported:
                self._config_error_reported = True
                logger.error(f"Cannot obtain push token: {self.last_error}")
            return None

        try:
            value = await self.runtime.get_push_token(self.project_id)
        except TokenFetchFailed as e:
            self.last_error = e
            logger.warning(f"Error getting push token, will retry on next refresh: {e}")
            return None
        except Exception as e:
            self.last_error = TokenFetchFailed(str(e))
            logger.warning(f"Error getting push token, will retry on next refresh: {e}")
            return None

        token = self._supersede(await self.get_stored_token(), value)
        await self._store(token)
        await self._register(token)
        logger.info(f"Push token obtained and stored: {token.value[:30]}...")
        return token

    async def refresh(self) -> Optional[DeviceToken]:
        """
        One refresh tick.

        Preference and permission are read now, not when the timer was
        started. If the last registration failed, the cached token is
        re-posted without asking the platform for a new one.
        """
        if not await self.preferences.are_enabled():
            logger.debug("Token refresh skipped: push notifications disabled")
            return None

        try:
            await self.permissions.refresh_status()
        except Exception as e:
            logger.warning(f"Could not re-check notification permission: {e}")
        if not self.permissions.is_granted:
            logger.debug("Token refresh skipped: permission not granted")
            return None

        cached = await self.get_stored_token()
        if self.registration_pending and cached is not None:
            await self._register(cached)
            return cached
        return await self.acquire_and_register()

    async def update_user_id(self, user_id: str) -> Optional[DeviceToken]:
        """Attach an authenticated user to the cached token and re-register it."""
        token = await self.get_stored_token()
        if token is None:
            logger.debug("No stored push token to attach user to")
            return None
        token = replace(token, user_id=user_id)
        await self._store(token)
        await self._register(token)
        return token

    async def get_stored_token(self) -> Optional[DeviceToken]:
        if self._token is not None:
            return self._token
        try:
            raw = await self.storage.get_item(self.STORAGE_KEY)
            if raw:
                self._token = DeviceToken.from_dict(json.loads(raw))
        except Exception as e:
            logger.error(f"Error getting stored token: {e}")
        return self._token

    def start_refresh_timer(self, period_seconds: Optional[float] = None) -> None:
        """Start the periodic refresh; a no-op if it is already running."""
        if self._timer is not None and self._timer.running:
            return
        self._timer = RefreshTask(period_seconds or self.refresh_interval_seconds, self.refresh)
        self._timer.start()

    @property
    def cached_token(self) -> Optional[DeviceToken]:
        return self._token

    @property
    def refresh_running(self) -> bool:
        return self._timer is not None and self._timer.running

    def stop(self) -> None:
        """Cancel the refresh timer. Safe to call when it never started."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _supersede(self, previous: Optional[DeviceToken], value: str) -> DeviceToken:
        if previous is not None and previous.value == value:
            return previous
        return DeviceToken(
            value=value,
            platform=self.runtime.platform,
            device_id=self.runtime.device_id or "unknown",
            user_id=previous.user_id if previous else None,
        )

    async def _store(self, token: DeviceToken) -> None:
        self._token = token
        try:
            await self.storage.set_item(self.STORAGE_KEY, json.dumps(token.to_dict()))
        except Exception as e:
            logger.error(f"Error storing token locally: {e}")

    async def _register(self, token: DeviceToken) -> bool:
        try:
            await self.registration.register(token)
        except RegistrationFailed as e:
            self.registration_pending = True
            self.last_error = e
            logger.warning(f"Error sending token to server, will retry on next refresh: {e}")
            return False
        self.registration_pending = False
        return True
