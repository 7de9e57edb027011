"""
Notification Service - wires the notification lifecycle together.

Start-up:
  preferences.initialize()
    -> push enabled: channels.configure() -> permissions.request()
       -> granted: tokens.acquire_and_register() + refresh timer
       -> dispatcher.attach()
Preference changes re-enter the same path (enable) or suspend it
(disable: scheduled notifications cancelled, refresh timer stopped,
backend registration left in place for a later re-enable).
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .channels import ChannelRegistry
from .config import NotificationSettings
from .dispatcher import EventDispatcher
from .models import NotificationPreferences
from .permissions import PermissionGate, PermissionState
from .preferences import PreferenceStore
from .registration import RegistrationClient
from .scheduler import NotificationScheduler
from .tokens import TokenLifecycleManager

if TYPE_CHECKING:
    from providers.contracts import KeyValueStore, NotificationRuntime

logger = logging.getLogger(__name__)


class NotificationService:
    """Owns one instance of each lifecycle component."""

    def __init__(
        self,
        runtime: "NotificationRuntime",
        storage: "KeyValueStore",
        settings: NotificationSettings,
        registration: Optional[RegistrationClient] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        """
        Args:
            runtime: Platform notification subsystem
            storage: Key-value store for the preference and token records
            settings: Loaded NotificationSettings
            registration: Optional registration client (default: built from settings)
            dispatcher: Optional dispatcher with app-specific handlers
        """
        self.runtime = runtime
        self.settings = settings
        self.registration = registration or RegistrationClient(
            settings.api_base_url, timeout=settings.registration_timeout_seconds
        )
        self.preferences = PreferenceStore(storage, runtime)
        self.channels = ChannelRegistry(runtime)
        self.permissions = PermissionGate(runtime, self.channels, settings.settings_url)
        self.tokens = TokenLifecycleManager(
            runtime,
            storage,
            self.permissions,
            self.registration,
            self.preferences,
            project_id=settings.project_id,
            refresh_interval_seconds=settings.refresh_interval_seconds,
        )
        self.scheduler = NotificationScheduler(runtime, self.preferences, self.channels)
        self.dispatcher = dispatcher or EventDispatcher()

        self.initialized = False
        self.active = False
        self._initializing: Optional["asyncio.Future[bool]"] = None
        self.preferences.add_listener(self._on_preferences_applied)

    async def initialize(self) -> bool:
        """
        Load preferences and bring the lifecycle up if push is enabled.

        Safe to call repeatedly; only the first call does work. Overlapping
        callers share the first call's result.

        Returns:
            True if push is enabled and permission was granted
        """
        if self.initialized:
            return self.active
        if self._initializing is not None:
            return await asyncio.shield(self._initializing)
        self._initializing = asyncio.ensure_future(self._initialize())
        try:
            return await self._initializing
        finally:
            self._initializing = None

    async def _initialize(self) -> bool:
        try:
            await self.preferences.initialize()
        except Exception:
            logger.exception("Failed to initialize notification service")
            return False
        self.initialized = True
        return self.active

    async def update_preferences(self, **updates) -> NotificationPreferences:
        return await self.preferences.set(updates)

    async def update_user_id(self, user_id: str) -> bool:
        return await self.tokens.update_user_id(user_id) is not None

    async def _on_preferences_applied(
        self,
        previous: Optional[NotificationPreferences],
        current: NotificationPreferences,
    ) -> None:
        was_enabled = previous.push_enabled if previous is not None else None
        if current.push_enabled:
            retry = not self.active and self.permissions.state != PermissionState.DENIED
            if was_enabled is not True or retry:
                await self._enable()
        elif was_enabled is not False:
            self._suspend()

    async def _enable(self) -> None:
        await self.channels.configure()
        if not await self.permissions.request():
            logger.info("Notification permissions not granted")
            self.active = False
            return
        await self.tokens.acquire_and_register()
        self.tokens.start_refresh_timer()
        self.dispatcher.attach(self.runtime)
        self.active = True
        logger.info("Notification service enabled")

    def _suspend(self) -> None:
        self.tokens.stop()
        self.active = False
        logger.info("Notification service suspended by user preference")

    def diagnostics(self) -> Dict[str, Any]:
        token = self.tokens.cached_token
        return {
            "initialized": self.initialized,
            "active": self.active,
            "permission": self.permissions.state.value,
            "channels": sorted(c.id for c in self.channels.all()),
            "token": token.to_dict() if token else None,
            "registration_pending": self.tokens.registration_pending,
            "refresh_running": self.tokens.refresh_running,
            "listeners_attached": self.dispatcher.attached,
            "handler_failures": self.dispatcher.failures,
            "preferences_persist_pending": self.preferences.persist_pending,
            "errors": {
                name: repr(error)
                for name, error in (
                    ("permissions", self.permissions.last_error),
                    ("tokens", self.tokens.last_error),
                    ("preferences", self.preferences.last_error),
                )
                if error is not None
            },
        }

    async def shutdown(self) -> None:
        """Stop the refresh timer, drop listeners and close the HTTP client."""
        self.tokens.stop()
        self.dispatcher.detach()
        self.active = False
        await self.registration.close()
