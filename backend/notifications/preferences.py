"""
Notification preference store.

Persists the user's notification/location/privacy toggles as one JSON
record and applies the push toggle to the platform runtime. The store is
the single source of truth for "is push enabled".

Writes are serialized with an asyncio lock: each ``set`` reads the current
record, merges, persists and applies effects before the next one starts,
so back-to-back toggles cannot overwrite each other.
"""

import asyncio
import json
import logging
from dataclasses import fields, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Mapping, Optional

from .errors import PreferencePersistFailed
from .models import NotificationPreferences, SHOW_ALL, SHOW_NONE, utcnow

if TYPE_CHECKING:
    from providers.contracts import KeyValueStore, NotificationRuntime

logger = logging.getLogger(__name__)

PreferenceListener = Callable[
    [Optional[NotificationPreferences], NotificationPreferences], Awaitable[None]
]

DEFAULT_PREFERENCES = NotificationPreferences()

_SETTABLE = {f.name for f in fields(NotificationPreferences)} - {"last_updated"}


class PreferenceStore:
    """Persisted notification preferences with side effects on the runtime."""

    STORAGE_KEY = "notification_preferences"

    def __init__(
        self,
        storage: "KeyValueStore",
        runtime: "NotificationRuntime",
        clock: Callable = utcnow,
    ):
        self.storage = storage
        self.runtime = runtime
        self.clock = clock
        self.last_error: Optional[Exception] = None
        self._current: Optional[NotificationPreferences] = None
        self._dirty = False
        self._lock = asyncio.Lock()
        self._listeners: List[PreferenceListener] = []

    def add_listener(self, listener: PreferenceListener) -> None:
        """
        Register a callback run at the end of ``apply_effects``.

        Called with (previous, current); previous is None on initialize.
        Listeners must not call ``set`` themselves.
        """
        self._listeners.append(listener)

    async def initialize(self) -> NotificationPreferences:
        """Load the persisted record and apply it."""
        async with self._lock:
            prefs = await self._load()
            await self.apply_effects(prefs, previous=None)
            return prefs

    async def get(self) -> NotificationPreferences:
        """Current preferences; never raises, falls back to defaults."""
        if self._current is not None:
            return self._current
        return await self._load()

    async def are_enabled(self) -> bool:
        prefs = await self.get()
        return prefs.push_enabled

    async def set(self, updates: Optional[Mapping[str, Any]] = None, **kwargs) -> NotificationPreferences:
        """
        Merge ``updates`` over the current record, persist, apply effects.

        Effects are applied before returning, so a caller that schedules
        right after disabling push observes the disabled state.

        Raises:
            ValueError: unknown preference name or non-boolean value
        """
        changes = dict(updates or {}, **kwargs)
        unknown = set(changes) - _SETTABLE
        if unknown:
            raise ValueError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            if not isinstance(value, bool):
                raise ValueError(f"Preference {name} must be a boolean, got {value!r}")

        async with self._lock:
            previous = await self.get()
            # lastUpdated never goes backwards, even if the wall clock does
            stamp = max(self.clock(), previous.last_updated)
            prefs = replace(previous, last_updated=stamp, **changes)
            self._current = prefs
            await self._persist(prefs)
            await self.apply_effects(prefs, previous=previous)
            logger.debug(f"Notification preferences updated: {prefs.to_dict()}")
            return prefs

    async def update_preference(self, name: str, value: bool) -> NotificationPreferences:
        return await self.set({name: value})

    async def reset_to_defaults(self) -> NotificationPreferences:
        """Drop the stored record and apply the defaults."""
        async with self._lock:
            previous = await self.get()
            try:
                await self.storage.remove_item(self.STORAGE_KEY)
            except Exception as e:
                self.last_error = PreferencePersistFailed(f"Could not remove preferences: {e}")
                logger.warning(str(self.last_error))
            self._current = DEFAULT_PREFERENCES
            await self.apply_effects(DEFAULT_PREFERENCES, previous=previous)
            return DEFAULT_PREFERENCES

    async def apply_effects(
        self,
        prefs: NotificationPreferences,
        previous: Optional[NotificationPreferences] = None,
    ) -> None:
        """Install the display handler for ``prefs`` and notify listeners."""
        if prefs.push_enabled:
            self.runtime.set_display_handler(SHOW_ALL)
        else:
            self.runtime.set_display_handler(SHOW_NONE)
            try:
                await self.runtime.cancel_all()
            except Exception as e:
                logger.error(f"Failed to cancel scheduled notifications: {e}")

        for listener in self._listeners:
            try:
                await listener(previous, prefs)
            except Exception:
                logger.exception("Preference listener failed")

    async def _load(self) -> NotificationPreferences:
        try:
            raw = await self.storage.get_item(self.STORAGE_KEY)
        except Exception as e:
            logger.error(f"Error reading notification preferences: {e}")
            return DEFAULT_PREFERENCES

        prefs = DEFAULT_PREFERENCES
        if raw:
            try:
                doc = json.loads(raw)
                if not isinstance(doc, dict):
                    raise ValueError(f"expected an object, got {type(doc).__name__}")
                prefs = NotificationPreferences.from_dict(doc, DEFAULT_PREFERENCES)
            except (ValueError, OverflowError, OSError) as e:
                logger.error(f"Corrupt notification preferences, using defaults: {e}")
                prefs = DEFAULT_PREFERENCES
        self._current = prefs
        return prefs

    async def _persist(self, prefs: NotificationPreferences) -> bool:
        try:
            await self.storage.set_item(self.STORAGE_KEY, json.dumps(prefs.to_dict()))
        except Exception as e:
            # The in-memory record stays authoritative; the next set() rewrites it.
            self._dirty = True
            self.last_error = PreferencePersistFailed(f"Could not persist preferences: {e}")
            logger.warning(str(self.last_error))
            return False
        self._dirty = False
        return True

    @property
    def persist_pending(self) -> bool:
        return self._dirty
