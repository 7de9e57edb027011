"""
Notifications package - device notification lifecycle for the rider app.

Submodules:
- models: Tokens, preferences, channels, triggers and typed payloads
- preferences: Persisted user toggles and their effects
- channels: Delivery channel declarations
- permissions: OS permission gate
- tokens: Push token acquisition, registration and refresh
- registration: Client for the device registration API
- scheduler: Local notification scheduling
- dispatcher: Received/responded event routing
- expo_push: Expo push notification client for server-initiated sends
- service: Lifecycle wiring
"""

from .models import (
    Channel,
    DeviceToken,
    NotificationData,
    NotificationEvent,
    NotificationPreferences,
    NotificationType,
    Priority,
    ScheduledNotification,
    Trigger,
)
from .errors import (
    ConfigurationError,
    NotificationError,
    PermissionDenied,
    PreferencePersistFailed,
    RegistrationFailed,
    ScheduleFailed,
    TokenFetchFailed,
)
from .config import NotificationSettings, load_settings
from .preferences import PreferenceStore
from .channels import ChannelRegistry
from .permissions import PermissionGate, PermissionState
from .tokens import TokenLifecycleManager
from .registration import RegistrationClient
from .scheduler import NotificationScheduler
from .dispatcher import EventDispatcher, NavigationIntent
from .expo_push import ExpoPushClient
from .service import NotificationService

__all__ = [
    # Models
    "Channel",
    "DeviceToken",
    "NotificationData",
    "NotificationEvent",
    "NotificationPreferences",
    "NotificationType",
    "Priority",
    "ScheduledNotification",
    "Trigger",
    # Errors
    "ConfigurationError",
    "NotificationError",
    "PermissionDenied",
    "PreferencePersistFailed",
    "RegistrationFailed",
    "ScheduleFailed",
    "TokenFetchFailed",
    # Config
    "NotificationSettings",
    "load_settings",
    # Components
    "PreferenceStore",
    "ChannelRegistry",
    "PermissionGate",
    "PermissionState",
    "TokenLifecycleManager",
    "RegistrationClient",
    "NotificationScheduler",
    "EventDispatcher",
    "NavigationIntent",
    "ExpoPushClient",
    "NotificationService",
]
