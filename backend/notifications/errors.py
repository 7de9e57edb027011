"""Failure taxonomy for the notification lifecycle."""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification lifecycle failures."""


class PermissionDenied(NotificationError):
    """The user declined the OS notification permission."""

    def __init__(self, message: str = "Notification permission not granted"):
        super().__init__(message)


class ConfigurationError(NotificationError):
    """Required project or identity configuration is missing."""


class TokenFetchFailed(NotificationError):
    """The platform could not issue a push token right now."""


class RegistrationFailed(NotificationError):
    """The registration endpoint answered non-2xx or did not answer in time."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ScheduleFailed(NotificationError):
    """A local notification could not be scheduled."""


class PreferencePersistFailed(NotificationError):
    """The preference record could not be written to storage."""
