"""Runtime configuration for the notification lifecycle, read from the environment."""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_HOURS = 24
DEFAULT_REGISTRATION_TIMEOUT = 10.0


@dataclass(frozen=True)
class NotificationSettings:
    """Notification lifecycle configuration."""

    mode: str = "prod"

    # Registration API
    api_base_url: str = "http://localhost:8000"
    registration_timeout_seconds: float = DEFAULT_REGISTRATION_TIMEOUT

    # Expo
    project_id: Optional[str] = None
    expo_access_token: Optional[str] = None
    app_id: str = "com.ridehail.app"
    device_push_token: Optional[str] = None

    # Token refresh period
    refresh_interval_seconds: float = DEFAULT_REFRESH_HOURS * 60 * 60

    # Deep link shown with the permission explanation
    settings_url: str = "app-settings:"

    # Storage
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "ridehail_notifications"


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number, using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring {name}={raw!r}: must be positive, using {default}")
        return default
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> NotificationSettings:
    """Build settings from ``env`` (defaults to ``os.environ``)."""
    env = os.environ if env is None else env
    refresh_hours = _float(env, "NOTIFY_REFRESH_HOURS", DEFAULT_REFRESH_HOURS)
    return NotificationSettings(
        mode=env.get("NOTIFY_MODE", "prod").lower(),
        api_base_url=env.get("NOTIFY_API_BASE_URL", "http://localhost:8000").rstrip("/"),
        registration_timeout_seconds=_float(
            env, "NOTIFY_REGISTRATION_TIMEOUT", DEFAULT_REGISTRATION_TIMEOUT
        ),
        project_id=env.get("EXPO_PROJECT_ID") or None,
        expo_access_token=env.get("EXPO_ACCESS_TOKEN") or None,
        app_id=env.get("NOTIFY_APP_ID", "com.ridehail.app"),
        device_push_token=env.get("NOTIFY_DEVICE_PUSH_TOKEN") or None,
        refresh_interval_seconds=refresh_hours * 60 * 60,
        settings_url=env.get("NOTIFY_SETTINGS_URL", "app-settings:"),
        mongo_url=env.get("MONGO_URL", "mongodb://localhost:27017"),
        db_name=env.get("DB_NAME", "ridehail_notifications"),
    )
