from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from notifications.config import NotificationSettings, load_settings

from .contracts import KeyValueStore, NotificationRuntime
from .fake_providers import FakeNotificationRuntime, InMemoryKeyValueStore
from .real_providers import LocalNotificationRuntime, MongoKeyValueStore


@dataclass
class ProviderSet:
    storage: KeyValueStore
    runtime: NotificationRuntime


def _build_prod(settings: NotificationSettings) -> ProviderSet:
    return ProviderSet(
        storage=MongoKeyValueStore(settings.mongo_url, settings.db_name),
        runtime=LocalNotificationRuntime(settings),
    )


def _build_fake() -> ProviderSet:
    return ProviderSet(
        storage=InMemoryKeyValueStore(),
        runtime=FakeNotificationRuntime(),
    )


_provider_cache: Optional[ProviderSet] = None


def load_providers(
    mode: Optional[str] = None, settings: Optional[NotificationSettings] = None
) -> ProviderSet:
    global _provider_cache
    settings = settings or load_settings()
    active_mode = (mode or settings.mode).lower()
    if _provider_cache and mode is None:
        return _provider_cache
    if active_mode in {"demo", "test"}:
        _provider_cache = _build_fake()
    else:
        _provider_cache = _build_prod(settings)
    return _provider_cache


def get_providers() -> ProviderSet:
    return load_providers()


def reload_providers(mode: Optional[str] = None) -> ProviderSet:
    global _provider_cache
    _provider_cache = None
    return load_providers(mode)
