"""
Platform providers for the notification lifecycle.

``load_providers`` picks fakes in demo/test mode (NOTIFY_MODE) and the
MongoDB store plus local runtime otherwise.
"""

from .contracts import KeyValueStore, NotificationRuntime, Subscription
from .registry import get_providers, reload_providers, load_providers, ProviderSet

__all__ = [
    "KeyValueStore",
    "NotificationRuntime",
    "Subscription",
    "get_providers",
    "reload_providers",
    "load_providers",
    "ProviderSet",
]
