"""
Notification domain models.

Defines device tokens, user preferences, delivery channels, scheduled
notifications, platform events and the typed notification payload.
Wire helpers (to_dict / from_dict) use the camelCase keys the mobile
runtime and the registration API exchange.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_millis(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)


class Platform(str, Enum):
    """Platforms a device token can be issued for."""
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


class Importance(str, Enum):
    """Channel importance levels."""
    LOW = "low"
    DEFAULT = "default"
    HIGH = "high"
    MAX = "max"


class Priority(str, Enum):
    """Local notification priority."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class PermissionStatus(str, Enum):
    """OS-level permission status as reported by the platform."""
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class NotificationType(str, Enum):
    """Discriminator carried in every notification payload."""
    RIDE_REQUEST = "ride_request"
    RIDE_ACCEPTED = "ride_accepted"
    RIDE_ARRIVED = "ride_arrived"
    RIDE_STARTED = "ride_started"
    RIDE_COMPLETED = "ride_completed"
    PAYMENT = "payment"
    PAYMENT_FAILED = "payment_failed"
    PROMO = "promo"
    CHAT = "chat"
    GENERAL = "general"


class EventKind(str, Enum):
    RECEIVED = "received"
    RESPONDED = "responded"


@dataclass(frozen=True)
class DeviceToken:
    """Push-delivery identity of this app installation."""
    value: str
    platform: Platform
    device_id: str
    user_id: Optional[str] = None
    issued_at: datetime = None

    def __post_init__(self):
        if self.issued_at is None:
            object.__setattr__(self, 'issued_at', utcnow())

    def to_dict(self) -> Dict[str, Any]:
        """Registration body, also the persisted record."""
        doc = {
            "token": self.value,
            "platform": self.platform.value,
            "deviceId": self.device_id,
            "timestamp": to_millis(self.issued_at),
        }
        if self.user_id:
            doc["userId"] = self.user_id
        return doc

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "DeviceToken":
        return cls(
            value=doc["token"],
            platform=Platform(doc["platform"]),
            device_id=doc.get("deviceId") or "unknown",
            user_id=doc.get("userId"),
            issued_at=from_millis(doc["timestamp"]) if doc.get("timestamp") is not None else None,
        )


# snake_case field -> persisted key
PREFERENCE_KEYS = {
    "push_enabled": "pushNotifications",
    "location_services": "locationServices",
    "auto_payment": "autoPayment",
    "share_data": "shareData",
}


@dataclass(frozen=True)
class NotificationPreferences:
    """User toggles. One record per installation."""
    push_enabled: bool = True
    location_services: bool = True
    auto_payment: bool = False
    share_data: bool = True
    last_updated: datetime = EPOCH

    def to_dict(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            key: getattr(self, name) for name, key in PREFERENCE_KEYS.items()
        }
        doc["lastUpdated"] = to_millis(self.last_updated)
        return doc

    @classmethod
    def from_dict(
        cls,
        doc: Mapping[str, Any],
        defaults: Optional["NotificationPreferences"] = None,
    ) -> "NotificationPreferences":
        """Merge a stored record over defaults; keys with the wrong type are ignored."""
        base = defaults or cls()
        values: Dict[str, Any] = {}
        for name, key in PREFERENCE_KEYS.items():
            value = doc.get(key)
            if isinstance(value, bool):
                values[name] = value
        last_updated = doc.get("lastUpdated")
        if isinstance(last_updated, (int, float)) and not isinstance(last_updated, bool):
            values["last_updated"] = from_millis(last_updated)
        return replace(base, **values)


@dataclass(frozen=True)
class Channel:
    """Named delivery configuration referenced by scheduled notifications."""
    id: str
    name: str
    importance: Importance = Importance.DEFAULT
    vibration_pattern: Tuple[int, ...] = (0, 250)
    sound: Optional[str] = "default"
    badge: bool = True
    light_color: Optional[str] = None


@dataclass(frozen=True)
class Trigger:
    """When a local notification fires. ``seconds=None`` means immediately."""
    seconds: Optional[int] = None

    def __post_init__(self):
        if self.seconds is not None and self.seconds < 1:
            raise ValueError(f"Trigger delay must be a positive number of seconds, got {self.seconds}")

    @property
    def immediate(self) -> bool:
        return self.seconds is None

    @classmethod
    def now(cls) -> "Trigger":
        return cls()

    @classmethod
    def after(cls, seconds: int) -> "Trigger":
        return cls(seconds=int(seconds))

    def to_wire(self) -> Optional[Dict[str, int]]:
        return None if self.seconds is None else {"seconds": self.seconds}

    @classmethod
    def from_wire(cls, value: Any) -> "Trigger":
        if value is None:
            return cls()
        if isinstance(value, Trigger):
            return value
        if isinstance(value, Mapping) and "seconds" in value:
            return cls.after(value["seconds"])
        raise ValueError(f"Unsupported trigger: {value!r}")


@dataclass(frozen=True)
class NotificationData:
    """
    Typed notification payload.

    ``type`` selects the variant; the optional fields are the ones the
    ride, payment, promo and chat variants carry. Anything else the sender
    attached is kept in ``extra`` so it survives a round trip.
    """
    type: NotificationType
    title: str
    message: str
    ride_id: Optional[str] = None
    driver_id: Optional[str] = None
    amount: Optional[float] = None
    promo_code: Optional[str] = None
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    channel_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _WIRE = {
        "ride_id": "rideId",
        "driver_id": "driverId",
        "amount": "amount",
        "promo_code": "promoCode",
        "sender_id": "senderId",
        "sender_name": "senderName",
        "channel_id": "channelId",
    }

    def to_dict(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {k: v for k, v in self.extra.items() if v is not None}
        doc.update({"type": self.type.value, "title": self.title, "message": self.message})
        for name, key in self._WIRE.items():
            value = getattr(self, name)
            if value is not None:
                doc[key] = value
        return doc

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "NotificationData":
        """Parse a payload; unrecognised ``type`` values become GENERAL."""
        try:
            kind = NotificationType(doc.get("type"))
        except ValueError:
            kind = NotificationType.GENERAL
        known = {"type", "title", "message", *cls._WIRE.values()}
        return cls(
            type=kind,
            title=str(doc.get("title") or ""),
            message=str(doc.get("message") or doc.get("body") or ""),
            extra={k: v for k, v in doc.items() if k not in known},
            **{name: doc.get(key) for name, key in cls._WIRE.items()},
        )


@dataclass(frozen=True)
class ScheduledNotification:
    """A local notification queued on the platform."""
    id: str
    title: str
    body: str
    payload: Optional[NotificationData] = None
    channel_id: Optional[str] = None
    priority: Priority = Priority.NORMAL
    trigger: Trigger = field(default_factory=Trigger)
    sticky: bool = False


@dataclass(frozen=True)
class NotificationEvent:
    """Received/responded event produced by the platform runtime."""
    kind: EventKind
    payload: NotificationData
    received_at: datetime = None
    notification_id: Optional[str] = None

    def __post_init__(self):
        if self.received_at is None:
            object.__setattr__(self, 'received_at', utcnow())


@dataclass(frozen=True)
class DisplayHandler:
    """How the platform presents a notification that arrives in the foreground."""
    show_banner: bool
    show_list: bool
    play_sound: bool
    set_badge: bool


SHOW_ALL = DisplayHandler(show_banner=True, show_list=True, play_sound=True, set_badge=True)
SHOW_NONE = DisplayHandler(show_banner=False, show_list=False, play_sound=False, set_badge=False)
