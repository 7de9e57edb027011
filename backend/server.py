from fastapi import FastAPI, APIRouter, HTTPException
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import logging
from pathlib import Path
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone

from providers import load_providers, ProviderSet
from notifications import (
    ExpoPushClient,
    NotificationData,
    NotificationService,
    NotificationSettings,
    ScheduleFailed,
    load_settings,
)
from notifications.models import ScheduledNotification

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Built on startup; tests may install their own before the app starts
notification_service: Optional[NotificationService] = None
push_client: Optional[ExpoPushClient] = None


def build_service(
    settings: Optional[NotificationSettings] = None,
    providers: Optional[ProviderSet] = None,
) -> NotificationService:
    settings = settings or load_settings()
    providers = providers or load_providers(settings=settings)
    return NotificationService(providers.runtime, providers.storage, settings)


def get_service() -> NotificationService:
    if notification_service is None:
        raise HTTPException(status_code=503, detail="Notification service not started")
    return notification_service


# Create the main app
app = FastAPI()

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


# ==================== Models ====================

class PreferencesUpdate(BaseModel):
    push_enabled: Optional[bool] = None
    location_services: Optional[bool] = None
    auto_payment: Optional[bool] = None
    share_data: Optional[bool] = None


class ScheduleRequest(BaseModel):
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None
    seconds: Optional[int] = Field(None, description="Delay in seconds; omit to fire immediately")
    priority: str = "normal"


class ScheduleResponse(BaseModel):
    id: str
    scheduled: bool


class ScheduledItem(BaseModel):
    id: str
    title: str
    body: str
    channel_id: Optional[str] = None
    priority: str
    seconds: Optional[int] = None
    sticky: bool
    data: Optional[Dict[str, Any]] = None


class UserAttachRequest(BaseModel):
    user_id: str


class PushRequest(BaseModel):
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None


def _scheduled_item(request: ScheduledNotification) -> ScheduledItem:
    return ScheduledItem(
        id=request.id,
        title=request.title,
        body=request.body,
        channel_id=request.channel_id,
        priority=request.priority.value,
        seconds=request.trigger.seconds,
        sticky=request.sticky,
        data=request.payload.to_dict() if request.payload else None,
    )


# ==================== API Routes ====================

@api_router.get("/health")
async def health_check():
    service = notification_service
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "notifications_active": bool(service and service.active),
    }


@api_router.get("/notifications/preferences")
async def get_preferences():
    prefs = await get_service().preferences.get()
    return prefs.to_dict()


@api_router.patch("/notifications/preferences")
async def update_preferences(request: PreferencesUpdate):
    updates = request.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No preference values supplied")
    prefs = await get_service().update_preferences(**updates)
    logger.info(f"Preferences updated via API: {sorted(updates)}")
    return prefs.to_dict()


@api_router.post("/notifications/preferences/reset")
async def reset_preferences():
    prefs = await get_service().preferences.reset_to_defaults()
    return prefs.to_dict()


@api_router.get("/notifications/scheduled", response_model=List[ScheduledItem])
async def list_scheduled():
    scheduled = await get_service().scheduler.list_scheduled()
    return [_scheduled_item(s) for s in scheduled]


@api_router.post("/notifications/schedule", response_model=ScheduleResponse)
async def schedule_notification(request: ScheduleRequest):
    service = get_service()
    payload = NotificationData.from_dict(request.data) if request.data else None
    trigger = {"seconds": request.seconds} if request.seconds is not None else None
    try:
        identifier = await service.scheduler.schedule(
            request.title, request.body, payload, trigger, request.priority
        )
    except ScheduleFailed as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ScheduleResponse(id=identifier, scheduled=bool(identifier))


@api_router.delete("/notifications/scheduled/{notification_id}")
async def cancel_notification(notification_id: str):
    cancelled = await get_service().scheduler.cancel(notification_id)
    return {"cancelled": cancelled}


@api_router.delete("/notifications/scheduled")
async def cancel_all_notifications():
    cancelled = await get_service().scheduler.cancel_all()
    return {"cancelled": cancelled}


@api_router.get("/notifications/token")
async def get_token():
    token = await get_service().tokens.get_stored_token()
    return {"token": token.to_dict() if token else None}


@api_router.post("/notifications/token/user")
async def attach_user(request: UserAttachRequest):
    if not await get_service().update_user_id(request.user_id):
        raise HTTPException(status_code=404, detail="No push token stored for this device")
    return {"status": "ok", "user_id": request.user_id}


@api_router.post("/notifications/push")
async def send_test_push(request: PushRequest):
    """Send a push through Expo to this device's own token."""
    token = await get_service().tokens.get_stored_token()
    if token is None:
        raise HTTPException(status_code=404, detail="No push token stored for this device")
    if push_client is None:
        raise HTTPException(status_code=503, detail="Push client not started")

    data = dict(request.data or {}, title=request.title, message=request.body)
    sent = await push_client.send_notification(token.value, NotificationData.from_dict(data))
    return {"sent": sent}


@api_router.get("/notifications/diagnostics")
async def diagnostics():
    return get_service().diagnostics()


# Add CORS middleware first, before including router
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.on_event("startup")
async def startup_notifications():
    global notification_service, push_client
    if notification_service is None:
        notification_service = build_service()
    if push_client is None:
        push_client = ExpoPushClient(notification_service.settings.expo_access_token)
    active = await notification_service.initialize()
    logger.info(f"Notification service started (active={active})")


@app.on_event("shutdown")
async def shutdown_notifications():
    global notification_service, push_client
    if notification_service is not None:
        await notification_service.shutdown()
        notification_service = None
    if push_client is not None:
        await push_client.close()
        push_client = None
