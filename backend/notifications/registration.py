"""
Client for the device registration API.

Endpoints (JSON over HTTPS):
- POST /api/notifications/register    body: device token record
- POST /api/notifications/unregister  body: {"token": ...}
- POST /api/notifications/send        body: {"userIds", "title", "body", "data"}
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from .errors import RegistrationFailed
from .models import DeviceToken, NotificationData

logger = logging.getLogger(__name__)

AuthTokenProvider = Callable[[], Awaitable[Optional[str]]]


class RegistrationClient:
    """Talks to the app backend that stores device tokens."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        auth_token_provider: Optional[AuthTokenProvider] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: API origin, e.g. "https://api.example.com"
            timeout: Seconds before a call is abandoned
            auth_token_provider: Optional coroutine returning a bearer token
            client: Optional preconfigured httpx client (tests inject a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.auth_token_provider = auth_token_provider
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def register(self, token: DeviceToken) -> None:
        """
        Register ``token`` with the backend.

        Raises:
            RegistrationFailed: non-2xx response, timeout or transport error
        """
        await self._post("/api/notifications/register", token.to_dict())
        logger.debug(f"Token sent to server successfully ({token.value[:30]}...)")

    async def unregister(self, token_value: str) -> bool:
        try:
            await self._post("/api/notifications/unregister", {"token": token_value})
            return True
        except RegistrationFailed as e:
            logger.error(f"Error unregistering device token: {e}")
            return False

    async def send(
        self,
        user_ids: List[str],
        title: str,
        body: str,
        data: Optional[NotificationData] = None,
    ) -> bool:
        """Ask the backend to push a notification to the given users."""
        payload = {
            "userIds": list(user_ids),
            "title": title,
            "body": body,
            "data": data.to_dict() if data else None,
        }
        try:
            await self._post("/api/notifications/send", payload)
            return True
        except RegistrationFailed as e:
            logger.error(f"Error sending push notification: {e}")
            return False

    async def _post(self, path: str, body: Dict) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.post(
                url,
                json=body,
                headers=await self._get_headers(),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise RegistrationFailed(f"{path} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise RegistrationFailed(f"{path} failed: {e}") from e

        if not response.is_success:
            raise RegistrationFailed(
                f"Server responded with {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.auth_token_provider:
            try:
                auth_token = await self.auth_token_provider()
            except Exception as e:
                logger.warning(f"Could not obtain auth token, sending unauthenticated: {e}")
                auth_token = None
            if auth_token:
                headers["Authorization"] = f"Bearer {auth_token}"
        return headers

    async def close(self):
        await self.client.aclose()
