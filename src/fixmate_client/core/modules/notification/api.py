"""Notification endpoints of the backend."""

from typing import Any

from fixmate_client.core.adapters import is_success, parse_notifications, parse_unread_count
from fixmate_client.core.http import ApiClient
from fixmate_client.core.modules.notification.models import NotificationRecord
from fixmate_client.errors import ApiError


def _ensure_success(payload: Any) -> Any:
    if not is_success(payload):
        message = payload.get("message") if isinstance(payload, dict) else None
        raise ApiError(message or "Request was not successful", data=payload)
    return payload


class NotificationsApi:
    """Thin typed wrapper over /notifications."""

    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def get_unread(self, limit: int) -> list[NotificationRecord]:
        """Unread records, newest first."""
        payload = _ensure_success(await self._api.get("/notifications", {"limit": limit, "read": False}))
        return parse_notifications(payload)

    async def get_notifications(self, page: int = 1, limit: int = 20) -> list[NotificationRecord]:
        payload = _ensure_success(await self._api.get("/notifications", {"page": page, "limit": limit}))
        return parse_notifications(payload)

    async def get_unread_count(self) -> int:
        payload = _ensure_success(await self._api.get("/notifications/unread-count"))
        return parse_unread_count(payload)

    async def mark_as_read(self, notification_id: str) -> None:
        _ensure_success(await self._api.put(f"/notifications/{notification_id}/read"))

    async def mark_multiple_as_read(self, notification_ids: list[str]) -> None:
        _ensure_success(await self._api.put("/notifications/read-multiple", {"notificationIds": notification_ids}))

    async def mark_all_as_read(self) -> None:
        _ensure_success(await self._api.put("/notifications/read-all"))

    async def delete(self, notification_id: str) -> None:
        _ensure_success(await self._api.delete(f"/notifications/{notification_id}"))

    async def delete_all(self) -> None:
        _ensure_success(await self._api.delete("/notifications/all"))
