"""Normalization of backend response shapes at the network boundary.

Historic endpoints wrap their payloads differently (``data``, ``data.data``,
``notifications``, top-level fields). Everything past this module sees only
NotificationRecord, Credential and plain integers.
"""

from typing import Any

from fixmate_client.core.modules.notification.models import NotificationRecord
from fixmate_client.core.modules.session.models import Credential


def _unwrap(payload: Any) -> Any:
    # {data: {data: x}} -> {data: x} -> x
    while isinstance(payload, dict) and "data" in payload and isinstance(payload["data"], dict | list):
        payload = payload["data"]
    return payload


def is_success(payload: Any) -> bool:
    """Responses without an explicit success flag count as successful."""
    if isinstance(payload, dict) and "success" in payload:
        return bool(payload["success"])
    return True


def parse_notifications(payload: Any) -> list[NotificationRecord]:
    body = _unwrap(payload)
    if isinstance(body, dict):
        body = body.get("notifications", body.get("items", []))
    if not isinstance(body, list):
        raise ValueError("Notification list missing from response")
    return [NotificationRecord.model_validate(item) for item in body]


def parse_unread_count(payload: Any) -> int:
    for candidate in (payload, _unwrap(payload)):
        if not isinstance(candidate, dict):
            continue
        for key in ("count", "unreadCount", "unread_count"):
            if key in candidate:
                return max(0, int(candidate[key]))
    raise ValueError("Unread count missing from response")


def parse_credential(payload: Any) -> Credential:
    body = _unwrap(payload)
    if not isinstance(body, dict):
        raise ValueError("Credential missing from response")
    token = body.get("credential") or body.get("idToken") or body.get("token") or body.get("id_token")
    if not isinstance(token, str) or not token:
        raise ValueError("Credential missing from response")
    refresh_token = body.get("refreshToken") or body.get("refresh_token")

    credential = Credential.from_token(token, refresh_token=refresh_token)
    expires_at = body.get("expiresAt") or body.get("expires_at")
    if credential.expires_at is None and expires_at is not None:
        credential = Credential.model_validate(
            {"token": token, "expires_at": expires_at, "refresh_token": refresh_token}
        )
    return credential
