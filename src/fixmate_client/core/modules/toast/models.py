"""Transient toast entries."""

from enum import StrEnum

from pydantic import BaseModel, Field

from fixmate_client.core.modules.notification.models import NotificationRecord


class ToastType(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Toast(BaseModel):
    """A notification record presented as a toast.

    client_id is the record id for server notifications and a generated
    ``local-`` id for toasts raised by the client itself.
    """

    client_id: str
    record: NotificationRecord
    type: ToastType = ToastType.INFO
    duration: float = Field(..., description="Seconds until the toast removes itself", ge=0)
    is_local: bool = Field(False, description="Whether the toast has no backing server record")
