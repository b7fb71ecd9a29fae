"""Notification records as delivered by the backend."""

from datetime import datetime
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from fixmate_client.utils import now


class NotificationPriority(StrEnum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


# Lower sorts first
PRIORITY_RANK = {
    NotificationPriority.URGENT: 0,
    NotificationPriority.HIGH: 1,
    NotificationPriority.NORMAL: 2,
    NotificationPriority.LOW: 3,
}


class NotificationRecord(BaseModel):
    """Server-owned notification; is_read may be flipped locally ahead of the backend."""

    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    title: str = ""
    body: str = Field("", validation_alias=AliasChoices("body", "message"))
    category: str = Field("general", validation_alias=AliasChoices("category", "type"))
    priority: NotificationPriority = NotificationPriority.NORMAL
    is_read: bool = Field(False, validation_alias=AliasChoices("isRead", "is_read", "read"))
    created_at: datetime = Field(default_factory=now, validation_alias=AliasChoices("createdAt", "created_at"))
    related_entity_ref: str | None = Field(
        None, validation_alias=AliasChoices("relatedEntityRef", "relatedId", "related_entity_ref")
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("id", "related_entity_ref", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: object) -> object:
        if not isinstance(value, str) or value.lower() not in tuple(NotificationPriority):
            return NotificationPriority.NORMAL
        return value.lower()

    @property
    def priority_rank(self) -> int:
        return PRIORITY_RANK[self.priority]
