from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class NotificationType(str, Enum):
    PAYMENT_RECEIVED = "payment_received"
    GENERAL = "general"


class NotificationCreate(BaseModel):
    user_id: str = Field(alias="userId")
    type: NotificationType
    title: str
    message: str
    reference_id: Optional[str] = Field(default=None, alias="referenceId")

    model_config = ConfigDict(populate_by_name=True)


class Notification(BaseModel):
    id: int
    user_id: str = Field(alias="userId")
    type: NotificationType
    title: str
    message: str
    reference_id: Optional[str] = Field(default=None, alias="referenceId")
    is_read: bool = Field(alias="isRead")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class NotificationListResponse(BaseModel):
    items: List[Notification]
    next_cursor: Optional[str] = Field(default=None, alias="nextCursor")

    model_config = ConfigDict(populate_by_name=True)


class NotificationMarkReadRequest(BaseModel):
    """Either explicit ids, a quote reference, or both."""

    ids: List[int] = Field(default_factory=list, validation_alias=AliasChoices("ids", "notificationIds"))
    reference_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("referenceId", "reference_id"))

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def _require_target(self) -> "NotificationMarkReadRequest":
        if not self.ids and self.reference_id is None:
            raise ValueError("notificationIds or referenceId is required")
        return self


class NotificationMarkReadResponse(BaseModel):
    updated_ids: List[int] = Field(default_factory=list, alias="updatedIds")
    unread_count: int = Field(alias="unreadCount")

    model_config = ConfigDict(populate_by_name=True)


class NotificationUnreadCount(BaseModel):
    count: int
    by_type: Dict[NotificationType, int] = Field(default_factory=dict, alias="byType")

    model_config = ConfigDict(populate_by_name=True)
