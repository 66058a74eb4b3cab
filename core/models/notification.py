"""In-app notification models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    RETURN_REJECTED = "return_rejected"
    HANDOVER_REQUEST = "handover_request"
    HANDOVER_RESPONSE = "handover_response"
    HANDOVER_OVERDUE = "handover_overdue"
    BATCH_PROCESSED = "batch_processed"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationCreate(BaseModel):
    """Data required to notify one user."""

    user_id: UUID
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.NORMAL
    related_case_note_id: UUID | None = None


class Notification(BaseModel):
    """Notification as stored."""

    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any]
    priority: NotificationPriority
    related_case_note_id: UUID | None
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}
