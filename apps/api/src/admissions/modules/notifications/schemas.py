"""Notification and consent schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    type: str
    title: str
    message: str
    data: dict[str, Any] | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int


class SendNotificationRequest(BaseModel):
    """Request body for POST /notifications/send (admin)."""

    user_id: UUID
    type: str = Field("info", min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    data: dict[str, Any] | None = None
    send_email: bool = False


class MarkAllReadResponse(BaseModel):
    updated: int


class ConsentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    consent_type: str
    granted_at: datetime
    granted_by: UUID | None = None
    revoked_at: datetime | None = None
    revoked_by: UUID | None = None
    source: str | None = None
    notes: str | None = None
    active: bool


class ConsentListResponse(BaseModel):
    consents: list[ConsentResponse]
    active: list[ConsentResponse]


class ConsentChangeRequest(BaseModel):
    consent_type: str = Field(..., min_length=1, max_length=50)
    source: str | None = Field(None, max_length=50)
    notes: str | None = Field(None, max_length=1000)
    user_id: UUID | None = Field(
        None, description="Target user (admins only; defaults to the caller)"
    )
