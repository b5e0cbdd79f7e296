"""Audit log schemas."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuditLogEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: str
    actor_id: UUID | None = None
    actor_email: str | None = None
    actor_roles: list[str] = Field(default_factory=list)
    target_table: str | None = None
    target_id: str | None = None
    target_label: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="details")
    request_ip: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    entries: list[AuditLogEntryResponse]
    total: int
    skip: int
    limit: int


class AuditExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


class AuditActionCount(BaseModel):
    action: str
    count: int


class AuditLogStatsResponse(BaseModel):
    total_entries: int
    today_entries: int
    unique_actors: int
    top_actions: list[AuditActionCount]
    recent_activity: list[AuditLogEntryResponse]
