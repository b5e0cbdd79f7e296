"""
Applications Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from admissions.modules.applications.models import ApplicationStatus, Institution

SORTABLE_FIELDS = {"created_at", "updated_at", "submitted_at", "full_name", "status"}


class ApplicationCreate(BaseModel):
    """Request body for POST /applications (creates a draft)."""

    institution: Institution
    program_id: UUID | None = None
    intake_id: UUID | None = None
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = Field(None, max_length=20)
    address: str | None = Field(None, max_length=500)
    form_data: dict[str, Any] | None = None


class ApplicationUpdate(BaseModel):
    """Request body for PATCH /applications/{id}. Only set fields are applied."""

    program_id: UUID | None = None
    intake_id: UUID | None = None
    full_name: str | None = Field(None, min_length=1, max_length=200)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    address: str | None = Field(None, max_length=500)
    form_data: dict[str, Any] | None = None


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_number: str
    user_id: UUID
    institution: Institution
    program_id: UUID | None = None
    intake_id: UUID | None = None
    full_name: str
    email: str
    phone: str | None = None
    address: str | None = None
    form_data: dict[str, Any] | None = None
    status: ApplicationStatus
    submitted_at: datetime | None = None
    review_started_at: datetime | None = None
    decision_date: datetime | None = None
    admin_feedback: str | None = None
    created_at: datetime
    updated_at: datetime
    available_transitions: list[ApplicationStatus] = Field(default_factory=list)


class ApplicationFilters(BaseModel):
    """Query filters for application listings."""

    status: ApplicationStatus | None = None
    institution: Institution | None = None
    program_id: UUID | None = None
    search: str | None = Field(None, min_length=1, max_length=100)
    start_date: datetime | None = None
    end_date: datetime | None = None
    sort_by: str = "created_at"
    sort_order: str = "desc"
    skip: int = Field(0, ge=0)
    limit: int = Field(20, ge=1, le=100)

    @field_validator("sort_by")
    @classmethod
    def validate_sort_by(cls, v: str) -> str:
        if v not in SORTABLE_FIELDS:
            raise ValueError(f"sort_by must be one of {sorted(SORTABLE_FIELDS)}")
        return v

    @field_validator("sort_order")
    @classmethod
    def validate_sort_order(cls, v: str) -> str:
        v = v.lower()
        if v not in ("asc", "desc"):
            raise ValueError("sort_order must be 'asc' or 'desc'")
        return v


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationResponse]
    total: int
    skip: int
    limit: int
    stats: dict[str, int] | None = None


class WithdrawRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class StatusUpdateRequest(BaseModel):
    """Request body for POST /admin/applications/{id}/status."""

    status: ApplicationStatus
    notes: str | None = Field(None, max_length=2000)
    feedback: str | None = Field(
        None, max_length=5000, description="Feedback shown to the applicant"
    )


class BulkStatusRequest(BaseModel):
    application_ids: list[UUID] = Field(..., min_length=1, max_length=100)
    status: ApplicationStatus
    notes: str | None = Field(None, max_length=2000)


class BulkStatusItemResult(BaseModel):
    application_id: UUID
    success: bool
    error: str | None = None
    message: str | None = None


class BulkStatusResponse(BaseModel):
    results: list[BulkStatusItemResult]
    succeeded: int
    failed: int


class StatusHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    from_status: ApplicationStatus | None = None
    status: ApplicationStatus
    changed_by: UUID | None = None
    notes: str | None = None
    created_at: datetime


class StatusHistoryResponse(BaseModel):
    application_id: UUID
    history: list[StatusHistoryItem]


class DashboardStats(BaseModel):
    """Counts for the admissions dashboard."""

    total: int
    by_status: dict[str, int]
    by_institution: dict[str, int]
    submitted_last_7_days: int


class ApplicationSlip(BaseModel):
    """Printable summary of a submitted application."""

    application_id: UUID
    application_number: str
    status: ApplicationStatus
    status_label: str
    institution: Institution
    full_name: str
    email: str
    phone: str | None = None
    program_name: str | None = None
    intake_name: str | None = None
    submitted_at: datetime | None = None
    generated_at: datetime


class SlipEmailResponse(BaseModel):
    success: bool
    message: str
    recipient: str
