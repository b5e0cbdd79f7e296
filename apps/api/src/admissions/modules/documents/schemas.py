"""Document schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from admissions.core.config import settings
from admissions.modules.documents.models import VerificationStatus


def max_file_data_chars(max_bytes: int) -> int:
    """Longest accepted ``file_data``: base64 of ``max_bytes`` with line breaks and a data URL."""
    encoded = (max_bytes + 2) // 3 * 4
    return encoded + encoded // 76 * 2 + 256


class DocumentUploadRequest(BaseModel):
    """Request body for POST /documents/upload. ``file_data`` is base64 or a data URL."""

    application_id: UUID
    document_type: str = Field(..., min_length=1, max_length=50)
    file_name: str = Field(..., min_length=1, max_length=255)
    file_data: str = Field(
        ..., min_length=1, max_length=max_file_data_chars(settings.max_upload_bytes)
    )
    mime_type: str | None = Field(None, max_length=100)
    size: int | None = Field(None, ge=0)


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    document_type: str
    document_name: str
    mime_type: str
    size_bytes: int
    checksum: str
    system_generated: bool
    verification_status: VerificationStatus
    verified_by: UUID | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None
    created_at: datetime


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]


class DocumentVerifyRequest(BaseModel):
    status: VerificationStatus
    notes: str | None = Field(None, max_length=2000)
