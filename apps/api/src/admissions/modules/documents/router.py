"""
Documents Router

- POST /documents/upload         - Upload a document for an application
- GET  /documents                - Documents of one application
- GET  /documents/{id}/download  - File contents
- POST /documents/{id}/verify    - Mark verified / rejected (staff)

Uploads are JSON with a base64 payload and are rate limited per user.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, get_current_user, require_permission
from admissions.core.config import settings
from admissions.core.database import get_db
from admissions.core.rate_limit import enforce_rate_limit
from admissions.modules.applications import service as application_service
from admissions.modules.applications.service import ApplicationServiceError
from admissions.modules.audit.service import log_audit_event

from . import repository
from .schemas import (
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadRequest,
    DocumentVerifyRequest,
)
from .storage import LocalDocumentStorage, StorageError, get_storage
from .validation import DocumentValidationError, sanitize_storage_segment, validate_upload

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_MAX_ATTEMPTS = 15
UPLOAD_WINDOW_SECONDS = 300


def _error(status_code: int, error: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": error, "message": message})


def _document_not_found(document_id: UUID) -> HTTPException:
    return _error(status.HTTP_404_NOT_FOUND, "DOCUMENT_NOT_FOUND", f"Document {document_id} not found")


@router.post(
    "/upload",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid file name, encoding or content"},
        413: {"description": "File too large"},
        429: {"description": "Too many uploads"},
    },
)
async def upload_document(
    data: DocumentUploadRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    storage: LocalDocumentStorage = Depends(get_storage),
    user: CurrentUser = Depends(require_permission("documents:upload")),
) -> DocumentResponse:
    await enforce_rate_limit(
        request,
        "documents_upload",
        user_id=user.id,
        max_attempts=UPLOAD_MAX_ATTEMPTS,
        window_seconds=UPLOAD_WINDOW_SECONDS,
        message="Too many document uploads. Please try again later.",
    )

    try:
        validated = validate_upload(
            data.file_name,
            data.file_data,
            data.mime_type,
            data.size,
            max_size=settings.max_upload_bytes,
            scan_for_malware=settings.enable_malware_scan,
        )
    except DocumentValidationError as e:
        logger.warning(f"Rejected upload from user {user.id}: {e.message}")
        raise _error(e.status_code, e.error_code, e.message) from e

    try:
        application = await application_service.get_application(db, data.application_id, user)
    except ApplicationServiceError as e:
        raise _error(e.status_code, e.error_code, e.message) from e

    relative_path = "/".join(
        [
            sanitize_storage_segment(application.user_id, "user identifier"),
            sanitize_storage_segment(application.id, "application identifier"),
            validated.file_name,
        ]
    )

    try:
        stored_path = await storage.save(relative_path, validated.content)
    except StorageError as e:
        logger.exception(f"Error storing document: {e}")
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_ERROR", "Failed to store document."
        ) from e

    document = await repository.create(
        db,
        application_id=application.id,
        uploaded_by=user.id,
        document_type=data.document_type,
        document_name=validated.file_name,
        storage_path=stored_path,
        mime_type=validated.mime_type,
        size_bytes=validated.size,
        checksum=validated.checksum,
    )

    await log_audit_event(
        db,
        request=request,
        action="documents.upload",
        actor=user,
        target_table="application_documents",
        target_id=document.id,
        metadata={
            "application_id": application.id,
            "document_type": data.document_type,
            "file_name": validated.file_name,
            "file_size": validated.size,
            "mime_type": validated.mime_type,
            "by_admin": user.is_admin,
        },
    )
    return DocumentResponse.model_validate(document)


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    application_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> DocumentListResponse:
    try:
        await application_service.get_application(db, application_id, user)
    except ApplicationServiceError as e:
        raise _error(e.status_code, e.error_code, e.message) from e

    documents = await repository.list_for_application(db, application_id)
    return DocumentListResponse(documents=[DocumentResponse.model_validate(d) for d in documents])


@router.get("/{document_id}/download")
async def download_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: LocalDocumentStorage = Depends(get_storage),
    user: CurrentUser = Depends(get_current_user),
) -> Response:
    document = await repository.get_by_id(db, document_id)
    if not document:
        raise _document_not_found(document_id)

    try:
        await application_service.get_application(db, document.application_id, user)
    except ApplicationServiceError as e:
        # Hide documents of applications the caller cannot see
        raise _document_not_found(document_id) from e

    try:
        content = await storage.read(document.storage_path)
    except StorageError as e:
        logger.error(f"Stored file missing for document {document_id}: {e}")
        raise _error(
            status.HTTP_404_NOT_FOUND, "FILE_NOT_FOUND", "The stored file could not be found."
        ) from e

    return Response(
        content=content,
        media_type=document.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{document.document_name}"'},
    )


@router.post("/{document_id}/verify", response_model=DocumentResponse)
async def verify_document(
    document_id: UUID,
    data: DocumentVerifyRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(require_permission("documents:verify")),
) -> DocumentResponse:
    document = await repository.get_by_id(db, document_id)
    if not document:
        raise _document_not_found(document_id)

    document = await repository.set_verification(
        db, document, data.status, verified_by=reviewer.id, notes=data.notes
    )

    await log_audit_event(
        db,
        request=request,
        action="documents.verify",
        actor=reviewer,
        target_table="application_documents",
        target_id=document.id,
        target_label=document.document_name,
        metadata={"status": data.status.value},
    )
    return DocumentResponse.model_validate(document)
