"""
Admin Applications Router

Review endpoints for admissions staff.

Endpoints:
- POST /admin/applications/{id}/status  - Guarded status change
- POST /admin/applications/bulk-status  - Status change for many applications
- GET  /admin/applications/stats        - Dashboard counts

Status changes go through the transition table; a disallowed change returns
409 and writes nothing.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, require_permission
from admissions.core.database import get_db
from admissions.core.rate_limit import enforce_rate_limit
from admissions.modules.audit.service import log_audit_event

from . import service
from .router import _handle_service_error, to_response
from .schemas import (
    ApplicationResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    DashboardStats,
    StatusUpdateRequest,
)
from .service import ApplicationServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

# Rate limits for admin actions (prevent abuse)
RATE_LIMIT_STATUS_UPDATE = (60, 60)  # 60 status changes per minute
RATE_LIMIT_BULK_UPDATE = (10, 60)  # 10 bulk requests per minute


@router.get("/stats", response_model=DashboardStats)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("applications:read_all")),
) -> DashboardStats:
    """Counts by status and institution for the review dashboard."""
    try:
        stats = await service.get_dashboard_stats(db)
    except Exception as e:
        logger.exception(f"Error getting dashboard stats: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred.",
            },
        ) from e
    return DashboardStats(**stats)


@router.post(
    "/bulk-status",
    response_model=BulkStatusResponse,
    responses={429: {"description": "Too many bulk requests"}},
)
async def bulk_update_status(
    data: BulkStatusRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("applications:review")),
) -> BulkStatusResponse:
    """Apply one status change to many applications. Each item reports its own result."""
    limit, window = RATE_LIMIT_BULK_UPDATE
    await enforce_rate_limit(
        request,
        "admin_bulk_status",
        user_id=admin.id,
        max_attempts=limit,
        window_seconds=window,
    )

    results = await service.admin_bulk_update_status(
        db, data.application_ids, admin, data.status, data.notes
    )
    succeeded = sum(1 for r in results if r.success)

    await log_audit_event(
        db,
        request=request,
        action="application.status.bulk_update",
        actor=admin,
        target_table="applications",
        metadata={
            "status": data.status.value,
            "requested": len(data.application_ids),
            "succeeded": succeeded,
        },
    )
    return BulkStatusResponse(
        results=results,
        succeeded=succeeded,
        failed=len(results) - succeeded,
    )


@router.post(
    "/{application_id}/status",
    response_model=ApplicationResponse,
    responses={
        404: {"description": "Application not found"},
        409: {"description": "Status change not allowed from the current status"},
    },
)
async def update_status(
    application_id: UUID,
    data: StatusUpdateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("applications:review")),
) -> ApplicationResponse:
    limit, window = RATE_LIMIT_STATUS_UPDATE
    await enforce_rate_limit(
        request,
        "admin_status_update",
        user_id=admin.id,
        max_attempts=limit,
        window_seconds=window,
    )

    try:
        application = await service.admin_update_status(
            db,
            application_id,
            admin,
            data.status,
            notes=data.notes,
            feedback=data.feedback,
        )
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating application status: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred.",
            },
        ) from e

    await log_audit_event(
        db,
        request=request,
        action="application.status.update",
        actor=admin,
        target_table="applications",
        target_id=application.id,
        target_label=application.application_number,
        metadata={"status": data.status.value, "notes": data.notes},
    )
    return to_response(application)
