"""
Applications Router

Student-facing endpoints. Reviewers holding ``applications:read_all`` see
every application through the same listing and detail routes.

Endpoints:
- POST  /applications                 - Create a draft
- GET   /applications                 - List (own, or all for reviewers)
- GET   /applications/{id}            - Detail
- PATCH /applications/{id}            - Edit (draft / needs_more_info)
- POST  /applications/{id}/submit     - Submit or resubmit
- POST  /applications/{id}/withdraw   - Withdraw
- GET   /applications/{id}/history    - Status history
- GET   /applications/{id}/slip       - Application slip (JSON, or HTML download)
- POST  /applications/{id}/slip       - Email the slip to the applicant
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, get_current_user, require_permission
from admissions.core.database import get_db
from admissions.modules.audit.service import log_audit_event

from . import service
from .models import Application, ApplicationStatus, Institution
from .schemas import (
    ApplicationCreate,
    ApplicationFilters,
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationSlip,
    ApplicationUpdate,
    SlipEmailResponse,
    StatusHistoryItem,
    StatusHistoryResponse,
    WithdrawRequest,
)
from .service import ApplicationServiceError
from .slip import render_slip_html, slip_filename
from .transitions import get_available_transitions

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_service_error(e: ApplicationServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.exception(f"Error {action}: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


def to_response(application: Application) -> ApplicationResponse:
    response = ApplicationResponse.model_validate(application)
    response.available_transitions = sorted(
        get_available_transitions(application.status), key=lambda s: s.value
    )
    return response


@router.post(
    "",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_application(
    data: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission("applications:create")),
) -> ApplicationResponse:
    """Create a draft application. The application number is generated here."""
    try:
        application = await service.create_application(db, user, data)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error("creating application", e) from e
    return to_response(application)


@router.get("", response_model=ApplicationListResponse)
async def list_applications(
    status_filter: ApplicationStatus | None = Query(None, alias="status"),
    institution: Institution | None = Query(None),
    program_id: UUID | None = Query(None),
    search: str | None = Query(None, min_length=1, max_length=100),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    include_stats: bool = Query(False, description="Include per-status counts"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApplicationListResponse:
    try:
        filters = ApplicationFilters(
            status=status_filter,
            institution=institution,
            program_id=program_id,
            search=search,
            start_date=start_date,
            end_date=end_date,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=skip,
            limit=limit,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "INVALID_FILTERS",
                "message": "; ".join(err["msg"] for err in e.errors()),
            },
        ) from e

    try:
        result = await service.list_applications(db, user, filters, include_stats)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error("listing applications", e) from e

    return ApplicationListResponse(
        applications=[to_response(a) for a in result["applications"]],
        total=result["total"],
        skip=result["skip"],
        limit=result["limit"],
        stats=result["stats"],
    )


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApplicationResponse:
    try:
        application = await service.get_application(db, application_id, user)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    return to_response(application)


@router.patch("/{application_id}", response_model=ApplicationResponse)
async def update_application(
    application_id: UUID,
    data: ApplicationUpdate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApplicationResponse:
    try:
        application = await service.update_application(db, application_id, user, data)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error("updating application", e) from e
    return to_response(application)


@router.post("/{application_id}/submit", response_model=ApplicationResponse)
async def submit_application(
    application_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApplicationResponse:
    """Submit a draft (or resubmit after more information was requested)."""
    try:
        application = await service.submit_application(db, application_id, user)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error("submitting application", e) from e

    await log_audit_event(
        db,
        request=request,
        action="application.submit",
        actor=user,
        target_table="applications",
        target_id=application.id,
        target_label=application.application_number,
    )
    return to_response(application)


@router.post("/{application_id}/withdraw", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: UUID,
    request: Request,
    data: WithdrawRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApplicationResponse:
    try:
        application = await service.withdraw_application(
            db, application_id, user, reason=data.reason if data else None
        )
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error("withdrawing application", e) from e

    await log_audit_event(
        db,
        request=request,
        action="application.withdraw",
        actor=user,
        target_table="applications",
        target_id=application.id,
        target_label=application.application_number,
    )
    return to_response(application)


@router.get("/{application_id}/history", response_model=StatusHistoryResponse)
async def get_history(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> StatusHistoryResponse:
    try:
        history = await service.get_status_history(db, application_id, user)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    return StatusHistoryResponse(
        application_id=application_id,
        history=[StatusHistoryItem.model_validate(h) for h in history],
    )


@router.get("/{application_id}/slip", response_model=ApplicationSlip)
async def get_application_slip(
    application_id: UUID,
    request: Request,
    slip_format: str = Query("json", alias="format", pattern="^(json|html)$"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """The slip as JSON, or with ``format=html`` as a printable download."""
    try:
        application, slip = await service.get_application_slip(db, application_id, user)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error("generating application slip", e) from e

    await log_audit_event(
        db,
        request=request,
        action="application.slip.generate",
        actor=user,
        target_table="applications",
        target_id=application.id,
        target_label=application.application_number,
        metadata={"format": slip_format},
    )

    if slip_format == "html":
        return Response(
            content=render_slip_html(slip),
            media_type="text/html",
            headers={"Content-Disposition": f'attachment; filename="{slip_filename(slip)}"'},
        )
    return slip


@router.post("/{application_id}/slip", response_model=SlipEmailResponse)
async def email_application_slip(
    application_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> SlipEmailResponse:
    try:
        application, slip = await service.email_application_slip(db, application_id, user)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        raise _internal_error("emailing application slip", e) from e

    await log_audit_event(
        db,
        request=request,
        action="application.slip.email",
        actor=user,
        target_table="applications",
        target_id=application.id,
        target_label=application.application_number,
        metadata={"recipient": slip.email},
    )
    return SlipEmailResponse(
        success=True,
        message="The application slip has been sent to your email.",
        recipient=slip.email,
    )
