"""
Applications Service Layer

Business logic for the admissions workflow. Orchestrates repository
operations, the status transition guard, notifications and email.

1. Student flow:
   - Create a draft (generates a unique application number)
   - Edit while in draft or needs_more_info
   - Submit, resubmit after a request for more info, withdraw

2. Admin flow:
   - Move an application through review (guarded by the transition table)
   - Bulk status updates with per-item results
   - Dashboard statistics

Every status change writes a history row. Applicant-facing side effects
(notification, email) happen after the change is committed and never undo it.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser
from admissions.core.email import (
    send_application_slip,
    send_application_status_changed,
    send_application_submitted,
)
from admissions.modules.notifications.service import notify_user

from . import repository
from .models import Application, ApplicationStatus
from .numbering import generate_application_number
from .schemas import (
    ApplicationCreate,
    ApplicationFilters,
    ApplicationSlip,
    ApplicationUpdate,
    BulkStatusItemResult,
)
from .slip import build_slip, render_slip_html
from .transitions import InvalidStatusTransitionError, get_status_label

logger = logging.getLogger(__name__)

# Statuses in which the applicant may still edit their answers
EDITABLE_STATUSES = frozenset({ApplicationStatus.DRAFT, ApplicationStatus.NEEDS_MORE_INFO})

MAX_NUMBER_ATTEMPTS = 5


class ApplicationServiceError(Exception):
    """Base exception for application service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ApplicationNotFoundError(ApplicationServiceError):
    """Raised when an application is not found (or not visible to the caller)."""

    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(
            message=message,
            error_code="APPLICATION_NOT_FOUND",
            status_code=404,
        )


class ApplicationNotEditableError(ApplicationServiceError):
    def __init__(self, current_status: ApplicationStatus):
        super().__init__(
            message=f"Application cannot be edited while {current_status.value}.",
            error_code="APPLICATION_NOT_EDITABLE",
            status_code=409,
        )


class InvalidTransitionError(ApplicationServiceError):
    """Raised when the requested status change is not allowed."""

    def __init__(self, error: InvalidStatusTransitionError):
        self.current_status = error.current_status
        self.new_status = error.new_status
        super().__init__(
            message=str(error),
            error_code="INVALID_STATUS_TRANSITION",
            status_code=409,
        )


class ApplicationNumberError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="Could not allocate a unique application number.",
            error_code="APPLICATION_NUMBER_UNAVAILABLE",
            status_code=503,
        )


class SlipNotAvailableError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="A slip is available once the application has been submitted.",
            error_code="SLIP_NOT_AVAILABLE",
            status_code=409,
        )


class SlipEmailError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="The application slip could not be emailed. Please try again later.",
            error_code="EMAIL_FAILED",
            status_code=502,
        )


def _can_view(application: Application, user: CurrentUser) -> bool:
    return application.user_id == user.id or user.has_permission("applications:read_all")


async def _allocate_number(db: AsyncSession, institution) -> str:
    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = generate_application_number(institution)
        if not await repository.number_exists(db, number):
            return number
        logger.warning(f"Application number collision on {number}, retrying")
    raise ApplicationNumberError()


async def create_application(
    db: AsyncSession, user: CurrentUser, data: ApplicationCreate
) -> Application:
    """Create a draft application owned by ``user``."""
    number = await _allocate_number(db, data.institution)
    application = await repository.create(db, user.id, data, number)
    logger.info(f"User {user.id} created application {application.application_number}")
    return application


async def get_application(
    db: AsyncSession, application_id: UUID, user: CurrentUser
) -> Application:
    """
    Get an application the caller may see.

    Raises:
        ApplicationNotFoundError: If missing or owned by someone else
    """
    application = await repository.get_by_id(db, application_id)
    if not application or not _can_view(application, user):
        raise ApplicationNotFoundError(application_id)
    return application


async def list_applications(
    db: AsyncSession,
    user: CurrentUser,
    filters: ApplicationFilters,
    include_stats: bool = False,
) -> dict[str, Any]:
    """List the caller's applications, or all of them for reviewers."""
    owner = None if user.has_permission("applications:read_all") else user.id
    applications, total = await repository.list_applications(db, filters, user_id=owner)

    stats = await repository.count_by_status(db, user_id=owner) if include_stats else None

    return {
        "applications": applications,
        "total": total,
        "skip": filters.skip,
        "limit": filters.limit,
        "stats": stats,
    }


async def update_application(
    db: AsyncSession,
    application_id: UUID,
    user: CurrentUser,
    data: ApplicationUpdate,
) -> Application:
    """Apply the applicant's edits. Only the owner may edit, only while editable."""
    application = await repository.get_by_id(db, application_id)
    if not application or application.user_id != user.id:
        raise ApplicationNotFoundError(application_id)

    if application.status not in EDITABLE_STATUSES:
        raise ApplicationNotEditableError(application.status)

    fields = data.model_dump(exclude_unset=True)
    if "email" in fields and fields["email"]:
        fields["email"] = str(fields["email"]).lower()

    return await repository.update_fields(db, application, fields)


async def _change_status(
    db: AsyncSession,
    application: Application,
    new_status: ApplicationStatus,
    actor_id: UUID,
    notes: str | None = None,
    **fields,
) -> Application:
    try:
        return await repository.update_status(
            db, application, new_status, changed_by=actor_id, notes=notes, **fields
        )
    except InvalidStatusTransitionError as e:
        logger.warning(f"Rejected transition for {application.application_number}: {e}")
        raise InvalidTransitionError(e) from e


async def submit_application(
    db: AsyncSession, application_id: UUID, user: CurrentUser
) -> Application:
    """Submit a draft, or resubmit after a request for more information."""
    application = await repository.get_by_id(db, application_id)
    if not application or application.user_id != user.id:
        raise ApplicationNotFoundError(application_id)

    resubmission = application.status == ApplicationStatus.NEEDS_MORE_INFO
    application = await _change_status(
        db,
        application,
        ApplicationStatus.SUBMITTED,
        user.id,
        notes="Resubmitted by applicant" if resubmission else "Submitted by applicant",
        submitted_at=datetime.now(UTC),
    )
    logger.info(f"Application {application.application_number} submitted")

    await send_application_submitted(
        to_email=application.email,
        applicant_name=application.full_name,
        application_number=application.application_number,
        institution=application.institution.value,
    )
    await notify_user(
        db,
        application.user_id,
        title="Application submitted",
        message=f"Your application {application.application_number} has been received.",
        type="application_submitted",
        data={"application_id": str(application.id)},
    )
    return application


async def withdraw_application(
    db: AsyncSession,
    application_id: UUID,
    user: CurrentUser,
    reason: str | None = None,
) -> Application:
    application = await repository.get_by_id(db, application_id)
    if not application or application.user_id != user.id:
        raise ApplicationNotFoundError(application_id)

    application = await _change_status(
        db, application, ApplicationStatus.WITHDRAWN, user.id, notes=reason or "Withdrawn by applicant"
    )
    logger.info(f"Application {application.application_number} withdrawn")
    return application


async def get_status_history(db: AsyncSession, application_id: UUID, user: CurrentUser):
    application = await get_application(db, application_id, user)
    return await repository.get_history(db, application.id)


async def get_application_slip(
    db: AsyncSession, application_id: UUID, user: CurrentUser
) -> tuple[Application, ApplicationSlip]:
    """
    Build the slip for an application the caller may see.

    Raises:
        ApplicationNotFoundError: If missing or not visible to the caller
        SlipNotAvailableError: If the application is still a draft
    """
    application = await get_application(db, application_id, user)
    if application.status == ApplicationStatus.DRAFT:
        raise SlipNotAvailableError()
    return application, await build_slip(db, application)


async def email_application_slip(
    db: AsyncSession, application_id: UUID, user: CurrentUser
) -> tuple[Application, ApplicationSlip]:
    """Email the slip to the address on the application."""
    application, slip = await get_application_slip(db, application_id, user)

    sent = await send_application_slip(
        to_email=slip.email,
        application_number=slip.application_number,
        slip_html=render_slip_html(slip),
    )
    if not sent:
        raise SlipEmailError()

    logger.info(f"Application slip for {slip.application_number} emailed")
    return application, slip


async def admin_update_status(
    db: AsyncSession,
    application_id: UUID,
    admin: CurrentUser,
    new_status: ApplicationStatus,
    notes: str | None = None,
    feedback: str | None = None,
) -> Application:
    """
    Move an application to ``new_status`` on behalf of a reviewer.

    Sets the review/decision timestamps, records the reviewer, then notifies
    the applicant in-app and by email.

    Raises:
        ApplicationNotFoundError: If the application does not exist
        InvalidTransitionError: If the change is not allowed from the current status
    """
    application = await repository.get_by_id(db, application_id)
    if not application:
        raise ApplicationNotFoundError(application_id)

    now = datetime.now(UTC)
    fields: dict[str, Any] = {"reviewed_by": admin.id}
    if new_status == ApplicationStatus.UNDER_REVIEW and application.review_started_at is None:
        fields["review_started_at"] = now
    if new_status in (ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED):
        fields["decision_date"] = now
    if feedback is not None:
        fields["admin_feedback"] = feedback

    application = await _change_status(db, application, new_status, admin.id, notes, **fields)
    logger.info(
        f"Admin {admin.id} moved application {application.application_number} "
        f"to {new_status.value}"
    )

    label = get_status_label(new_status)
    await send_application_status_changed(
        to_email=application.email,
        applicant_name=application.full_name,
        application_number=application.application_number,
        status_label=label,
        feedback=feedback,
    )
    await notify_user(
        db,
        application.user_id,
        title=f"Application {label}",
        message=f"Your application {application.application_number} is now {label}.",
        type="application_status",
        data={"application_id": str(application.id), "status": new_status.value},
    )
    return application


async def admin_bulk_update_status(
    db: AsyncSession,
    application_ids: list[UUID],
    admin: CurrentUser,
    new_status: ApplicationStatus,
    notes: str | None = None,
) -> list[BulkStatusItemResult]:
    """Apply one status change to many applications, reporting each outcome."""
    results: list[BulkStatusItemResult] = []
    for application_id in application_ids:
        try:
            await admin_update_status(db, application_id, admin, new_status, notes)
            results.append(BulkStatusItemResult(application_id=application_id, success=True))
        except ApplicationServiceError as e:
            results.append(
                BulkStatusItemResult(
                    application_id=application_id,
                    success=False,
                    error=e.error_code,
                    message=e.message,
                )
            )
        except Exception as e:
            logger.exception(f"Bulk status change failed for application {application_id}: {e}")
            await db.rollback()
            results.append(
                BulkStatusItemResult(
                    application_id=application_id,
                    success=False,
                    error="INTERNAL_ERROR",
                    message="Unexpected error updating this application.",
                )
            )
    return results


async def get_dashboard_stats(db: AsyncSession) -> dict[str, Any]:
    by_status = await repository.count_by_status(db)
    by_institution = await repository.count_by_institution(db)
    recent = await repository.count_submitted_since(db, datetime.now(UTC) - timedelta(days=7))

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_institution": by_institution,
        "submitted_last_7_days": recent,
    }
