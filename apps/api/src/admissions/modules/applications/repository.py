"""
Applications Repository

Database operations for applications and their status history.
Only data access lives here; workflow rules are in the service layer,
except the transition guard which every status write goes through.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Application, ApplicationStatus, ApplicationStatusHistory
from .schemas import ApplicationCreate, ApplicationFilters
from .transitions import ensure_transition


async def create(
    db: AsyncSession,
    user_id: UUID,
    data: ApplicationCreate,
    application_number: str,
) -> Application:
    """Create a draft application and its first history row."""

    application = Application(
        application_number=application_number,
        user_id=user_id,
        institution=data.institution,
        program_id=data.program_id,
        intake_id=data.intake_id,
        full_name=data.full_name,
        email=str(data.email).lower(),
        phone=data.phone,
        address=data.address,
        form_data=data.form_data,
        status=ApplicationStatus.DRAFT,
    )
    db.add(application)
    await db.flush()

    db.add(
        ApplicationStatusHistory(
            application_id=application.id,
            from_status=None,
            status=ApplicationStatus.DRAFT,
            changed_by=user_id,
            notes="Application created",
        )
    )

    await db.commit()
    await db.refresh(application)

    return application


async def get_by_id(db: AsyncSession, id: UUID) -> Application | None:
    """Get application by ID."""
    return await db.get(Application, id)


async def number_exists(db: AsyncSession, application_number: str) -> bool:
    result = await db.execute(
        select(Application.id).where(Application.application_number == application_number)
    )
    return result.scalar_one_or_none() is not None


def _apply_filters(stmt, filters: ApplicationFilters, user_id: UUID | None):
    if user_id is not None:
        stmt = stmt.where(Application.user_id == user_id)
    if filters.status:
        stmt = stmt.where(Application.status == filters.status)
    if filters.institution:
        stmt = stmt.where(Application.institution == filters.institution)
    if filters.program_id:
        stmt = stmt.where(Application.program_id == filters.program_id)
    if filters.start_date:
        stmt = stmt.where(Application.created_at >= filters.start_date)
    if filters.end_date:
        stmt = stmt.where(Application.created_at <= filters.end_date)
    if filters.search:
        term = f"%{filters.search}%"
        stmt = stmt.where(
            or_(
                Application.full_name.ilike(term),
                Application.email.ilike(term),
                Application.application_number.ilike(term),
            )
        )
    return stmt


async def list_applications(
    db: AsyncSession,
    filters: ApplicationFilters,
    user_id: UUID | None = None,
) -> tuple[list[Application], int]:
    """
    List applications with filters, sorting and pagination.

    Args:
        db: Database session
        filters: Validated listing filters
        user_id: Restrict to one owner (None lists every application)

    Returns:
        Tuple of (applications, total matching count)
    """
    count_stmt = _apply_filters(select(func.count(Application.id)), filters, user_id)
    total = (await db.execute(count_stmt)).scalar() or 0

    sort_column = getattr(Application, filters.sort_by)
    order = sort_column.asc() if filters.sort_order == "asc" else sort_column.desc()

    stmt = _apply_filters(select(Application), filters, user_id)
    stmt = stmt.order_by(order).offset(filters.skip).limit(filters.limit)
    result = await db.execute(stmt)

    return list(result.scalars().all()), total


async def count_by_status(db: AsyncSession, user_id: UUID | None = None) -> dict[str, int]:
    """Count applications grouped by status. Every status is present in the result."""

    stmt = select(Application.status, func.count(Application.id)).group_by(Application.status)
    if user_id is not None:
        stmt = stmt.where(Application.user_id == user_id)
    result = await db.execute(stmt)

    counts = {s.value: 0 for s in ApplicationStatus}
    for row_status, count in result.all():
        key = row_status.value if isinstance(row_status, ApplicationStatus) else str(row_status)
        counts[key] = count
    return counts


async def count_by_institution(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(
        select(Application.institution, func.count(Application.id)).group_by(
            Application.institution
        )
    )
    return {
        (inst.value if hasattr(inst, "value") else str(inst)): count
        for inst, count in result.all()
    }


async def count_submitted_since(db: AsyncSession, since: datetime) -> int:
    result = await db.execute(
        select(func.count(Application.id)).where(Application.submitted_at >= since)
    )
    return result.scalar() or 0


async def update_fields(
    db: AsyncSession, application: Application, fields: dict[str, Any]
) -> Application:
    """Apply plain field updates (no status change)."""

    for key, value in fields.items():
        if key == "status":
            raise ValueError("Use update_status to change an application's status")
        if hasattr(application, key):
            setattr(application, key, value)

    await db.commit()
    await db.refresh(application)

    return application


async def update_status(
    db: AsyncSession,
    application: Application,
    new_status: ApplicationStatus,
    changed_by: UUID | None,
    notes: str | None = None,
    **kwargs,
) -> Application:
    """
    Move an application to a new status and record the change.

    The transition is checked before anything is written, so a rejected
    transition leaves the application and its history untouched.

    Args:
        db: Database session
        application: The application to update
        new_status: Requested status
        changed_by: User making the change
        notes: Optional note stored on the history row
        **kwargs: Additional fields to update (e.g., submitted_at)

    Returns:
        Updated Application

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed
    """
    current_status = application.status
    ensure_transition(current_status, new_status)

    application.status = new_status
    for key, value in kwargs.items():
        if hasattr(application, key):
            setattr(application, key, value)

    db.add(
        ApplicationStatusHistory(
            application_id=application.id,
            from_status=current_status,
            status=new_status,
            changed_by=changed_by,
            notes=notes,
        )
    )

    await db.commit()
    await db.refresh(application)

    return application


async def get_history(db: AsyncSession, application_id: UUID) -> list[ApplicationStatusHistory]:
    result = await db.execute(
        select(ApplicationStatusHistory)
        .where(ApplicationStatusHistory.application_id == application_id)
        .order_by(ApplicationStatusHistory.created_at)
    )
    return list(result.scalars().all())
