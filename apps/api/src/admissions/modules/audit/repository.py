"""Audit log queries."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AuditLogEntry

EXPORT_BATCH_SIZE = 1000


def _conditions(
    action: str | None = None,
    actor_id: UUID | None = None,
    target_table: str | None = None,
    target_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list:
    conditions = []
    if action:
        conditions.append(AuditLogEntry.action.ilike(f"{action}%"))
    if actor_id:
        conditions.append(AuditLogEntry.actor_id == actor_id)
    if target_table:
        conditions.append(AuditLogEntry.target_table == target_table)
    if target_id:
        conditions.append(AuditLogEntry.target_id == target_id)
    if start:
        conditions.append(AuditLogEntry.created_at >= start)
    if end:
        conditions.append(AuditLogEntry.created_at <= end)
    return conditions


async def list_entries(
    db: AsyncSession,
    *,
    skip: int = 0,
    limit: int = 25,
    **filters,
) -> tuple[list[AuditLogEntry], int]:
    """List audit entries newest first. ``action`` matches as a prefix."""
    conditions = _conditions(**filters)

    total = (
        await db.execute(select(func.count(AuditLogEntry.id)).where(*conditions))
    ).scalar() or 0

    result = await db.execute(
        select(AuditLogEntry)
        .where(*conditions)
        .order_by(AuditLogEntry.created_at.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def export_entries(
    db: AsyncSession, *, batch_size: int = EXPORT_BATCH_SIZE, **filters
) -> list[AuditLogEntry]:
    """Every entry matching the filters, newest first, fetched in batches."""
    conditions = _conditions(**filters)
    stmt = (
        select(AuditLogEntry)
        .where(*conditions)
        .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id)
    )

    entries: list[AuditLogEntry] = []
    offset = 0
    while True:
        result = await db.execute(stmt.offset(offset).limit(batch_size))
        batch = list(result.scalars().all())
        entries.extend(batch)
        if len(batch) < batch_size:
            return entries
        offset += batch_size


async def get_stats(
    db: AsyncSession,
    since: datetime,
    *,
    top: int = 5,
    recent: int = 10,
) -> dict:
    """Totals, entries since ``since``, distinct actors, top actions and the newest entries."""
    total = (await db.execute(select(func.count(AuditLogEntry.id)))).scalar() or 0
    today = (
        await db.execute(
            select(func.count(AuditLogEntry.id)).where(AuditLogEntry.created_at >= since)
        )
    ).scalar() or 0
    actors = (
        await db.execute(select(func.count(AuditLogEntry.actor_id.distinct())))
    ).scalar() or 0

    occurrences = func.count(AuditLogEntry.id).label("occurrences")
    top_rows = await db.execute(
        select(AuditLogEntry.action, occurrences)
        .group_by(AuditLogEntry.action)
        .order_by(occurrences.desc(), AuditLogEntry.action)
        .limit(top)
    )

    recent_rows = await db.execute(
        select(AuditLogEntry).order_by(AuditLogEntry.created_at.desc()).limit(recent)
    )

    return {
        "total_entries": total,
        "today_entries": today,
        "unique_actors": actors,
        "top_actions": [{"action": action, "count": n} for action, n in top_rows.all()],
        "recent_activity": list(recent_rows.scalars().all()),
    }
