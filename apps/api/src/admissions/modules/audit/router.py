"""
Audit Log Router

- GET /admin/audit-log        - Filtered, paginated audit entries
- GET /admin/audit-log/export - Every matching entry as CSV or JSON
- GET /admin/audit-log/stats  - Totals, top actions and recent activity
"""

import csv
import io
import json
import logging
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, require_permission
from admissions.core.database import get_db

from . import repository
from .models import AuditLogEntry
from .schemas import (
    AuditExportFormat,
    AuditLogEntryResponse,
    AuditLogListResponse,
    AuditLogStatsResponse,
)
from .service import log_audit_event

logger = logging.getLogger(__name__)

router = APIRouter()

CSV_COLUMNS = [
    ("ID", "id"),
    ("Action", "action"),
    ("Actor ID", "actor_id"),
    ("Actor Email", "actor_email"),
    ("Actor Roles", "actor_roles"),
    ("Target Table", "target_table"),
    ("Target ID", "target_id"),
    ("Target Label", "target_label"),
    ("Request ID", "request_id"),
    ("Request IP", "request_ip"),
    ("User Agent", "user_agent"),
    ("Metadata", "metadata"),
    ("Created At", "created_at"),
]


class AuditFilters:
    """Query filters shared by the listing and the export."""

    def __init__(
        self,
        action: str | None = Query(None, max_length=100, description="Action prefix"),
        actor_id: UUID | None = Query(None),
        target_table: str | None = Query(None, max_length=100),
        target_id: str | None = Query(None, max_length=100),
        start: datetime | None = Query(None, alias="from"),
        end: datetime | None = Query(None, alias="to"),
    ):
        self.action = action
        self.actor_id = actor_id
        self.target_table = target_table
        self.target_id = target_id
        self.start = start
        self.end = end

    def as_kwargs(self) -> dict:
        return {
            "action": self.action,
            "actor_id": self.actor_id,
            "target_table": self.target_table,
            "target_id": self.target_id,
            "start": self.start,
            "end": self.end,
        }

    def for_audit(self) -> dict:
        return {
            "action": self.action,
            "actor_id": self.actor_id,
            "target_table": self.target_table,
            "target_id": self.target_id,
            "from": self.start,
            "to": self.end,
        }


def _csv_cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value) if value else ""
    return str(value)


def entries_to_csv(rows: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([header for header, _ in CSV_COLUMNS])
    for row in rows:
        writer.writerow([_csv_cell(row.get(field)) for _, field in CSV_COLUMNS])
    return buffer.getvalue()


def _export_filename(extension: str, now: datetime) -> str:
    return f"audit-log-{now.strftime('%Y-%m-%dT%H-%M-%SZ')}.{extension}"


def _serialize(entries: list[AuditLogEntry]) -> list[dict]:
    return [AuditLogEntryResponse.model_validate(e).model_dump(mode="json") for e in entries]


@router.get("", response_model=AuditLogListResponse)
async def list_audit_log(
    request: Request,
    filters: AuditFilters = Depends(),
    skip: int = Query(0, ge=0),
    limit: int = Query(25, ge=5, le=100),
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("audit:read")),
) -> AuditLogListResponse:
    entries, total = await repository.list_entries(
        db, skip=skip, limit=limit, **filters.as_kwargs()
    )
    response = AuditLogListResponse(
        entries=[AuditLogEntryResponse.model_validate(e) for e in entries],
        total=total,
        skip=skip,
        limit=limit,
    )

    await log_audit_event(
        db,
        request=request,
        action="audit.log.view",
        actor=admin,
        target_table="system_audit_log",
        metadata={"filters": filters.for_audit(), "returned": len(entries)},
    )
    return response


@router.get("/export")
async def export_audit_log(
    request: Request,
    filters: AuditFilters = Depends(),
    export_format: AuditExportFormat = Query(AuditExportFormat.CSV, alias="format"),
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("audit:read")),
) -> Response:
    """Download every matching entry, newest first."""
    entries = await repository.export_entries(db, **filters.as_kwargs())
    rows = _serialize(entries)

    if export_format == AuditExportFormat.JSON:
        content = json.dumps(rows, indent=2)
        media_type = "application/json"
    else:
        content = entries_to_csv(rows)
        media_type = "text/csv"

    filename = _export_filename(export_format.value, datetime.now(UTC))
    logger.info(f"Audit log export by {admin.id}: {len(rows)} rows as {export_format.value}")

    await log_audit_event(
        db,
        request=request,
        action="audit.log.export",
        actor=admin,
        target_table="system_audit_log",
        metadata={
            "format": export_format.value,
            "record_count": len(rows),
            "filters": filters.for_audit(),
        },
    )
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )


@router.get("/stats", response_model=AuditLogStatsResponse)
async def audit_log_stats(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("audit:read")),
) -> AuditLogStatsResponse:
    start_of_today = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    stats = await repository.get_stats(db, start_of_today)

    result = AuditLogStatsResponse(
        total_entries=stats["total_entries"],
        today_entries=stats["today_entries"],
        unique_actors=stats["unique_actors"],
        top_actions=stats["top_actions"],
        recent_activity=[AuditLogEntryResponse.model_validate(e) for e in stats["recent_activity"]],
    )

    await log_audit_event(
        db,
        request=request,
        action="audit.log.stats.view",
        actor=admin,
        target_table="system_audit_log",
        metadata={
            "total_entries": result.total_entries,
            "today_entries": result.today_entries,
            "unique_actors": result.unique_actors,
            "top_actions": [item.action for item in result.top_actions],
        },
    )
    response.headers["Cache-Control"] = "no-store"
    return result
