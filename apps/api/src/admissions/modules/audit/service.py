"""
Audit Logging

``log_audit_event`` records an action in ``system_audit_log``. It never
raises: a failed audit write is logged and the caller carries on. The
insert runs in a savepoint on the caller's session, so a failure leaves the
caller's loaded objects and committed work alone.
"""

import json
import logging
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.rate_limit import get_client_ip

from .models import AuditLogEntry

logger = logging.getLogger(__name__)


def normalize_metadata(metadata: Any) -> dict[str, Any]:
    """Coerce arbitrary metadata into a JSON-serializable dict."""
    if metadata is None:
        return {}
    if isinstance(metadata, BaseException):
        return {"message": str(metadata), "type": type(metadata).__name__}
    if isinstance(metadata, dict):
        try:
            return json.loads(json.dumps(metadata, default=str))
        except (TypeError, ValueError) as e:
            return {"description": str(metadata), "serialization_error": str(e)}
    return {"value": metadata if isinstance(metadata, (str, int, float, bool)) else str(metadata)}


def extract_request_context(request: Request | None) -> dict[str, str | None]:
    """Pull ip, user agent and request id out of a request."""
    if request is None:
        return {"request_ip": None, "user_agent": None, "request_id": None}

    ip = get_client_ip(request)
    return {
        "request_ip": None if ip == "unknown" else ip,
        "user_agent": request.headers.get("user-agent"),
        "request_id": request.headers.get("x-request-id") or request.headers.get("cf-ray"),
    }


async def log_audit_event(
    db: AsyncSession,
    *,
    action: str,
    request: Request | None = None,
    actor: Any = None,
    target_table: str | None = None,
    target_id: UUID | str | None = None,
    target_label: str | None = None,
    metadata: Any = None,
) -> bool:
    """
    Record an audit event.

    Args:
        db: Database session
        action: Dotted action name, e.g. ``application.status.update``
        request: Incoming request, for ip / user agent / request id
        actor: The acting ``CurrentUser`` (anything with id/email/roles)
        target_table: Table of the affected row
        target_id: Id of the affected row
        target_label: Human readable label for the affected row
        metadata: Extra details

    Returns:
        True if the entry was written
    """
    if not action:
        return False

    try:
        async with db.begin_nested():
            entry = AuditLogEntry(
                action=action,
                actor_id=getattr(actor, "id", None),
                actor_email=getattr(actor, "email", None) or None,
                actor_roles=list(getattr(actor, "roles", ()) or ()),
                target_table=target_table,
                target_id=str(target_id) if target_id is not None else None,
                target_label=target_label,
                details=normalize_metadata(metadata),
                **extract_request_context(request),
            )
            db.add(entry)
            await db.flush()
        await db.commit()
        return True
    except Exception as e:
        logger.error(f"Failed to record audit event '{action}': {e}")
        return False
