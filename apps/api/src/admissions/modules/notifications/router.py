"""
Notifications Router

- GET  /notifications              - Caller's notifications
- POST /notifications/{id}/read    - Mark one as read
- POST /notifications/read-all     - Mark all as read
- POST /notifications/send         - Admin outreach (requires outreach consent)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, get_current_user, require_permission
from admissions.core.database import get_db
from admissions.core.rate_limit import enforce_rate_limit
from admissions.modules.audit.service import log_audit_event

from . import service
from .schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    SendNotificationRequest,
)
from .service import ConsentRequiredError, NotificationServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_service_error(e: NotificationServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> NotificationListResponse:
    notifications, unread = await service.list_notifications(db, user.id, unread_only, limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread,
    )


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> MarkAllReadResponse:
    updated = await service.mark_all_read(db, user.id)
    return MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> NotificationResponse:
    try:
        notification = await service.mark_read(db, notification_id, user.id)
    except NotificationServiceError as e:
        _handle_service_error(e)
    return NotificationResponse.model_validate(notification)


@router.post(
    "/send",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        412: {"description": "Recipient has no active outreach consent"},
        429: {"description": "Too many notification requests"},
    },
)
async def send_notification(
    data: SendNotificationRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("notifications:send")),
) -> NotificationResponse:
    """Send a notification to a user who has opted in to outreach."""
    await enforce_rate_limit(
        request,
        "notifications_send",
        user_id=admin.id,
        max_attempts=25,
        window_seconds=120,
        message="Too many notification requests. Please wait before retrying.",
    )

    try:
        notification = await service.send_admin_notification(
            db,
            user_id=data.user_id,
            title=data.title,
            message=data.message,
            type=data.type,
            data=data.data,
            send_email=data.send_email,
        )
    except ConsentRequiredError as e:
        await log_audit_event(
            db,
            request=request,
            action="notifications.send.blocked",
            actor=admin,
            target_table="user_consents",
            target_id=data.user_id,
            metadata={"reason": "missing_outreach_consent", "title": data.title},
        )
        _handle_service_error(e)
    except NotificationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error sending notification: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "Failed to send notification.",
            },
        ) from e

    await log_audit_event(
        db,
        request=request,
        action="notifications.send",
        actor=admin,
        target_table="notifications",
        target_id=notification.id,
        metadata={"user_id": data.user_id, "type": data.type, "title": data.title},
    )
    return NotificationResponse.model_validate(notification)
