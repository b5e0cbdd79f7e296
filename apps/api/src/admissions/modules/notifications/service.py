"""
Notifications Service Layer

In-app notifications for applicants and the consent checks that gate
admin-initiated outreach.

- System notifications (status changes, submissions) are always delivered.
- Admin outreach via ``send_admin_notification`` requires an active
  ``outreach`` consent for the recipient.
- Granting a consent that is already active returns the existing record.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.email import send_notification_email
from admissions.modules.users.repository import UserRepository

from . import repository
from .models import OUTREACH_CONSENT, Notification, UserConsent

logger = logging.getLogger(__name__)


class NotificationServiceError(Exception):
    """Base exception for notification service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class NotificationNotFoundError(NotificationServiceError):
    def __init__(self, notification_id: UUID | None = None):
        super().__init__(
            message=f"Notification {notification_id} not found"
            if notification_id
            else "Notification not found",
            error_code="NOTIFICATION_NOT_FOUND",
            status_code=404,
        )


class RecipientNotFoundError(NotificationServiceError):
    def __init__(self, user_id: UUID):
        super().__init__(
            message=f"User {user_id} not found",
            error_code="USER_NOT_FOUND",
            status_code=404,
        )


class ConsentRequiredError(NotificationServiceError):
    """Raised when outreach is attempted without an active consent."""

    def __init__(self, consent_type: str = OUTREACH_CONSENT):
        super().__init__(
            message=f"Active {consent_type} consent required before sending notifications",
            error_code="CONSENT_REQUIRED",
            status_code=412,
        )


async def notify_user(
    db: AsyncSession,
    user_id: UUID,
    title: str,
    message: str,
    type: str = "info",
    data: dict | None = None,
) -> Notification | None:
    """
    Create a system notification. Failures are logged, never raised, so a
    notification problem does not undo the action that triggered it.

    The insert runs in a savepoint: a failure rolls back only the savepoint
    and objects the caller already loaded stay usable.
    """
    try:
        async with db.begin_nested():
            notification = await repository.create_notification(
                db, user_id=user_id, title=title, message=message, type=type, data=data
            )
        await db.commit()
        return notification
    except Exception as e:
        logger.error(f"Failed to create notification for user {user_id}: {e}")
        return None


async def list_notifications(
    db: AsyncSession, user_id: UUID, unread_only: bool = False, limit: int = 50
) -> tuple[list[Notification], int]:
    notifications = await repository.list_for_user(db, user_id, unread_only, limit)
    unread = await repository.count_unread(db, user_id)
    return notifications, unread


async def mark_read(db: AsyncSession, notification_id: UUID, user_id: UUID) -> Notification:
    notification = await repository.get_by_id(db, notification_id)
    # Another user's notification is reported as missing
    if not notification or notification.user_id != user_id:
        raise NotificationNotFoundError(notification_id)
    return await repository.mark_read(db, notification)


async def mark_all_read(db: AsyncSession, user_id: UUID) -> int:
    return await repository.mark_all_read(db, user_id)


async def has_active_consent(db: AsyncSession, user_id: UUID, consent_type: str) -> bool:
    return await repository.get_active_consent(db, user_id, consent_type) is not None


async def send_admin_notification(
    db: AsyncSession,
    *,
    user_id: UUID,
    title: str,
    message: str,
    type: str = "info",
    data: dict | None = None,
    send_email: bool = False,
) -> Notification:
    """
    Send an admin-initiated notification.

    Raises:
        RecipientNotFoundError: If the user does not exist
        ConsentRequiredError: If the user has no active outreach consent
    """
    user = await UserRepository.get_by_id(db, user_id)
    if not user:
        raise RecipientNotFoundError(user_id)

    if not await has_active_consent(db, user_id, OUTREACH_CONSENT):
        raise ConsentRequiredError()

    notification = await repository.create_notification(
        db, user_id=user_id, title=title, message=message, type=type, data=data
    )
    await db.commit()
    await db.refresh(notification)

    if send_email:
        await send_notification_email(user.email, title, message)

    return notification


async def list_consents(db: AsyncSession, user_id: UUID) -> list[UserConsent]:
    return await repository.list_consents(db, user_id)


async def grant_consent(
    db: AsyncSession,
    user_id: UUID,
    consent_type: str,
    actor_id: UUID,
    source: str | None = None,
    notes: str | None = None,
) -> UserConsent:
    """Grant a consent. Idempotent: an existing active grant is returned as is."""
    existing = await repository.get_active_consent(db, user_id, consent_type)
    if existing:
        return existing

    consent = await repository.create_consent(
        db,
        user_id=user_id,
        consent_type=consent_type,
        granted_by=actor_id,
        source=source,
        notes=notes,
    )
    logger.info(f"Consent '{consent_type}' granted for user {user_id} by {actor_id}")
    return consent


async def revoke_consent(
    db: AsyncSession,
    user_id: UUID,
    consent_type: str,
    actor_id: UUID,
) -> int:
    """Revoke every active grant of ``consent_type``. Returns the number revoked."""
    revoked = await repository.revoke_active_consents(db, user_id, consent_type, actor_id)
    logger.info(f"Consent '{consent_type}' revoked for user {user_id} by {actor_id} ({revoked})")
    return revoked
