"""
Notifications Repository

Database operations for notifications and user consents.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Notification, UserConsent


async def create_notification(
    db: AsyncSession,
    user_id: UUID,
    title: str,
    message: str,
    type: str = "info",
    data: dict[str, Any] | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data,
        is_read=False,
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_for_user(
    db: AsyncSession,
    user_id: UUID,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)  # noqa: E712
    result = await db.execute(stmt.order_by(Notification.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def count_unread(db: AsyncSession, user_id: UUID) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    return result.scalar() or 0


async def get_by_id(db: AsyncSession, id: UUID) -> Notification | None:
    return await db.get(Notification, id)


async def mark_read(db: AsyncSession, notification: Notification) -> Notification:
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(UTC)
        await db.commit()
        await db.refresh(notification)
    return notification


async def mark_all_read(db: AsyncSession, user_id: UUID) -> int:
    result = await db.execute(
        update(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
        .values(is_read=True, read_at=datetime.now(UTC))
    )
    await db.commit()
    return result.rowcount or 0


# ============================================
# Consents
# ============================================


async def get_active_consent(
    db: AsyncSession, user_id: UUID, consent_type: str
) -> UserConsent | None:
    result = await db.execute(
        select(UserConsent)
        .where(
            UserConsent.user_id == user_id,
            UserConsent.consent_type == consent_type,
            UserConsent.revoked_at.is_(None),
        )
        .order_by(UserConsent.granted_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_consents(db: AsyncSession, user_id: UUID) -> list[UserConsent]:
    result = await db.execute(
        select(UserConsent)
        .where(UserConsent.user_id == user_id)
        .order_by(UserConsent.granted_at.desc())
    )
    return list(result.scalars().all())


async def create_consent(
    db: AsyncSession,
    user_id: UUID,
    consent_type: str,
    granted_by: UUID | None,
    source: str | None = None,
    notes: str | None = None,
) -> UserConsent:
    consent = UserConsent(
        user_id=user_id,
        consent_type=consent_type,
        granted_by=granted_by,
        source=source,
        notes=notes,
    )
    db.add(consent)
    await db.commit()
    await db.refresh(consent)
    return consent


async def revoke_active_consents(
    db: AsyncSession,
    user_id: UUID,
    consent_type: str,
    revoked_by: UUID | None,
) -> int:
    result = await db.execute(
        update(UserConsent)
        .where(
            UserConsent.user_id == user_id,
            UserConsent.consent_type == consent_type,
            UserConsent.revoked_at.is_(None),
        )
        .values(revoked_at=datetime.now(UTC), revoked_by=revoked_by)
    )
    await db.commit()
    return result.rowcount or 0
