"""
User Consents Router

- GET  /user-consents         - Caller's consent records (admins may pass user_id)
- POST /user-consents/grant   - Grant a consent (idempotent)
- POST /user-consents/revoke  - Revoke a consent
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, get_current_user
from admissions.core.database import get_db
from admissions.modules.audit.service import log_audit_event

from . import service
from .schemas import ConsentChangeRequest, ConsentListResponse, ConsentResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _target_user_id(user: CurrentUser, requested: UUID | None) -> UUID:
    """Admins may act on another user; everyone else acts on themselves."""
    if requested and user.is_admin:
        return requested
    return user.id


@router.get("", response_model=ConsentListResponse)
async def list_consents(
    request: Request,
    user_id: UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ConsentListResponse:
    target = _target_user_id(user, user_id)
    records = [ConsentResponse.model_validate(c) for c in await service.list_consents(db, target)]
    active = [c for c in records if c.active]

    await log_audit_event(
        db,
        request=request,
        action="consents.fetch",
        actor=user,
        target_table="user_consents",
        target_id=target,
        metadata={
            "record_count": len(records),
            "active_count": len(active),
            "as_admin": target != user.id,
        },
    )
    return ConsentListResponse(consents=records, active=active)


@router.post("/grant", response_model=ConsentResponse)
async def grant_consent(
    data: ConsentChangeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ConsentResponse:
    target = _target_user_id(user, data.user_id)
    consent = await service.grant_consent(
        db,
        user_id=target,
        consent_type=data.consent_type,
        actor_id=user.id,
        source=data.source,
        notes=data.notes,
    )

    await log_audit_event(
        db,
        request=request,
        action="consents.grant",
        actor=user,
        target_table="user_consents",
        target_id=target,
        metadata={
            "consent_type": data.consent_type,
            "source": data.source,
            "as_admin": target != user.id,
        },
    )
    return ConsentResponse.model_validate(consent)


@router.post("/revoke", response_model=ConsentListResponse)
async def revoke_consent(
    data: ConsentChangeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ConsentListResponse:
    target = _target_user_id(user, data.user_id)
    await service.revoke_consent(db, target, data.consent_type, user.id)

    await log_audit_event(
        db,
        request=request,
        action="consents.revoke",
        actor=user,
        target_table="user_consents",
        target_id=target,
        metadata={"consent_type": data.consent_type, "as_admin": target != user.id},
    )

    records = [ConsentResponse.model_validate(c) for c in await service.list_consents(db, target)]
    return ConsentListResponse(consents=records, active=[c for c in records if c.active])
