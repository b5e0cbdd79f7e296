"""
Admin Users Router

Endpoints:
- GET    /admin/users                    - List / search users
- POST   /admin/users                    - Create a user with a role
- GET    /admin/users/{id}               - User detail
- PATCH  /admin/users/{id}               - Update profile, status or role
- DELETE /admin/users/{id}               - Deactivate
- GET    /admin/users/{id}/permissions   - Explicit permissions
- PUT    /admin/users/{id}/permissions   - Replace explicit permissions

Granting ``admin`` or ``super_admin`` and editing explicit permissions
require ``users:manage_roles``.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, require_permission
from admissions.core.database import get_db
from admissions.core.security import hash_password
from admissions.modules.audit.service import log_audit_event
from admissions.modules.users.models import User, UserRole
from admissions.modules.users.repository import UserRepository
from admissions.modules.users.schemas import (
    PermissionsPayload,
    PermissionsResponse,
    UserCreate,
    UserDetail,
    UserListResponse,
    UserUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()

PRIVILEGED_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN})


def _user_not_found(user_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "USER_NOT_FOUND",
            "message": f"User {user_id} not found",
        },
    )


def _check_can_grant(admin: CurrentUser, role: UserRole) -> None:
    if role in PRIVILEGED_ROLES and not admin.has_permission("users:manage_roles"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "PERMISSION_REQUIRED",
                "message": f"Only super admins can grant the {role.value} role.",
            },
        )


def _to_detail(user: User, roles: list[str]) -> UserDetail:
    return UserDetail(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone=user.phone,
        roles=roles,
        is_active=user.is_active,
        is_verified=user.is_verified,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


@router.get("", response_model=UserListResponse)
async def list_users(
    search: str | None = Query(None, min_length=1, max_length=100),
    role: UserRole | None = Query(None),
    is_active: bool | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("users:manage")),
) -> UserListResponse:
    users, total = await UserRepository.list_users(
        db, search=search, role=role, is_active=is_active, skip=skip, limit=limit
    )
    return UserListResponse(
        users=[_to_detail(u, u.active_roles) for u in users],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post("", response_model=UserDetail, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("users:manage")),
) -> UserDetail:
    _check_can_grant(admin, data.role)

    if await UserRepository.email_exists(db, data.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "EMAIL_ALREADY_REGISTERED",
                "message": "An account with this email already exists.",
            },
        )

    user = await UserRepository.create(
        db,
        email=data.email,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        phone=data.phone,
        role=data.role,
        is_verified=data.is_verified,
        granted_by=admin.id,
    )

    await log_audit_event(
        db,
        request=request,
        action="users.create",
        actor=admin,
        target_table="users",
        target_id=user.id,
        target_label=user.email,
        metadata={"role": data.role.value},
    )
    return _to_detail(user, [data.role.value])


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("users:manage")),
) -> UserDetail:
    user = await UserRepository.get_by_id(db, user_id)
    if not user:
        raise _user_not_found(user_id)
    roles = await UserRepository.get_active_roles(db, user.id)
    return _to_detail(user, roles)


@router.patch("/{user_id}", response_model=UserDetail)
async def update_user(
    user_id: UUID,
    data: UserUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("users:manage")),
) -> UserDetail:
    """Update a user. A new ``role`` replaces the user's active roles."""
    user = await UserRepository.get_by_id(db, user_id)
    if not user:
        raise _user_not_found(user_id)

    if data.role is not None:
        _check_can_grant(admin, data.role)

    fields = data.model_dump(exclude_unset=True, exclude={"role"})
    if fields:
        user = await UserRepository.update(db, user, **fields)

    if data.role is not None:
        await UserRepository.set_role(db, user.id, data.role, granted_by=admin.id)

    roles = await UserRepository.get_active_roles(db, user.id)

    await log_audit_event(
        db,
        request=request,
        action="users.update",
        actor=admin,
        target_table="users",
        target_id=user.id,
        target_label=user.email,
        metadata={
            "fields": sorted(fields),
            "role": data.role.value if data.role else None,
        },
    )
    return _to_detail(user, roles)


@router.delete("/{user_id}", response_model=UserDetail)
async def deactivate_user(
    user_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("users:manage")),
) -> UserDetail:
    """Deactivate a user. Accounts are never hard-deleted here."""
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "CANNOT_DEACTIVATE_SELF",
                "message": "You cannot deactivate your own account.",
            },
        )

    user = await UserRepository.get_by_id(db, user_id)
    if not user:
        raise _user_not_found(user_id)

    user = await UserRepository.update(db, user, is_active=False)
    roles = await UserRepository.get_active_roles(db, user.id)

    await log_audit_event(
        db,
        request=request,
        action="users.deactivate",
        actor=admin,
        target_table="users",
        target_id=user.id,
        target_label=user.email,
    )
    return _to_detail(user, roles)


@router.get("/{user_id}/permissions", response_model=PermissionsResponse)
async def get_permissions(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("users:manage")),
) -> PermissionsResponse:
    if not await UserRepository.get_by_id(db, user_id):
        raise _user_not_found(user_id)
    permissions = await UserRepository.get_permissions(db, user_id)
    return PermissionsResponse(user_id=user_id, permissions=permissions)


@router.put("/{user_id}/permissions", response_model=PermissionsResponse)
async def set_permissions(
    user_id: UUID,
    data: PermissionsPayload,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_permission("users:manage_roles")),
) -> PermissionsResponse:
    if not await UserRepository.get_by_id(db, user_id):
        raise _user_not_found(user_id)

    permissions = await UserRepository.set_permissions(
        db, user_id, data.permissions, updated_by=admin.id
    )

    await log_audit_event(
        db,
        request=request,
        action="users.permissions.update",
        actor=admin,
        target_table="user_permissions",
        target_id=user_id,
        metadata={"permissions": permissions},
    )
    return PermissionsResponse(user_id=user_id, permissions=permissions)
