"""User management schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from admissions.modules.users.models import UserRole


class UserCreate(BaseModel):
    """Request body for POST /admin/users."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=20)
    role: UserRole = UserRole.STUDENT
    is_verified: bool = True


class UserUpdate(BaseModel):
    """Request body for PATCH /admin/users/{id}. Unset fields are left alone."""

    full_name: str | None = Field(None, min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=20)
    is_active: bool | None = None
    is_verified: bool | None = None
    role: UserRole | None = None


class UserDetail(BaseModel):
    id: UUID
    email: str
    full_name: str
    phone: str | None = None
    roles: list[str]
    is_active: bool
    is_verified: bool
    created_at: datetime
    updated_at: datetime


class UserListResponse(BaseModel):
    users: list[UserDetail]
    total: int
    skip: int
    limit: int


class PermissionsPayload(BaseModel):
    permissions: list[str] = Field(default_factory=list, max_length=100)

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v: list[str]) -> list[str]:
        cleaned = []
        for permission in v:
            permission = permission.strip()
            if not permission or ":" not in permission:
                raise ValueError(f"Invalid permission '{permission}' (expected 'resource:action')")
            if permission not in cleaned:
                cleaned.append(permission)
        return cleaned


class PermissionsResponse(BaseModel):
    user_id: UUID
    permissions: list[str]
