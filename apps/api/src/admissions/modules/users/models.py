"""
User Models

Identity, role assignments and explicit permissions.
"""

import uuid
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import ENUM, JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from admissions.modules.shared import BaseModel


class UserRole(str, Enum):
    """Roles a user can hold."""

    STUDENT = "student"
    ADMISSIONS_OFFICER = "admissions_officer"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# Roles allowed into the staff endpoints
ADMIN_ROLES: frozenset[str] = frozenset(
    {UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value, UserRole.ADMISSIONS_OFFICER.value}
)


class User(BaseModel):
    """
    Applicant or staff account.

    Roles live in ``user_roles``; a user with no active role row is treated
    as a student.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    role_assignments: Mapped[list["UserRoleAssignment"]] = relationship(
        "UserRoleAssignment",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"

    @property
    def active_roles(self) -> list[str]:
        return [a.role.value for a in self.role_assignments if a.is_active]


class UserRoleAssignment(BaseModel):
    """A role granted to a user."""

    __tablename__ = "user_roles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        ENUM(UserRole, name="user_role", create_type=True),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    granted_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="role_assignments")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        Index("ix_user_roles_user_id_active", "user_id", "is_active"),
    )


class UserPermission(BaseModel):
    """Explicit permissions granted on top of a user's roles."""

    __tablename__ = "user_permissions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
