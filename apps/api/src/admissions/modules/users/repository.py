"""
User Repository

Database operations for users, role assignments and explicit permissions.
"""

import logging
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.modules.users.models import User, UserPermission, UserRole, UserRoleAssignment

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        full_name: str,
        role: UserRole = UserRole.STUDENT,
        phone: str | None = None,
        is_active: bool = True,
        is_verified: bool = False,
        granted_by: UUID | None = None,
    ) -> User:
        """
        Create a user together with their initial role assignment.

        Args:
            db: Database session
            email: Email address (unique, stored lower-cased)
            password_hash: Hashed password
            full_name: Display name
            role: Initial role
            phone: Phone number (optional)
            is_active: Whether the account can sign in
            is_verified: Whether the email is verified
            granted_by: Staff member creating the account, if any

        Returns:
            Created User instance
        """
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            full_name=full_name,
            phone=phone,
            is_active=is_active,
            is_verified=is_verified,
        )
        db.add(user)
        await db.flush()

        db.add(UserRoleAssignment(user_id=user.id, role=role, is_active=True, granted_by=granted_by))
        await db.commit()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} ({role.value})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: UUID) -> User | None:
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        user = await UserRepository.get_by_email(db, email)
        return user is not None

    @staticmethod
    async def list_users(
        db: AsyncSession,
        *,
        search: str | None = None,
        role: UserRole | None = None,
        is_active: bool | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[User], int]:
        """
        List users with optional filters.

        Returns:
            Tuple of (users page, total matching count)
        """
        conditions = []
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))
        if is_active is not None:
            conditions.append(User.is_active == is_active)
        if role is not None:
            conditions.append(
                User.id.in_(
                    select(UserRoleAssignment.user_id).where(
                        UserRoleAssignment.role == role,
                        UserRoleAssignment.is_active == True,  # noqa: E712
                    )
                )
            )

        total = (
            await db.execute(select(func.count()).select_from(User).where(*conditions))
        ).scalar_one()

        result = await db.execute(
            select(User).where(*conditions).order_by(User.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def update(db: AsyncSession, user: User, **fields) -> User:
        """Apply field updates to a user."""
        for key, value in fields.items():
            if value is not None and hasattr(user, key):
                setattr(user, key, value.lower() if key == "email" else value)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def get_active_roles(db: AsyncSession, user_id: UUID) -> list[str]:
        """Return the user's active role names with a single query."""
        result = await db.execute(
            select(UserRoleAssignment.role).where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.is_active == True,  # noqa: E712
            )
        )
        return [role.value for role in result.scalars().all()]

    @staticmethod
    async def get_role_snapshot(db: AsyncSession, user_id: UUID) -> tuple[list[str], list[str]]:
        """
        Load active roles and explicit permissions in one query.

        Returns:
            Tuple of (role names, explicit permission strings)
        """
        result = await db.execute(
            select(UserRoleAssignment.role, UserPermission.permissions)
            .select_from(UserRoleAssignment)
            .outerjoin(UserPermission, UserPermission.user_id == UserRoleAssignment.user_id)
            .where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.is_active == True,  # noqa: E712
            )
        )
        rows = result.all()
        roles = [row[0].value for row in rows]
        permissions = list(rows[0][1] or []) if rows else []
        return roles, permissions

    @staticmethod
    async def set_role(
        db: AsyncSession,
        user_id: UUID,
        role: UserRole,
        granted_by: UUID | None = None,
    ) -> None:
        """
        Make ``role`` the user's only active role.

        Other assignments are deactivated rather than deleted.
        """
        await db.execute(
            update(UserRoleAssignment)
            .where(UserRoleAssignment.user_id == user_id, UserRoleAssignment.role != role)
            .values(is_active=False)
        )

        result = await db.execute(
            select(UserRoleAssignment).where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.role == role,
            )
        )
        assignment = result.scalar_one_or_none()

        if assignment:
            assignment.is_active = True
            assignment.granted_by = granted_by
        else:
            db.add(
                UserRoleAssignment(
                    user_id=user_id, role=role, is_active=True, granted_by=granted_by
                )
            )

        await db.commit()
        logger.info(f"Role for user {user_id} set to {role.value}")

    @staticmethod
    async def get_permissions(db: AsyncSession, user_id: UUID) -> list[str]:
        result = await db.execute(
            select(UserPermission.permissions).where(UserPermission.user_id == user_id)
        )
        permissions = result.scalar_one_or_none()
        return list(permissions or [])

    @staticmethod
    async def set_permissions(
        db: AsyncSession,
        user_id: UUID,
        permissions: list[str],
        updated_by: UUID | None = None,
    ) -> list[str]:
        """Replace the user's explicit permissions."""
        result = await db.execute(select(UserPermission).where(UserPermission.user_id == user_id))
        record = result.scalar_one_or_none()

        if record:
            record.permissions = permissions
            record.updated_by = updated_by
        else:
            db.add(UserPermission(user_id=user_id, permissions=permissions, updated_by=updated_by))

        await db.commit()
        return permissions
