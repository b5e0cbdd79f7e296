"""
Authentication and Authorization Module

FastAPI dependencies that validate bearer tokens and resolve the caller's
roles and permissions.

Role resolution:
- If the access token already carries ``roles`` (list) or ``role`` (str)
  claims, those are used directly and no query is made.
- Otherwise the roles table is queried once. The answer is cached in a
  RequestRoleCache stored on ``request.state``, so every later check in the
  same request reuses it. The cache is discarded with the request.

Super-admin is an ordinary ``super_admin`` role. No account is special-cased
by email address.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.database import get_db
from admissions.core.security import decode_token
from admissions.modules.users.models import ADMIN_ROLES, UserRole
from admissions.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token for authentication",
)

_STUDENT_PERMISSIONS = frozenset(
    {
        "applications:create",
        "applications:read_own",
        "documents:upload",
        "notifications:read",
        "consents:manage_own",
    }
)
_OFFICER_PERMISSIONS = _STUDENT_PERMISSIONS | {
    "applications:read_all",
    "applications:review",
    "documents:verify",
}
_ADMIN_PERMISSIONS = _OFFICER_PERMISSIONS | {
    "users:manage",
    "notifications:send",
    "audit:read",
    "catalog:manage",
}

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    UserRole.STUDENT.value: _STUDENT_PERMISSIONS,
    UserRole.ADMISSIONS_OFFICER.value: _OFFICER_PERMISSIONS,
    UserRole.ADMIN.value: _ADMIN_PERMISSIONS,
    UserRole.SUPER_ADMIN.value: _ADMIN_PERMISSIONS | {"users:manage_roles"},
}


def permissions_for(roles: list[str] | tuple[str, ...], explicit: list[str] | None = None) -> frozenset[str]:
    """Union of the role permission table and any explicit grants."""
    granted: set[str] = set(explicit or [])
    for role in roles:
        granted |= ROLE_PERMISSIONS.get(role, frozenset())
    return frozenset(granted)


def roles_from_claims(claims: dict[str, Any]) -> list[str] | None:
    """
    Extract roles embedded in token claims.

    Returns:
        List of role names, or None if the token carries no role claim
    """
    roles = claims.get("roles")
    if isinstance(roles, list) and roles:
        return [str(r) for r in roles]

    role = claims.get("role")
    if isinstance(role, str) and role:
        return [role]

    return None


@dataclass(frozen=True)
class CachedRole:
    """Roles and permissions resolved for one user within one request."""

    user_id: UUID
    roles: tuple[str, ...]
    permissions: frozenset[str]
    fetched_at: datetime
    source: str  # "claims" or "database"


RoleLoader = Callable[[UUID], Awaitable[tuple[list[str], list[str]]]]


class RequestRoleCache:
    """
    Per-request memo of resolved roles.

    At most one backing lookup happens per user per cache instance.
    """

    def __init__(self, loader: RoleLoader):
        self._loader = loader
        self._entries: dict[UUID, CachedRole] = {}
        self.lookups = 0

    async def resolve(self, user_id: UUID, claims: dict[str, Any] | None = None) -> CachedRole:
        cached = self._entries.get(user_id)
        if cached is not None:
            return cached

        claims = claims or {}
        claim_roles = roles_from_claims(claims)

        if claim_roles is not None:
            explicit = claims.get("permissions")
            entry = CachedRole(
                user_id=user_id,
                roles=tuple(claim_roles),
                permissions=permissions_for(
                    claim_roles, explicit if isinstance(explicit, list) else None
                ),
                fetched_at=datetime.now(UTC),
                source="claims",
            )
        else:
            self.lookups += 1
            roles, explicit = await self._loader(user_id)
            if not roles:
                roles = [UserRole.STUDENT.value]
            entry = CachedRole(
                user_id=user_id,
                roles=tuple(roles),
                permissions=permissions_for(roles, explicit),
                fetched_at=datetime.now(UTC),
                source="database",
            )

        self._entries[user_id] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()


async def get_role_cache(request: Request, db: AsyncSession = Depends(get_db)) -> RequestRoleCache:
    """Return this request's role cache, creating it on first use."""
    cache = getattr(request.state, "role_cache", None)
    if cache is None:

        async def _load(user_id: UUID) -> tuple[list[str], list[str]]:
            return await UserRepository.get_role_snapshot(db, user_id)

        cache = RequestRoleCache(_load)
        request.state.role_cache = cache
    return cache


@dataclass
class CurrentUser:
    """
    The authenticated caller.

    Attributes:
        id: User id from the ``sub`` claim
        email: Email claim (may be empty)
        name: Display name claim
        roles: Resolved role names
        permissions: Resolved permission strings
        claims: The raw token claims
    """

    id: UUID
    email: str
    roles: tuple[str, ...]
    permissions: frozenset[str]
    name: str | None = None
    claims: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_admin(self) -> bool:
        return any(role in ADMIN_ROLES for role in self.roles)

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, roles={list(self.roles)})"


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _claims_from_token(token: str) -> tuple[UUID, dict[str, Any]]:
    """
    Validate a JWT and return (user id, claims).

    Raises:
        HTTPException 401: If the token is invalid, expired, of the wrong
            type or missing a usable ``sub`` claim
    """
    payload = decode_token(token)
    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    token_type = payload.get("type", "access")
    if token_type != "access":
        logger.warning(f"Invalid token type: {token_type}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        return UUID(str(payload.get("sub"))), payload
    except ValueError as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    role_cache: RequestRoleCache = Depends(get_role_cache),
) -> CurrentUser:
    """
    FastAPI dependency returning the authenticated user.

    Raises:
        HTTPException 401: If the token is missing, invalid or expired
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("NOT_AUTHENTICATED", "No authorization header provided.")

    user_id, claims = _claims_from_token(credentials.credentials)
    resolved = await role_cache.resolve(user_id, claims)

    request.state.user_id = user_id

    return CurrentUser(
        id=user_id,
        email=claims.get("email", ""),
        name=claims.get("name"),
        roles=resolved.roles,
        permissions=resolved.permissions,
        claims=claims,
    )


async def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    role_cache: RequestRoleCache = Depends(get_role_cache),
) -> CurrentUser | None:
    """Return the user when a valid token is supplied, otherwise None."""
    if credentials is None:
        return None
    try:
        return await get_current_user(request, credentials, role_cache)
    except HTTPException:
        return None


def require_roles(*roles: str):
    """
    Dependency factory allowing only users holding one of ``roles``.

    Usage:
        @router.get("/admin-only")
        async def endpoint(user: CurrentUser = Depends(require_roles("admin"))):
            ...
    """

    async def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.has_role(*roles):
            logger.warning(f"Access denied: user {user.id} has roles {list(user.roles)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "ACCESS_DENIED",
                    "message": "You do not have access to this resource.",
                },
            )
        return user

    return _dependency


def require_permission(permission: str):
    """Dependency factory allowing only users holding ``permission``."""

    async def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.has_permission(permission):
            logger.warning(f"Access denied: user {user.id} lacks permission '{permission}'")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "PERMISSION_REQUIRED",
                    "message": f"Permission '{permission}' is required.",
                },
            )
        return user

    return _dependency


require_admin = require_roles(*sorted(ADMIN_ROLES))


__all__ = [
    "CachedRole",
    "CurrentUser",
    "ROLE_PERMISSIONS",
    "RequestRoleCache",
    "get_current_user",
    "get_optional_user",
    "get_role_cache",
    "permissions_for",
    "require_admin",
    "require_permission",
    "require_roles",
    "roles_from_claims",
]
