"""
Authentication router.

- POST /auth/login     - Email/password login (rate limited per client IP)
- POST /auth/register  - Student self-registration (rate limited per client IP)
- POST /auth/refresh   - Exchange a refresh token for new tokens
- GET  /auth/me        - The caller's resolved roles and permissions
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import CurrentUser, get_current_user
from admissions.core.database import get_db
from admissions.core.rate_limit import enforce_rate_limit
from admissions.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from admissions.modules.audit.service import log_audit_event
from admissions.modules.auth.schemas import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from admissions.modules.users.models import User, UserRole
from admissions.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()

# 5 attempts per 15 minutes unless RATE_LIMIT_AUTH_LOGIN_* says otherwise
LOGIN_MAX_ATTEMPTS = 5
LOGIN_WINDOW_SECONDS = 15 * 60

REGISTER_MAX_ATTEMPTS = 10
REGISTER_WINDOW_SECONDS = 60 * 60


class RefreshRequest(BaseModel):
    refresh_token: str


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "error": "INVALID_CREDENTIALS",
            "message": "Invalid email or password.",
        },
    )


def _issue_tokens(user: User, roles: list[str]) -> tuple[str, str]:
    # Roles travel in the token so most requests resolve them without a query
    additional_claims = {
        "email": user.email,
        "name": user.full_name,
        "roles": roles,
    }
    access_token = create_access_token(subject=str(user.id), additional_claims=additional_claims)
    refresh_token = create_refresh_token(subject=str(user.id))
    return access_token, refresh_token


def _user_response(user: User, roles: list[str]) -> UserResponse:
    return UserResponse(
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


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={429: {"description": "Too many login attempts"}},
)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Authenticate user and return JWT tokens.

    The rate limit is checked before the credentials, so a limited client
    gets 429 without the password ever being verified.

    Raises:
        HTTPException 429: Too many attempts from this client
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive
    """
    await enforce_rate_limit(
        request,
        "auth_login",
        max_attempts=LOGIN_MAX_ATTEMPTS,
        window_seconds=LOGIN_WINDOW_SECONDS,
        message="Too many login attempts. Please try again later.",
    )

    user = await UserRepository.get_by_email(db, credentials.email)

    if not user:
        logger.warning(f"Login attempt for non-existent email: {credentials.email}")
        raise _invalid_credentials()

    if not verify_password(credentials.password, user.password_hash):
        logger.warning(f"Invalid password for user: {credentials.email}")
        raise _invalid_credentials()

    if not user.is_active:
        logger.warning(f"Login attempt for inactive account: {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ACCOUNT_INACTIVE",
                "message": "Your account has been deactivated.",
            },
        )

    roles = await UserRepository.get_active_roles(db, user.id) or [UserRole.STUDENT.value]
    access_token, refresh_token = _issue_tokens(user, roles)

    logger.info(f"User logged in: {user.email} (roles: {roles})")

    await log_audit_event(
        db,
        request=request,
        action="auth.login",
        actor=CurrentUser(id=user.id, email=user.email, roles=tuple(roles), permissions=frozenset()),
        target_table="users",
        target_id=user.id,
    )

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        user=_user_response(user, roles),
    )


@router.post(
    "/register",
    response_model=LoginResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Email already registered"}},
)
async def register(
    data: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """Create a student account and sign it in."""
    await enforce_rate_limit(
        request,
        "auth_register",
        max_attempts=REGISTER_MAX_ATTEMPTS,
        window_seconds=REGISTER_WINDOW_SECONDS,
        message="Too many registration attempts. Please try again later.",
    )

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
        role=UserRole.STUDENT,
    )
    roles = [UserRole.STUDENT.value]
    access_token, refresh_token = _issue_tokens(user, roles)

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=_user_response(user, roles),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Issue new tokens. Roles are re-read so role changes take effect here."""
    payload = decode_token(data.refresh_token)
    if not payload or payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "INVALID_TOKEN",
                "message": "Invalid or expired refresh token.",
            },
        )

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "INVALID_TOKEN_CLAIMS",
                "message": "Token contains invalid or missing claims.",
            },
        ) from e

    user = await UserRepository.get_by_id(db, user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "INVALID_TOKEN",
                "message": "Invalid or expired refresh token.",
            },
        )

    roles = await UserRepository.get_active_roles(db, user.id) or [UserRole.STUDENT.value]
    access_token, refresh_token = _issue_tokens(user, roles)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.get("/me", response_model=MeResponse)
async def me(user: CurrentUser = Depends(get_current_user)) -> MeResponse:
    return MeResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        roles=list(user.roles),
        permissions=sorted(user.permissions),
        is_admin=user.is_admin,
    )
