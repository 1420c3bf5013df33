from __future__ import annotations

import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, status
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.core.constants import ROLE_ADMIN, ROLE_USER
from erp_api.core.deps import get_current_user, get_session
from erp_api.core.errors import AuthError, Conflict
from erp_api.core.ratelimit import SCOPE_AUTH, rate_limit
from erp_api.core.security import (
    TOKEN_REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from erp_api.db.base import utcnow
from erp_api.db.models.security import User
from erp_api.repositories.security import SecurityRepository
from erp_api.schemas.auth import AuthResult, LoginRequest, RefreshRequest, RegisterRequest, UserRead
from erp_api.schemas.common import DataResponse, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def user_to_read(user: User, role: str) -> UserRead:
    return UserRead(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        is_active=user.is_active,
        role=role,
        last_login=user.last_login,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _issue_tokens(user: User, role: str) -> AuthResult:
    return AuthResult(
        user=user_to_read(user, role),
        token=create_access_token(subject=str(user.id), role=role),
        refresh_token=create_refresh_token(subject=str(user.id)),
    )


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=DataResponse[AuthResult],
    status_code=status.HTTP_201_CREATED,
    summary="Register user",
    description="Create a new user account. The very first account gets the 'admin' role, later ones 'user'.",
    dependencies=[Depends(rate_limit(SCOPE_AUTH))],
)
async def register_user(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> DataResponse[AuthResult]:
    """Register a new user and sign them in."""
    repo = SecurityRepository(session)
    admin_role = await repo.ensure_role(ROLE_ADMIN)
    user_role = await repo.ensure_role(ROLE_USER)

    # Registrations queue on the admin role row so only one can see an empty user table.
    await repo.lock_role(admin_role.id)
    if await repo.get_user_by_email(payload.email):
        await session.rollback()
        raise Conflict("User already exists with this email")

    role = admin_role if await repo.count_users() == 0 else user_role
    role_name = role.name
    user = await repo.create_user(
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        hashed_password=get_password_hash(payload.password),
        role_id=role.id,
    )
    logger.info("User registered email=%s role=%s", user.email, role_name)
    return DataResponse(data=_issue_tokens(user, role_name))


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=DataResponse[AuthResult],
    summary="Login",
    description="Authenticate with email and password and receive access/refresh tokens.",
    dependencies=[Depends(rate_limit(SCOPE_AUTH))],
)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> DataResponse[AuthResult]:
    """Authenticate user and issue tokens."""
    repo = SecurityRepository(session)
    user = await repo.get_user_by_email(payload.email)
    if not user or not verify_password(payload.password, user.hashed_password):
        logger.info("Failed login for email=%s", payload.email)
        raise AuthError("Invalid credentials")
    if not user.is_active:
        raise AuthError("Account is deactivated")

    await repo.touch_last_login(user, utcnow())
    role = await repo.get_role_name(user.role_id) or ROLE_USER
    logger.info("User logged in email=%s", user.email)
    return DataResponse(data=_issue_tokens(user, role))


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=DataResponse[AuthResult],
    summary="Refresh access token",
    description="Issue a new token pair from a valid refresh token.",
    dependencies=[Depends(rate_limit(SCOPE_AUTH))],
)
async def refresh_token(
    payload: RefreshRequest,
    session: AsyncSession = Depends(get_session),
) -> DataResponse[AuthResult]:
    """Validate refresh token and issue a new token pair."""
    try:
        claims: Dict[str, Any] = decode_token(payload.refresh_token, expected_type=TOKEN_REFRESH)
    except JWTError:
        raise AuthError("Invalid refresh token")

    repo = SecurityRepository(session)
    try:
        user = await repo.get_user_by_id(UUID(str(claims.get("sub"))))
    except ValueError:
        raise AuthError("Invalid refresh token")
    if not user or not user.is_active:
        raise AuthError("User not found or inactive")

    role = await repo.get_role_name(user.role_id) or ROLE_USER
    return DataResponse(data=_issue_tokens(user, role))


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Stateless logout. Clients should discard tokens. No server state maintained.",
)
async def logout(user: User = Depends(get_current_user)) -> MessageResponse:
    """Acknowledge logout in stateless JWT systems."""
    return MessageResponse(message="Logged out successfully")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=DataResponse[UserRead],
    summary="Read current user",
    description="Return the current authenticated user and their role.",
)
async def read_current_user(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> DataResponse[UserRead]:
    """Return current user profile."""
    repo = SecurityRepository(session)
    role = await repo.get_role_name(user.role_id) or ROLE_USER
    return DataResponse(data=user_to_read(user, role))
