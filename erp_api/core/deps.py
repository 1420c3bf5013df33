from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.core.constants import ROLE_ADMIN
from erp_api.core.errors import AuthError, PermissionDenied
from erp_api.core.logging import user_id_var
from erp_api.core.security import TOKEN_ACCESS, decode_token
from erp_api.db.models.security import User
from erp_api.db.session import get_async_session
from erp_api.repositories.security import SecurityRepository

logger = logging.getLogger(__name__)

# OAuth2 bearer (used by docs); login endpoint path referenced here.
# auto_error is off so a missing header reaches get_current_user and gets the API's 401 envelope.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# PUBLIC_INTERFACE
async def get_session(
    session_dep=Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield the request-scoped AsyncSession.

    Routes depend on this rather than on get_async_session directly so tests can
    override the database in a single place.
    """
    yield session_dep


async def resolve_user_from_token(session: AsyncSession, token: Optional[str]) -> User:
    """Validate an access token and load its active user; raises AuthError otherwise."""
    if not token:
        raise AuthError("Not authorized, no token")
    try:
        claims = decode_token(token, expected_type=TOKEN_ACCESS)
    except JWTError:
        raise AuthError("Not authorized, token failed")

    try:
        uid = UUID(str(claims.get("sub")))
    except ValueError:
        raise AuthError("Not authorized, token failed")

    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(uid)
    if not user:
        raise AuthError("Not authorized, user not found")
    if not user.is_active:
        raise AuthError("Not authorized, account is deactivated")
    return user


# PUBLIC_INTERFACE
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    Resolve and return the current user from the Authorization bearer token.

    Also records the user id in the logging context for the rest of the request.
    """
    user = await resolve_user_from_token(session, token)
    user_id_var.set(str(user.id))
    return user


# PUBLIC_INTERFACE
async def get_current_role(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> str:
    """Return the role name of the current user."""
    repo = SecurityRepository(session)
    return (await repo.get_role_name(user.role_id)) or ""


# PUBLIC_INTERFACE
def require_roles(*required: str):
    """
    Create a dependency that requires the current user to hold one of the specified roles.

    Admins pass every guard. Returns the user so routes can use it directly.
    """

    async def _dep(
        user: User = Depends(get_current_user),
        role: str = Depends(get_current_role),
    ) -> User:
        if role == ROLE_ADMIN or role in required:
            return user
        logger.info("Role '%s' denied; required one of %s", role, ", ".join(required))
        raise PermissionDenied(f"User role '{role}' is not authorized to access this route")

    return _dep
