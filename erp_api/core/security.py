"""
Password hashing and JWT handling.

Access tokens carry the user id (``sub``) and role name; refresh tokens carry
only the user id. Every token has a ``type`` claim so one kind can never be
used in place of the other.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from erp_api.core.settings import get_app_settings

TOKEN_ACCESS = "access"
TOKEN_REFRESH = "refresh"

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# PUBLIC_INTERFACE
def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return _pwd_context.hash(password)


# PUBLIC_INTERFACE
def verify_password(plain_password: str, hashed_password: str) -> bool:
    return _pwd_context.verify(plain_password, hashed_password)


def _encode(claims: Dict[str, Any], lifetime: timedelta, token_type: str) -> str:
    settings = get_app_settings()
    issued = datetime.now(tz=timezone.utc)
    body = {**claims, "type": token_type, "iat": issued, "exp": issued + lifetime}
    return jwt.encode(body, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def create_access_token(subject: str, role: Optional[str] = None, expires_minutes: Optional[int] = None) -> str:
    """Signed access token for a user id, with the user's role as a claim."""
    minutes = expires_minutes or get_app_settings().ACCESS_TOKEN_EXPIRE_MINUTES
    return _encode({"sub": subject, "role": role}, timedelta(minutes=minutes), TOKEN_ACCESS)


# PUBLIC_INTERFACE
def create_refresh_token(subject: str, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes or get_app_settings().REFRESH_TOKEN_EXPIRE_MINUTES
    return _encode({"sub": subject}, timedelta(minutes=minutes), TOKEN_REFRESH)


# PUBLIC_INTERFACE
def decode_token(token: str, expected_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Verify signature and expiry and return the claims.

    Raises:
        JWTError: invalid or expired token, or a token of another type than expected_type
    """
    settings = get_app_settings()
    claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    if expected_type is not None and claims.get("type") != expected_type:
        raise JWTError(f"expected a {expected_type} token")
    return claims


# PUBLIC_INTERFACE
def get_token_subject(token: str, token_type: str = TOKEN_ACCESS) -> Optional[str]:
    """User id of a valid token of the given type, None otherwise."""
    try:
        return decode_token(token, expected_type=token_type).get("sub")
    except JWTError:
        return None
