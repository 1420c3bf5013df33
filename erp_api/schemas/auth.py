from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

RoleName = Literal[
    "admin",
    "manager",
    "production_manager",
    "sales_manager",
    "warehouse_manager",
    "operator",
    "sales_rep",
    "user",
]


class LoginRequest(BaseModel):
    """Credentials for password login."""
    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., min_length=1, description="User password")


class RefreshRequest(BaseModel):
    """Request to refresh an access token."""
    refresh_token: str = Field(..., description="Refresh token")


class RegisterRequest(BaseModel):
    """Registration details for creating a new user."""
    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., min_length=6, max_length=72, description="User password")
    first_name: str = Field(..., min_length=1, description="First name")
    last_name: str = Field(..., min_length=1, description="Last name")


class UserRead(BaseModel):
    """User read model (never includes the password hash)."""
    id: UUID = Field(..., description="User ID")
    email: EmailStr = Field(..., description="User email")
    first_name: str = Field(...)
    last_name: str = Field(...)
    is_active: bool = Field(..., description="Active flag")
    role: str = Field(..., description="Role name")
    last_login: Optional[datetime] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")


class AuthResult(BaseModel):
    """Tokens issued on login/registration together with the user."""
    user: UserRead
    token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field("bearer")


class UserCreate(BaseModel):
    """Admin create user payload."""
    email: EmailStr = Field(..., description="Email")
    password: str = Field(..., min_length=6, max_length=72, description="Password")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    role: RoleName = Field("user")
    is_active: bool = Field(default=True)


class UserUpdate(BaseModel):
    """Admin update user payload."""
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    password: Optional[str] = Field(None, min_length=6, max_length=72)
    role: Optional[RoleName] = Field(None)
    is_active: Optional[bool] = Field(None)
