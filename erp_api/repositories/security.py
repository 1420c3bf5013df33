from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from erp_api.core.errors import Conflict
from erp_api.db.models.security import Role, User
from .base import BaseRepository


class SecurityRepository(BaseRepository):
    """Repository for users and roles."""

    # Users
    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return await self.scalar_one_or_none(stmt)

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def count_users(self) -> int:
        stmt = select(func.count(User.id))
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def list_users(self, *, limit: int, offset: int) -> Tuple[List[User], int]:
        stmt = select(User).order_by(User.created_at.desc())
        return await self.paginate(stmt, limit=limit, offset=offset)

    async def create_user(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        hashed_password: str,
        role_id: UUID,
        is_active: bool = True,
    ) -> User:
        """
        Insert and commit a user.

        Raises:
            Conflict: the email is already taken, including by a concurrent insert
        """
        user = User(
            email=email.lower(),
            first_name=first_name,
            last_name=last_name,
            hashed_password=hashed_password,
            role_id=role_id,
            is_active=is_active,
        )
        await self.add(user)
        try:
            await self.commit()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict("User already exists with this email")
        return user

    async def update_user(self, user: User, **values) -> User:
        for key, value in values.items():
            if value is not None:
                setattr(user, key, value)
        await self.commit()
        return user

    async def touch_last_login(self, user: User, at: datetime) -> None:
        user.last_login = at
        await self.commit()

    # Roles
    async def get_role_by_id(self, role_id: UUID) -> Optional[Role]:
        stmt = select(Role).where(Role.id == role_id)
        return await self.scalar_one_or_none(stmt)

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        stmt = select(Role).where(Role.name == name)
        return await self.scalar_one_or_none(stmt)

    async def get_role_name(self, role_id: UUID) -> Optional[str]:
        stmt = select(Role.name).where(Role.id == role_id)
        return await self.scalar_one_or_none(stmt)

    async def lock_role(self, role_id: UUID) -> Optional[Role]:
        """SELECT ... FOR UPDATE on one role row, held until the next commit or rollback."""
        stmt = (
            select(Role)
            .where(Role.id == role_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.scalar_one_or_none(stmt)

    async def ensure_role(self, name: str, description: Optional[str] = None) -> Role:
        role = await self.get_role_by_name(name)
        if role:
            return role
        role = Role(name=name, description=description or name.replace("_", " ").title())
        await self.add(role)
        try:
            await self.commit()
        except IntegrityError:
            # created concurrently
            await self.session.rollback()
            existing = await self.get_role_by_name(name)
            if existing is None:
                raise
            return existing
        return role
