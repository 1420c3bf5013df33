from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.api.pagination import PageParams, page_params
from erp_api.api.routes.auth import user_to_read
from erp_api.core.constants import ROLE_ADMIN
from erp_api.core.deps import get_session, require_roles
from erp_api.core.errors import Conflict, NotFound
from erp_api.core.ratelimit import SCOPE_SENSITIVE, rate_limit
from erp_api.core.security import get_password_hash
from erp_api.repositories.security import SecurityRepository
from erp_api.schemas.auth import UserCreate, UserRead, UserUpdate
from erp_api.schemas.common import DataResponse, ListResponse, PaginationMeta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=ListResponse[UserRead],
    summary="List users",
    description="List user accounts, newest first.",
    dependencies=[Depends(require_roles(ROLE_ADMIN))],
)
async def list_users(
    session: AsyncSession = Depends(get_session),
    params: PageParams = Depends(page_params),
) -> ListResponse[UserRead]:
    repo = SecurityRepository(session)
    users, total = await repo.list_users(limit=params.limit, offset=params.offset)
    data = [user_to_read(u, await repo.get_role_name(u.role_id) or "") for u in users]
    return ListResponse[UserRead](data=data, pagination=PaginationMeta.build(total, params.page, params.limit))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=DataResponse[UserRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
    description="Create a user with an explicit role.",
    dependencies=[Depends(require_roles(ROLE_ADMIN)), Depends(rate_limit(SCOPE_SENSITIVE))],
)
async def create_user(
    payload: UserCreate,
    session: AsyncSession = Depends(get_session),
) -> DataResponse[UserRead]:
    repo = SecurityRepository(session)
    if await repo.get_user_by_email(payload.email):
        raise Conflict("User already exists with this email")
    role = await repo.ensure_role(payload.role)
    user = await repo.create_user(
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        hashed_password=get_password_hash(payload.password),
        role_id=role.id,
        is_active=payload.is_active,
    )
    logger.info("User created email=%s role=%s", user.email, role.name)
    return DataResponse(data=user_to_read(user, role.name))


# PUBLIC_INTERFACE
@router.put(
    "/{user_id}",
    response_model=DataResponse[UserRead],
    summary="Update user",
    description="Update names, password, role or active flag of a user.",
    dependencies=[Depends(require_roles(ROLE_ADMIN)), Depends(rate_limit(SCOPE_SENSITIVE))],
)
async def update_user(
    payload: UserUpdate,
    user_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> DataResponse[UserRead]:
    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(user_id)
    if not user:
        raise NotFound("User not found")

    role_id = None
    if payload.role:
        role_id = (await repo.ensure_role(payload.role)).id
    hashed = get_password_hash(payload.password) if payload.password else None
    user = await repo.update_user(
        user,
        first_name=payload.first_name,
        last_name=payload.last_name,
        hashed_password=hashed,
        role_id=role_id,
        is_active=payload.is_active,
    )
    role = await repo.get_role_name(user.role_id) or ""
    logger.info("User updated email=%s", user.email)
    return DataResponse(data=user_to_read(user, role))
