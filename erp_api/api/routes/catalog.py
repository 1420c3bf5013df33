from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.api.pagination import PageParams, page_params, paginated
from erp_api.core.constants import ROLE_MANAGER, ROLE_PRODUCTION_MANAGER
from erp_api.core.deps import get_current_user, get_session, require_roles
from erp_api.schemas.catalog import (
    BomRead,
    BomReplace,
    CategoryCreate,
    CategoryRead,
    ProductCreate,
    ProductRead,
    ProductUpdate,
)
from erp_api.schemas.common import DataResponse, ListResponse
from erp_api.services.catalog import CatalogService

router = APIRouter(prefix="/catalog", tags=["Catalog"])

_writers = require_roles(ROLE_MANAGER, ROLE_PRODUCTION_MANAGER)


# PUBLIC_INTERFACE
@router.get(
    "/categories",
    response_model=DataResponse[List[CategoryRead]],
    summary="List categories",
    dependencies=[Depends(get_current_user)],
)
async def list_categories(session: AsyncSession = Depends(get_session)) -> DataResponse[List[CategoryRead]]:
    items = await CatalogService(session).list_categories()
    return DataResponse(data=[CategoryRead.model_validate(c) for c in items])


# PUBLIC_INTERFACE
@router.post(
    "/categories",
    response_model=DataResponse[CategoryRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create category",
    dependencies=[Depends(_writers)],
)
async def create_category(
    payload: CategoryCreate, session: AsyncSession = Depends(get_session)
) -> DataResponse[CategoryRead]:
    created = await CatalogService(session).create_category(payload)
    return DataResponse(data=CategoryRead.model_validate(created))


# PUBLIC_INTERFACE
@router.get(
    "/products",
    response_model=ListResponse[ProductRead],
    summary="List products",
    description="List products ordered by SKU, optionally filtered by text search and category.",
    dependencies=[Depends(get_current_user)],
)
async def list_products(
    session: AsyncSession = Depends(get_session),
    params: PageParams = Depends(page_params),
    search: Optional[str] = Query(None, description="Substring of SKU or name"),
    category_id: Optional[UUID] = Query(None),
) -> ListResponse[ProductRead]:
    items, total = await CatalogService(session).list_products(
        page=params.page, limit=params.limit, search=search, category_id=category_id
    )
    return paginated(items, total, params, ProductRead)


# PUBLIC_INTERFACE
@router.post(
    "/products",
    response_model=DataResponse[ProductRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
    dependencies=[Depends(_writers)],
)
async def create_product(
    payload: ProductCreate, session: AsyncSession = Depends(get_session)
) -> DataResponse[ProductRead]:
    created = await CatalogService(session).create_product(payload)
    return DataResponse(data=ProductRead.model_validate(created))


# PUBLIC_INTERFACE
@router.get(
    "/products/{product_id}",
    response_model=DataResponse[ProductRead],
    summary="Get product",
    dependencies=[Depends(get_current_user)],
)
async def get_product(
    product_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> DataResponse[ProductRead]:
    product = await CatalogService(session).get_product(product_id)
    return DataResponse(data=ProductRead.model_validate(product))


# PUBLIC_INTERFACE
@router.put(
    "/products/{product_id}",
    response_model=DataResponse[ProductRead],
    summary="Update product",
    dependencies=[Depends(_writers)],
)
async def update_product(
    payload: ProductUpdate,
    product_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> DataResponse[ProductRead]:
    product = await CatalogService(session).update_product(product_id, payload)
    return DataResponse(data=ProductRead.model_validate(product))


# PUBLIC_INTERFACE
@router.get(
    "/products/{product_id}/bom",
    response_model=DataResponse[BomRead],
    summary="Get active bill of materials",
    dependencies=[Depends(get_current_user)],
)
async def get_bom(product_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> DataResponse[BomRead]:
    return DataResponse(data=await CatalogService(session).get_bom(product_id))


# PUBLIC_INTERFACE
@router.put(
    "/products/{product_id}/bom",
    response_model=DataResponse[BomRead],
    summary="Replace bill of materials",
    description="Store the given lines as a new active BOM version; earlier versions are deactivated.",
    dependencies=[Depends(_writers)],
)
async def replace_bom(
    payload: BomReplace,
    product_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> DataResponse[BomRead]:
    return DataResponse(data=await CatalogService(session).replace_bom(product_id, payload))
