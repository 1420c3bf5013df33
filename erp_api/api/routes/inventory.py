from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.api.pagination import PageParams, page_params, paginated
from erp_api.core.constants import (
    ROLE_MANAGER,
    ROLE_OPERATOR,
    ROLE_PRODUCTION_MANAGER,
    ROLE_WAREHOUSE_MANAGER,
)
from erp_api.core.deps import get_current_user, get_session, require_roles
from erp_api.core.ratelimit import SCOPE_SENSITIVE, rate_limit
from erp_api.db.models.security import User
from erp_api.schemas.common import DataResponse, ListResponse, MessageResponse
from erp_api.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemRead,
    InventoryItemUpdate,
    InventoryTransactionCreate,
    InventoryTransactionRead,
    LedgerReconciliation,
    ReferenceType,
    StockLevel,
    Valuation,
)
from erp_api.services.inventory import InventoryService

router = APIRouter(prefix="/inventory", tags=["Inventory"])

# Static paths are registered before /{item_id} so they are not captured as ids.


# PUBLIC_INTERFACE
@router.get(
    "/transactions/history",
    response_model=ListResponse[InventoryTransactionRead],
    summary="List stock transactions",
    description="Ledger rows, newest first, optionally filtered by item or causing reference.",
    dependencies=[Depends(get_current_user)],
)
async def list_transactions(
    session: AsyncSession = Depends(get_session),
    params: PageParams = Depends(page_params),
    item_id: Optional[UUID] = Query(None),
    reference_type: Optional[ReferenceType] = Query(None),
    reference_id: Optional[UUID] = Query(None),
) -> ListResponse[InventoryTransactionRead]:
    txns, total = await InventoryService(session).list_transactions(
        page=params.page,
        limit=params.limit,
        item_id=item_id,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    return paginated(txns, total, params, InventoryTransactionRead)


# PUBLIC_INTERFACE
@router.post(
    "/transactions",
    response_model=DataResponse[InventoryTransactionRead],
    status_code=status.HTTP_201_CREATED,
    summary="Post stock transaction",
    description=(
        "Record a stock movement. receipt/return/issue take a positive quantity, "
        "adjustment/transfer a signed delta. Stock never goes below zero."
    ),
    dependencies=[Depends(rate_limit(SCOPE_SENSITIVE))],
)
async def create_transaction(
    payload: InventoryTransactionCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(
        require_roles(ROLE_MANAGER, ROLE_WAREHOUSE_MANAGER, ROLE_PRODUCTION_MANAGER, ROLE_OPERATOR)
    ),
) -> DataResponse[InventoryTransactionRead]:
    txn = await InventoryService(session).apply_transaction(payload, user_id=user.id)
    return DataResponse(data=InventoryTransactionRead.model_validate(txn))


# PUBLIC_INTERFACE
@router.get(
    "/stock/levels",
    response_model=DataResponse[List[StockLevel]],
    summary="Stock levels",
    dependencies=[Depends(get_current_user)],
)
async def stock_levels(session: AsyncSession = Depends(get_session)) -> DataResponse[List[StockLevel]]:
    return DataResponse(data=await InventoryService(session).stock_levels())


# PUBLIC_INTERFACE
@router.get(
    "/stock/low-stock",
    response_model=DataResponse[List[InventoryItemRead]],
    summary="Low stock items",
    description="Active items whose current stock is at or below their minimum stock.",
    dependencies=[Depends(get_current_user)],
)
async def low_stock(session: AsyncSession = Depends(get_session)) -> DataResponse[List[InventoryItemRead]]:
    items = await InventoryService(session).low_stock_items()
    return DataResponse(data=[InventoryItemRead.model_validate(i) for i in items])


# PUBLIC_INTERFACE
@router.get(
    "/valuation/current",
    response_model=DataResponse[Valuation],
    summary="Inventory valuation",
    dependencies=[Depends(get_current_user)],
)
async def valuation(session: AsyncSession = Depends(get_session)) -> DataResponse[Valuation]:
    return DataResponse(data=await InventoryService(session).valuation())


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=ListResponse[InventoryItemRead],
    summary="List inventory items",
    dependencies=[Depends(get_current_user)],
)
async def list_items(
    session: AsyncSession = Depends(get_session),
    params: PageParams = Depends(page_params),
    search: Optional[str] = Query(None, description="Substring of name or SKU"),
    category_id: Optional[UUID] = Query(None),
) -> ListResponse[InventoryItemRead]:
    items, total = await InventoryService(session).list_items(
        page=params.page, limit=params.limit, search=search, category_id=category_id
    )
    return paginated(items, total, params, InventoryItemRead)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=DataResponse[InventoryItemRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create inventory item",
    description="Create an item; opening_stock, when given, is booked as an adjustment transaction.",
)
async def create_item(
    payload: InventoryItemCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require_roles(ROLE_MANAGER, ROLE_WAREHOUSE_MANAGER)),
) -> DataResponse[InventoryItemRead]:
    item = await InventoryService(session).create_item(payload, user_id=user.id)
    return DataResponse(data=InventoryItemRead.model_validate(item))


# PUBLIC_INTERFACE
@router.get(
    "/{item_id}",
    response_model=DataResponse[InventoryItemRead],
    summary="Get inventory item",
    dependencies=[Depends(get_current_user)],
)
async def get_item(
    item_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> DataResponse[InventoryItemRead]:
    item = await InventoryService(session).get_item(item_id)
    return DataResponse(data=InventoryItemRead.model_validate(item))


# PUBLIC_INTERFACE
@router.put(
    "/{item_id}",
    response_model=DataResponse[InventoryItemRead],
    summary="Update inventory item",
    description="Update item master data. Stock on hand changes only through transactions.",
    dependencies=[Depends(require_roles(ROLE_MANAGER, ROLE_WAREHOUSE_MANAGER))],
)
async def update_item(
    payload: InventoryItemUpdate,
    item_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> DataResponse[InventoryItemRead]:
    item = await InventoryService(session).update_item(item_id, payload)
    return DataResponse(data=InventoryItemRead.model_validate(item))


# PUBLIC_INTERFACE
@router.delete(
    "/{item_id}",
    response_model=MessageResponse,
    summary="Delete inventory item",
    description="Delete an item that has no stock transactions and is not used by a bill of materials.",
    dependencies=[Depends(require_roles(ROLE_MANAGER)), Depends(rate_limit(SCOPE_SENSITIVE))],
)
async def delete_item(item_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> MessageResponse:
    await InventoryService(session).delete_item(item_id)
    return MessageResponse(message="Inventory item deleted successfully")


# PUBLIC_INTERFACE
@router.get(
    "/{item_id}/ledger",
    response_model=DataResponse[LedgerReconciliation],
    summary="Reconcile item ledger",
    description="Compare the item's cached stock with the signed sum of its ledger rows.",
    dependencies=[Depends(get_current_user)],
)
async def item_ledger(
    item_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> DataResponse[LedgerReconciliation]:
    return DataResponse(data=await InventoryService(session).reconcile(item_id))
