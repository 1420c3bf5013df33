from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.api.pagination import PageParams, page_params, paginated
from erp_api.core.constants import ROLE_MANAGER, ROLE_OPERATOR, ROLE_PRODUCTION_MANAGER
from erp_api.core.deps import get_current_user, get_session, require_roles
from erp_api.core.ratelimit import SCOPE_SENSITIVE, enforce_rate_limit, rate_limit
from erp_api.db.models.security import User
from erp_api.schemas.common import DataResponse, ListResponse, MessageResponse
from erp_api.schemas.production import (
    Priority,
    ProductionMetrics,
    ProductionOrderCreate,
    ProductionOrderRead,
    ProductionOrderUpdate,
    ProductionStatus,
    StatusEventRead,
    StatusTransitionRequest,
)
from erp_api.services.production import ProductionService

router = APIRouter(prefix="/production", tags=["Production"])


# PUBLIC_INTERFACE
@router.get(
    "/schedule/view",
    response_model=DataResponse[List[ProductionOrderRead]],
    summary="Production schedule",
    description="Open orders (planned, released, in progress) ordered by start date.",
    dependencies=[Depends(get_current_user)],
)
async def production_schedule(
    session: AsyncSession = Depends(get_session),
    start_date: Optional[date] = Query(None, description="Earliest start date"),
    end_date: Optional[date] = Query(None, description="Latest start date"),
) -> DataResponse[List[ProductionOrderRead]]:
    orders = await ProductionService(session).schedule(start_date, end_date)
    return DataResponse(data=[ProductionOrderRead.model_validate(o) for o in orders])


# PUBLIC_INTERFACE
@router.get(
    "/metrics/dashboard",
    response_model=DataResponse[ProductionMetrics],
    summary="Production metrics",
    description="Order counts by status and production efficiency for the current month.",
    dependencies=[Depends(get_current_user)],
)
async def production_metrics(session: AsyncSession = Depends(get_session)) -> DataResponse[ProductionMetrics]:
    return DataResponse(data=await ProductionService(session).metrics())


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=ListResponse[ProductionOrderRead],
    summary="List production orders",
    description="List production orders, newest first, with optional status/priority filters and search.",
    dependencies=[Depends(get_current_user)],
)
async def list_orders(
    session: AsyncSession = Depends(get_session),
    params: PageParams = Depends(page_params),
    status_filter: Optional[ProductionStatus] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[Priority] = Query(None, description="Filter by priority"),
    search: Optional[str] = Query(None, description="Substring of order number or notes"),
) -> ListResponse[ProductionOrderRead]:
    orders, total = await ProductionService(session).list_orders(
        page=params.page, limit=params.limit, status=status_filter, priority=priority, search=search
    )
    return paginated(orders, total, params, ProductionOrderRead)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=DataResponse[ProductionOrderRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create production order",
    description="Create a planned production order. The order number PO-<year>-<seq> is generated.",
)
async def create_order(
    payload: ProductionOrderCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require_roles(ROLE_MANAGER, ROLE_PRODUCTION_MANAGER)),
) -> DataResponse[ProductionOrderRead]:
    order = await ProductionService(session).create_order(payload, user_id=user.id)
    return DataResponse(data=ProductionOrderRead.model_validate(order))


# PUBLIC_INTERFACE
@router.get(
    "/{order_id}",
    response_model=DataResponse[ProductionOrderRead],
    summary="Get production order",
    dependencies=[Depends(get_current_user)],
)
async def get_order(
    order_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> DataResponse[ProductionOrderRead]:
    order = await ProductionService(session).get_order(order_id)
    return DataResponse(data=ProductionOrderRead.model_validate(order))


# PUBLIC_INTERFACE
@router.put(
    "/{order_id}",
    response_model=DataResponse[ProductionOrderRead],
    summary="Update production order",
    description=(
        "Edit a production order; a status value is applied as a lifecycle transition "
        "and counts against the sensitive-operation rate limit."
    ),
)
async def update_order(
    request: Request,
    payload: ProductionOrderUpdate,
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require_roles(ROLE_MANAGER, ROLE_PRODUCTION_MANAGER)),
) -> DataResponse[ProductionOrderRead]:
    if payload.status is not None:
        await enforce_rate_limit(request, SCOPE_SENSITIVE)
    order = await ProductionService(session).update_order(order_id, payload, user_id=user.id)
    return DataResponse(data=ProductionOrderRead.model_validate(order))


# PUBLIC_INTERFACE
@router.delete(
    "/{order_id}",
    response_model=MessageResponse,
    summary="Delete production order",
    description="Delete a planned or cancelled production order.",
    dependencies=[Depends(rate_limit(SCOPE_SENSITIVE))],
)
async def delete_order(
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require_roles(ROLE_MANAGER)),
) -> MessageResponse:
    await ProductionService(session).delete_order(order_id, user_id=user.id)
    return MessageResponse(message="Production order deleted successfully")


# PUBLIC_INTERFACE
@router.put(
    "/{order_id}/status",
    response_model=DataResponse[ProductionOrderRead],
    summary="Change production order status",
    description=(
        "Move the order along planned -> released -> in_progress -> completed, or cancel it. "
        "Release issues BOM materials, completion receipts finished goods, cancellation returns issued materials."
    ),
    dependencies=[Depends(rate_limit(SCOPE_SENSITIVE))],
)
async def change_status(
    payload: StatusTransitionRequest,
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require_roles(ROLE_PRODUCTION_MANAGER, ROLE_OPERATOR, ROLE_MANAGER)),
) -> DataResponse[ProductionOrderRead]:
    order = await ProductionService(session).transition_status(
        order_id,
        payload.status,
        quantity_produced=payload.quantity_produced,
        quantity_rejected=payload.quantity_rejected,
        notes=payload.notes,
        user_id=user.id,
    )
    return DataResponse(data=ProductionOrderRead.model_validate(order))


# PUBLIC_INTERFACE
@router.get(
    "/{order_id}/history",
    response_model=DataResponse[List[StatusEventRead]],
    summary="Production order status history",
    dependencies=[Depends(get_current_user)],
)
async def order_history(
    order_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> DataResponse[List[StatusEventRead]]:
    events = await ProductionService(session).list_history(order_id)
    return DataResponse(data=[StatusEventRead.model_validate(e) for e in events])
