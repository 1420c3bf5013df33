from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, or_, select

from erp_api.core.constants import OPEN_STATUSES, STATUS_COMPLETED
from erp_api.db.models.production import ProductionOrder, ProductionStatusEvent
from .base import BaseRepository


class ProductionOrderRepository(BaseRepository):
    """Repository for production orders."""

    async def list_orders(
        self,
        *,
        status: Optional[str],
        priority: Optional[str],
        search: Optional[str],
        limit: int,
        offset: int,
    ) -> Tuple[List[ProductionOrder], int]:
        stmt = select(ProductionOrder)
        if status:
            stmt = stmt.where(ProductionOrder.status == status)
        if priority:
            stmt = stmt.where(ProductionOrder.priority == priority)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(ProductionOrder.order_number.ilike(like), ProductionOrder.notes.ilike(like)))
        stmt = stmt.order_by(ProductionOrder.created_at.desc(), ProductionOrder.order_number.desc())
        return await self.paginate(stmt, limit=limit, offset=offset)

    async def get_order(self, order_id: UUID) -> Optional[ProductionOrder]:
        stmt = select(ProductionOrder).where(ProductionOrder.id == order_id)
        return await self.scalar_one_or_none(stmt)

    async def lock_order(self, order_id: UUID) -> Optional[ProductionOrder]:
        """SELECT ... FOR UPDATE the order row, refreshing any stale identity-map copy."""
        stmt = (
            select(ProductionOrder)
            .where(ProductionOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.scalar_one_or_none(stmt)

    async def max_sequence(self, year: int) -> int:
        """Highest sequence number already used by PO-<year>-NNNN order numbers."""
        prefix = f"PO-{year}-"
        stmt = select(ProductionOrder.order_number).where(ProductionOrder.order_number.like(f"{prefix}%"))
        highest = 0
        for number in await self.scalars(stmt):
            tail = number[len(prefix):]
            if tail.isdigit():
                highest = max(highest, int(tail))
        return highest

    async def list_open(self, *, start: Optional[date], end: Optional[date]) -> List[ProductionOrder]:
        stmt = select(ProductionOrder).where(ProductionOrder.status.in_(OPEN_STATUSES))
        if start:
            stmt = stmt.where(ProductionOrder.start_date >= start)
        if end:
            stmt = stmt.where(ProductionOrder.start_date <= end)
        stmt = stmt.order_by(ProductionOrder.start_date.asc(), ProductionOrder.order_number.asc())
        return list(await self.scalars(stmt))

    async def count_by_status(self, since: datetime) -> Dict[str, int]:
        stmt = (
            select(ProductionOrder.status, func.count(ProductionOrder.id))
            .where(ProductionOrder.created_at >= since)
            .group_by(ProductionOrder.status)
        )
        res = await self.execute(stmt)
        return {status: int(count) for status, count in res.all()}

    async def completed_totals(self, since: datetime) -> Tuple[Decimal, Decimal]:
        """(produced, planned) summed over completed orders created since the given instant."""
        stmt = select(
            func.coalesce(func.sum(ProductionOrder.quantity_produced), 0),
            func.coalesce(func.sum(ProductionOrder.quantity_planned), 0),
        ).where(
            ProductionOrder.status == STATUS_COMPLETED,
            ProductionOrder.created_at >= since,
        )
        produced, planned = (await self.execute(stmt)).one()
        return Decimal(str(produced)), Decimal(str(planned))


class ProductionStatusEventRepository(BaseRepository):
    """Repository for production order status history."""

    async def list_for_order(self, order_id: UUID) -> List[ProductionStatusEvent]:
        stmt = (
            select(ProductionStatusEvent)
            .where(ProductionStatusEvent.production_order_id == order_id)
            .order_by(ProductionStatusEvent.created_at.asc(), ProductionStatusEvent.id)
        )
        return list(await self.scalars(stmt))

    async def delete_for_order(self, order_id: UUID) -> None:
        stmt = delete(ProductionStatusEvent).where(ProductionStatusEvent.production_order_id == order_id)
        await self.execute(stmt)
