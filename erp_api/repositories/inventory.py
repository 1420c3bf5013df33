from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select

from erp_api.db.models.inventory import InventoryItem, InventoryTransaction
from .base import BaseRepository


class InventoryItemRepository(BaseRepository):
    """Repository for inventory items."""

    async def list_items(
        self,
        *,
        search: Optional[str],
        category_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> Tuple[List[InventoryItem], int]:
        stmt = select(InventoryItem)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(InventoryItem.name.ilike(like), InventoryItem.sku.ilike(like)))
        if category_id:
            stmt = stmt.where(InventoryItem.category_id == category_id)
        stmt = stmt.order_by(InventoryItem.created_at.desc(), InventoryItem.id)
        return await self.paginate(stmt, limit=limit, offset=offset)

    async def get_item(self, item_id: UUID) -> Optional[InventoryItem]:
        return await self.scalar_one_or_none(select(InventoryItem).where(InventoryItem.id == item_id))

    async def get_by_sku(self, sku: str) -> Optional[InventoryItem]:
        return await self.scalar_one_or_none(select(InventoryItem).where(InventoryItem.sku == sku))

    async def lock_item(self, item_id: UUID) -> Optional[InventoryItem]:
        """
        SELECT ... FOR UPDATE the item row and refresh the identity-map copy
        so the caller sees the committed stock value.
        """
        stmt = (
            select(InventoryItem)
            .where(InventoryItem.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.scalar_one_or_none(stmt)

    async def lock_items(self, item_ids: Iterable[UUID]) -> List[InventoryItem]:
        """Lock several items, always in id order so concurrent callers cannot deadlock."""
        ids = sorted(set(item_ids), key=str)
        if not ids:
            return []
        stmt = (
            select(InventoryItem)
            .where(InventoryItem.id.in_(ids))
            .order_by(InventoryItem.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(await self.scalars(stmt))

    async def list_active(self) -> List[InventoryItem]:
        stmt = select(InventoryItem).where(InventoryItem.is_active.is_(True)).order_by(InventoryItem.sku)
        return list(await self.scalars(stmt))

    async def list_low_stock(self) -> List[InventoryItem]:
        stmt = (
            select(InventoryItem)
            .where(
                InventoryItem.is_active.is_(True),
                InventoryItem.current_stock <= InventoryItem.minimum_stock,
            )
            .order_by(InventoryItem.sku)
        )
        return list(await self.scalars(stmt))


class InventoryTransactionRepository(BaseRepository):
    """Repository for the inventory ledger."""

    async def list_transactions(
        self,
        *,
        item_id: Optional[UUID],
        reference_type: Optional[str],
        reference_id: Optional[UUID],
        limit: int,
        offset: int,
    ) -> Tuple[List[InventoryTransaction], int]:
        stmt = select(InventoryTransaction)
        if item_id:
            stmt = stmt.where(InventoryTransaction.item_id == item_id)
        if reference_type:
            stmt = stmt.where(InventoryTransaction.reference_type == reference_type)
        if reference_id:
            stmt = stmt.where(InventoryTransaction.reference_id == reference_id)
        stmt = stmt.order_by(InventoryTransaction.transaction_date.desc(), InventoryTransaction.id)
        return await self.paginate(stmt, limit=limit, offset=offset)

    async def list_for_reference(
        self, *, reference_type: str, reference_id: UUID, transaction_type: Optional[str] = None
    ) -> List[InventoryTransaction]:
        stmt = select(InventoryTransaction).where(
            InventoryTransaction.reference_type == reference_type,
            InventoryTransaction.reference_id == reference_id,
        )
        if transaction_type:
            stmt = stmt.where(InventoryTransaction.transaction_type == transaction_type)
        stmt = stmt.order_by(InventoryTransaction.transaction_date, InventoryTransaction.id)
        return list(await self.scalars(stmt))

    async def ledger_balance(self, item_id: UUID) -> Tuple[Decimal, int]:
        """Signed sum and row count of the item's ledger."""
        stmt = select(
            func.coalesce(func.sum(InventoryTransaction.quantity), 0),
            func.count(InventoryTransaction.id),
        ).where(InventoryTransaction.item_id == item_id)
        total, count = (await self.execute(stmt)).one()
        return Decimal(str(total)), int(count)

    async def count_for_item(self, item_id: UUID) -> int:
        stmt = select(func.count(InventoryTransaction.id)).where(InventoryTransaction.item_id == item_id)
        return int((await self.execute(stmt)).scalar_one())
