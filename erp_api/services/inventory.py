from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.core.constants import INBOUND_TYPES, OUTBOUND_TYPES, REF_MANUAL, TXN_ADJUSTMENT
from erp_api.core.errors import Conflict, InsufficientStock, NotFound, ValidationError
from erp_api.db.models.inventory import InventoryItem, InventoryTransaction
from erp_api.repositories.catalog import BomRepository
from erp_api.repositories.inventory import InventoryItemRepository, InventoryTransactionRepository
from erp_api.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemUpdate,
    InventoryTransactionCreate,
    LedgerReconciliation,
    StockLevel,
    Valuation,
    ValuationLine,
)
from erp_api.services.base import BaseService

logger = logging.getLogger(__name__)


QUANTITY_STEP = Decimal("0.0001")


def quantize_quantity(quantity: Decimal) -> Decimal:
    """Round to the 4 decimal places stock and ledger columns store."""
    return Decimal(quantity).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def signed_delta(transaction_type: str, quantity: Decimal) -> Decimal:
    """
    Translate a requested quantity into the signed stock change.

    receipt/return/issue take a positive magnitude; transfer/adjustment are
    already signed. The result is rounded to storage scale first, so the cached
    stock and the ledger row move by the same stored amount.
    """
    quantity = quantize_quantity(quantity)
    if transaction_type in INBOUND_TYPES or transaction_type in OUTBOUND_TYPES:
        if quantity <= 0:
            raise ValidationError.for_field("quantity", f"must be greater than 0 for {transaction_type}")
        return -quantity if transaction_type in OUTBOUND_TYPES else quantity
    if quantity == 0:
        raise ValidationError.for_field("quantity", "must be non-zero")
    return quantity


def shortage(item: InventoryItem, required: Decimal) -> Dict[str, Any]:
    """Describe one item that cannot cover a requested outflow."""
    return {
        "item_id": str(item.id),
        "sku": item.sku,
        "name": item.name,
        "available": float(item.current_stock),
        "required": float(required),
    }


def is_low_stock(item: InventoryItem) -> bool:
    return item.current_stock <= item.minimum_stock


class InventoryService(BaseService):
    """
    Inventory adjustment service.

    Every change to an item's stock goes through post(), which locks the item row,
    appends the ledger row and moves current_stock by the same signed amount, so
    the cached stock always equals the ledger sum.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.items = InventoryItemRepository(session)
        self.ledger = InventoryTransactionRepository(session)
        self.boms = BomRepository(session)

    # PUBLIC_INTERFACE
    async def post(
        self,
        *,
        item_id: UUID,
        transaction_type: str,
        quantity: Decimal,
        unit_cost: Optional[Decimal] = None,
        reference_type: str = REF_MANUAL,
        reference_id: Optional[UUID] = None,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> Tuple[InventoryTransaction, InventoryItem]:
        """
        Post one stock movement inside the caller's transaction without committing.

        Raises:
            NotFound: item does not exist
            InsufficientStock: resulting stock would be negative
        """
        delta = signed_delta(transaction_type, Decimal(quantity))
        item = await self.items.lock_item(item_id)
        if item is None:
            raise NotFound(f"Inventory item {item_id} not found")

        new_stock = item.current_stock + delta
        if new_stock < 0:
            raise InsufficientStock([shortage(item, -delta)])

        item.current_stock = new_stock
        txn = InventoryTransaction(
            item_id=item.id,
            transaction_type=transaction_type,
            quantity=delta,
            unit_cost=unit_cost if unit_cost is not None else item.unit_cost,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_number=reference_number,
            notes=notes,
            created_by=user_id,
        )
        await self.ledger.add(txn)
        await self.ledger.flush()
        return txn, item

    # PUBLIC_INTERFACE
    async def apply_transaction(
        self, payload: InventoryTransactionCreate, user_id: Optional[UUID] = None
    ) -> InventoryTransaction:
        """Post a stock movement in its own transaction, then run the low-stock check."""
        try:
            txn, item = await self.post(
                item_id=payload.item_id,
                transaction_type=payload.transaction_type,
                quantity=payload.quantity,
                unit_cost=payload.unit_cost,
                reference_type=payload.reference_type,
                reference_id=payload.reference_id,
                reference_number=payload.reference_number,
                notes=payload.notes,
                user_id=user_id,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Stock %s posted item=%s delta=%s stock=%s",
            txn.transaction_type, item.sku, txn.quantity, item.current_stock,
        )
        await self.after_postings([txn], [item], user_id=user_id)
        return txn

    async def after_postings(
        self, txns: List[InventoryTransaction], items: List[InventoryItem], user_id: Optional[UUID] = None
    ) -> None:
        """Broadcast committed postings and raise low-stock alerts for the touched items."""
        for txn in txns:
            await self._notify(
                "inventory.transaction",
                {
                    "transaction_id": str(txn.id),
                    "item_id": str(txn.item_id),
                    "transaction_type": txn.transaction_type,
                    "quantity": float(txn.quantity),
                },
                user_id=user_id,
            )
        seen = set()
        for item in items:
            if item.id in seen or not is_low_stock(item):
                continue
            seen.add(item.id)
            logger.warning(
                "Low stock alert item=%s stock=%s minimum=%s", item.sku, item.current_stock, item.minimum_stock
            )
            await self._notify(
                "inventory.low_stock",
                {
                    "item_id": str(item.id),
                    "sku": item.sku,
                    "name": item.name,
                    "current_stock": float(item.current_stock),
                    "minimum_stock": float(item.minimum_stock),
                },
                user_id=user_id,
            )

    # PUBLIC_INTERFACE
    async def create_item(self, payload: InventoryItemCreate, user_id: Optional[UUID] = None) -> InventoryItem:
        """Create an item; a non-zero opening_stock is booked as an adjustment."""
        if await self.items.get_by_sku(payload.sku):
            raise Conflict(f"Inventory item with SKU '{payload.sku}' already exists")

        data = payload.model_dump(exclude={"opening_stock"})
        item = InventoryItem(**data, current_stock=Decimal("0"))
        try:
            await self.items.add(item)
            await self.items.flush()
            if payload.opening_stock > 0:
                await self.post(
                    item_id=item.id,
                    transaction_type=TXN_ADJUSTMENT,
                    quantity=payload.opening_stock,
                    notes="Opening stock",
                    user_id=user_id,
                )
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict(f"Inventory item with SKU '{payload.sku}' already exists")
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Inventory item created sku=%s opening_stock=%s", item.sku, payload.opening_stock)
        return await self.get_item(item.id)

    # PUBLIC_INTERFACE
    async def get_item(self, item_id: UUID) -> InventoryItem:
        item = await self.items.get_item(item_id)
        if item is None:
            raise NotFound(f"Inventory item {item_id} not found")
        return item

    # PUBLIC_INTERFACE
    async def list_items(
        self, *, page: int, limit: int, search: Optional[str] = None, category_id: Optional[UUID] = None
    ) -> Tuple[List[InventoryItem], int]:
        return await self.items.list_items(
            search=search, category_id=category_id, limit=limit, offset=(page - 1) * limit
        )

    # PUBLIC_INTERFACE
    async def update_item(self, item_id: UUID, payload: InventoryItemUpdate) -> InventoryItem:
        """Update item master data. Stock is only changed by postings."""
        item = await self.get_item(item_id)
        for key, value in payload.model_dump(exclude_unset=True).items():
            if value is None and key not in ("description", "category_id"):
                continue
            setattr(item, key, value)
        await self.session.commit()
        logger.info("Inventory item updated sku=%s", item.sku)
        return item

    # PUBLIC_INTERFACE
    async def delete_item(self, item_id: UUID) -> None:
        """Delete an item that has never moved and is not a BOM material."""
        item = await self.get_item(item_id)
        if await self.ledger.count_for_item(item_id):
            raise Conflict("Inventory item has stock transactions and cannot be deleted")
        if await self.boms.material_in_use(item_id):
            raise Conflict("Inventory item is used in a bill of materials and cannot be deleted")
        try:
            await self.session.delete(item)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict("Inventory item is referenced by other records and cannot be deleted")
        logger.info("Inventory item deleted sku=%s", item.sku)

    # PUBLIC_INTERFACE
    async def list_transactions(
        self,
        *,
        page: int,
        limit: int,
        item_id: Optional[UUID] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[UUID] = None,
    ) -> Tuple[List[InventoryTransaction], int]:
        return await self.ledger.list_transactions(
            item_id=item_id,
            reference_type=reference_type,
            reference_id=reference_id,
            limit=limit,
            offset=(page - 1) * limit,
        )

    # PUBLIC_INTERFACE
    async def stock_levels(self) -> List[StockLevel]:
        items = await self.items.list_active()
        return [
            StockLevel(
                id=i.id,
                sku=i.sku,
                name=i.name,
                current_stock=float(i.current_stock),
                minimum_stock=float(i.minimum_stock),
                maximum_stock=float(i.maximum_stock),
                low_stock=is_low_stock(i),
            )
            for i in items
        ]

    # PUBLIC_INTERFACE
    async def low_stock_items(self) -> List[InventoryItem]:
        """Active items at or below their minimum stock, evaluated against current values."""
        return await self.items.list_low_stock()

    # PUBLIC_INTERFACE
    async def valuation(self) -> Valuation:
        lines = []
        total = Decimal("0")
        for i in await self.items.list_active():
            value = i.current_stock * i.unit_cost
            total += value
            lines.append(
                ValuationLine(
                    id=i.id,
                    sku=i.sku,
                    name=i.name,
                    current_stock=float(i.current_stock),
                    unit_cost=float(i.unit_cost),
                    total_value=float(round(value, 2)),
                )
            )
        return Valuation(items=lines, total_inventory_value=float(round(total, 2)))

    # PUBLIC_INTERFACE
    async def reconcile(self, item_id: UUID) -> LedgerReconciliation:
        """Compare the cached stock with the signed sum of the item's ledger."""
        item = await self.get_item(item_id)
        balance, count = await self.ledger.ledger_balance(item_id)
        return LedgerReconciliation(
            item_id=item.id,
            current_stock=float(item.current_stock),
            ledger_balance=float(balance),
            transaction_count=count,
            consistent=round(Decimal(item.current_stock), 4) == round(balance, 4),
        )
