from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.core.constants import (
    REF_PRODUCTION_ORDER,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PLANNED,
    STATUS_RELEASED,
    TERMINAL_STATUSES,
    TXN_ISSUE,
    TXN_RECEIPT,
    TXN_RETURN,
    can_transition,
)
from erp_api.core.errors import Conflict, InsufficientStock, InvalidTransition, NotFound, ValidationError
from erp_api.core.settings import get_app_settings
from erp_api.db.base import utcnow
from erp_api.db.models.inventory import InventoryItem, InventoryTransaction
from erp_api.db.models.production import ProductionOrder, ProductionStatusEvent
from erp_api.repositories.catalog import BomRepository, ProductRepository
from erp_api.repositories.inventory import InventoryItemRepository, InventoryTransactionRepository
from erp_api.repositories.production import ProductionOrderRepository, ProductionStatusEventRepository
from erp_api.schemas.production import ProductionMetrics, ProductionOrderCreate, ProductionOrderUpdate
from erp_api.services.base import BaseService
from erp_api.services.inventory import InventoryService, quantize_quantity, shortage

logger = logging.getLogger(__name__)

Postings = Tuple[List[InventoryTransaction], List[InventoryItem]]


ORDER_SEQUENCE_MAX = 9999


def format_order_number(year: int, sequence: int) -> str:
    """
    PO-<year>-<4-digit sequence>.

    Raises:
        Conflict: the year's sequence is used up
    """
    if sequence > ORDER_SEQUENCE_MAX:
        raise Conflict(f"Order number sequence for {year} is exhausted")
    return f"PO-{year}-{sequence:04d}"


def material_requirement(quantity_required: Decimal, quantity_planned: Decimal, scrap_percentage: Decimal) -> Decimal:
    """Material to issue for one BOM line: per-unit need times planned quantity, grossed up for scrap."""
    gross = Decimal(quantity_required) * Decimal(quantity_planned) * (1 + Decimal(scrap_percentage) / 100)
    return quantize_quantity(gross)


def _today() -> date:
    return datetime.now(timezone.utc).date()


class ProductionService(BaseService):
    """
    Production order lifecycle.

    Each mutating call is one database transaction: the order row is locked,
    status, material postings and the history row are written together, and
    real-time events go out only after the commit.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.orders = ProductionOrderRepository(session)
        self.events = ProductionStatusEventRepository(session)
        self.products = ProductRepository(session)
        self.boms = BomRepository(session)
        self.items = InventoryItemRepository(session)
        self.ledger = InventoryTransactionRepository(session)
        self.inventory = InventoryService(session)

    # PUBLIC_INTERFACE
    async def create_order(self, payload: ProductionOrderCreate, user_id: Optional[UUID] = None) -> ProductionOrder:
        """
        Create a planned production order with a generated PO-<year>-<seq> number.

        Parameters:
            payload: ProductionOrderCreate request
            user_id: creating user
        Returns:
            Created ProductionOrder entity
        Raises:
            ValidationError: unknown product or inconsistent dates
            Conflict: no free order number after the configured retries, or the year has used all 9999
        """
        if await self.products.get_product(payload.product_id) is None:
            raise ValidationError.for_field("product_id", "Product not found")
        today = _today()
        if payload.due_date < today:
            raise ValidationError.for_field("due_date", "Due date cannot be in the past")
        start_date = payload.start_date or today
        if start_date > payload.due_date:
            raise ValidationError.for_field("start_date", "Start date must be on or before the due date")

        retries = get_app_settings().ORDER_NUMBER_MAX_RETRIES
        for attempt in range(1, retries + 1):
            number = format_order_number(today.year, await self.orders.max_sequence(today.year) + 1)
            order = ProductionOrder(
                order_number=number,
                product_id=payload.product_id,
                quantity_planned=payload.quantity_planned,
                quantity_produced=Decimal("0"),
                quantity_rejected=Decimal("0"),
                start_date=start_date,
                due_date=payload.due_date,
                status=STATUS_PLANNED,
                priority=payload.priority,
                notes=payload.notes,
                created_by=user_id,
                sales_order_id=payload.sales_order_id,
            )
            await self.orders.add(order)
            try:
                await self.orders.commit()
            except IntegrityError:
                # Another request took this number between our read and insert.
                await self.session.rollback()
                logger.warning("Order number %s taken, retrying (%d/%d)", number, attempt, retries)
                continue

            logger.info("Production order created number=%s product=%s qty=%s", number, order.product_id, order.quantity_planned)
            await self._notify(
                "production_order.created",
                {"production_order_id": str(order.id), "order_number": number, "status": order.status},
                user_id=user_id,
            )
            return order

        raise Conflict("Could not allocate a unique order number, please retry")

    # PUBLIC_INTERFACE
    async def transition_status(
        self,
        order_id: UUID,
        target: str,
        *,
        quantity_produced: Optional[Decimal] = None,
        quantity_rejected: Optional[Decimal] = None,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> ProductionOrder:
        """
        Move an order to the target status and apply the inventory side effects
        of the move in the same transaction.

        Raises:
            NotFound, InvalidTransition, InsufficientStock, ValidationError
        """
        try:
            order = await self._lock(order_id)
            previous = order.status
            postings = await self._apply_transition(
                order, target, quantity_produced, quantity_rejected, notes, user_id
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self._after_transition(order, previous, postings, user_id)
        return order

    # PUBLIC_INTERFACE
    async def update_order(
        self, order_id: UUID, payload: ProductionOrderUpdate, user_id: Optional[UUID] = None
    ) -> ProductionOrder:
        """
        Edit an order. Quantity and dates only while planned, priority and notes
        while open; a status in the payload is applied as a transition after the edits.
        """
        changes = payload.model_dump(exclude_unset=True)
        target = changes.pop("status", None)
        produced = changes.pop("quantity_produced", None)
        rejected = changes.pop("quantity_rejected", None)

        try:
            order = await self._lock(order_id)
            previous = order.status
            if order.status in TERMINAL_STATUSES and (changes or target or produced is not None or rejected is not None):
                raise InvalidTransition(
                    order.status, target or order.status, f"Production order is {order.status} and can no longer be changed"
                )
            self._apply_edits(order, changes)

            postings: Postings = ([], [])
            if target and target != order.status:
                postings = await self._apply_transition(order, target, produced, rejected, None, user_id)
            elif produced is not None or rejected is not None:
                if order.status != STATUS_IN_PROGRESS:
                    raise ValidationError.for_field(
                        "quantity_produced", "Output can only be reported while the order is in progress"
                    )
                self._record_output(order, produced, rejected)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        if order.status != previous:
            await self._after_transition(order, previous, postings, user_id)
        else:
            logger.info("Production order updated number=%s fields=%s", order.order_number, sorted(changes))
            await self._notify(
                "production_order.updated",
                {"production_order_id": str(order.id), "order_number": order.order_number, "status": order.status},
                user_id=user_id,
            )
        return order

    # PUBLIC_INTERFACE
    async def delete_order(self, order_id: UUID, user_id: Optional[UUID] = None) -> None:
        """Delete a planned or cancelled order together with its status history."""
        try:
            order = await self._lock(order_id)
            if order.status not in (STATUS_PLANNED, STATUS_CANCELLED):
                raise Conflict(f"Only planned or cancelled production orders can be deleted (status is {order.status})")
            number = order.order_number
            await self.events.delete_for_order(order.id)
            await self.session.delete(order)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info("Production order deleted number=%s", number)
        await self._notify(
            "production_order.deleted", {"production_order_id": str(order_id), "order_number": number}, user_id=user_id
        )

    # PUBLIC_INTERFACE
    async def get_order(self, order_id: UUID) -> ProductionOrder:
        order = await self.orders.get_order(order_id)
        if order is None:
            raise NotFound(f"Production order {order_id} not found")
        return order

    # PUBLIC_INTERFACE
    async def list_orders(
        self,
        *,
        page: int,
        limit: int,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[ProductionOrder], int]:
        return await self.orders.list_orders(
            status=status, priority=priority, search=search, limit=limit, offset=(page - 1) * limit
        )

    # PUBLIC_INTERFACE
    async def list_history(self, order_id: UUID) -> List[ProductionStatusEvent]:
        await self.get_order(order_id)
        return await self.events.list_for_order(order_id)

    # PUBLIC_INTERFACE
    async def schedule(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[ProductionOrder]:
        """Open orders whose start date falls in the optional window, earliest first."""
        if start_date and end_date and start_date > end_date:
            raise ValidationError.for_field("start_date", "start_date must be on or before end_date")
        return await self.orders.list_open(start=start_date, end=end_date)

    # PUBLIC_INTERFACE
    async def metrics(self) -> ProductionMetrics:
        """Order counts and production efficiency for the current calendar month (UTC)."""
        now = utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        by_status = await self.orders.count_by_status(month_start)
        produced, planned = await self.orders.completed_totals(month_start)
        efficiency = float(round(produced / planned * 100, 2)) if planned > 0 else 0.0
        return ProductionMetrics(
            total_orders=sum(by_status.values()),
            orders_by_status=by_status,
            production_efficiency=efficiency,
            total_produced=float(produced),
            total_planned=float(planned),
        )

    # Internals

    async def _lock(self, order_id: UUID) -> ProductionOrder:
        order = await self.orders.lock_order(order_id)
        if order is None:
            raise NotFound(f"Production order {order_id} not found")
        return order

    def _apply_edits(self, order: ProductionOrder, changes: Dict[str, object]) -> None:
        planned_only = {"quantity_planned", "start_date", "due_date"} & {k for k, v in changes.items() if v is not None}
        if planned_only and order.status != STATUS_PLANNED:
            raise InvalidTransition(
                order.status,
                order.status,
                f"Quantity and dates can only be changed while the order is planned (status is {order.status})",
            )
        start_date = changes.get("start_date") or order.start_date
        due_date = changes.get("due_date") or order.due_date
        if changes.get("due_date") and changes["due_date"] < _today():
            raise ValidationError.for_field("due_date", "Due date cannot be in the past")
        if start_date > due_date:
            raise ValidationError.for_field("start_date", "Start date must be on or before the due date")
        for key, value in changes.items():
            if value is None and key != "notes":
                continue
            setattr(order, key, value)

    def _record_output(
        self, order: ProductionOrder, produced: Optional[Decimal], rejected: Optional[Decimal]
    ) -> None:
        if produced is not None:
            if produced > order.quantity_planned:
                raise ValidationError.for_field(
                    "quantity_produced", "Produced quantity cannot exceed the planned quantity"
                )
            order.quantity_produced = produced
        if rejected is not None:
            order.quantity_rejected = rejected

    async def _apply_transition(
        self,
        order: ProductionOrder,
        target: str,
        produced: Optional[Decimal],
        rejected: Optional[Decimal],
        notes: Optional[str],
        user_id: Optional[UUID],
    ) -> Postings:
        current = order.status
        if not can_transition(current, target):
            raise InvalidTransition(current, target)

        postings: Postings = ([], [])
        if target == STATUS_RELEASED:
            postings = await self._issue_materials(order, user_id)
        elif target == STATUS_IN_PROGRESS:
            order.actual_start_date = utcnow()
            self._record_output(order, produced, rejected)
        elif target == STATUS_COMPLETED:
            self._record_output(order, produced, rejected)
            order.actual_end_date = utcnow()
            postings = await self._receive_output(order, user_id)
        elif target == STATUS_CANCELLED:
            postings = await self._return_materials(order, user_id)

        order.status = target
        await self.events.add(
            ProductionStatusEvent(
                production_order_id=order.id,
                from_status=current,
                to_status=target,
                changed_by=user_id,
                notes=notes,
            )
        )
        return postings

    async def _issue_materials(self, order: ProductionOrder, user_id: Optional[UUID]) -> Postings:
        """Issue the active BOM's requirements; every shortage is reported before anything is written."""
        bom = await self.boms.get_active_bom(order.product_id)
        if bom is None:
            logger.info("Order %s released without a bill of materials; nothing issued", order.order_number)
            return [], []

        requirements: Dict[UUID, Decimal] = {}
        for line in await self.boms.list_items(bom.id):
            qty = material_requirement(line.quantity_required, order.quantity_planned, line.scrap_percentage)
            requirements[line.material_id] = requirements.get(line.material_id, Decimal("0")) + qty

        locked = {item.id: item for item in await self.items.lock_items(requirements)}
        shortages = []
        for material_id, qty in requirements.items():
            item = locked.get(material_id)
            if item is None:
                raise NotFound(f"BOM material {material_id} not found")
            if item.current_stock < qty:
                shortages.append(shortage(item, qty))
        if shortages:
            logger.info("Order %s cannot be released: %d material shortage(s)", order.order_number, len(shortages))
            raise InsufficientStock(shortages)

        txns, items = [], []
        for material_id in sorted(requirements, key=str):
            txn, item = await self.inventory.post(
                item_id=material_id,
                transaction_type=TXN_ISSUE,
                quantity=requirements[material_id],
                reference_type=REF_PRODUCTION_ORDER,
                reference_id=order.id,
                reference_number=order.order_number,
                notes=f"Material issue for {order.order_number}",
                user_id=user_id,
            )
            txns.append(txn)
            items.append(item)
        return txns, items

    async def _receive_output(self, order: ProductionOrder, user_id: Optional[UUID]) -> Postings:
        product = await self.products.get_product(order.product_id)
        if product is None or product.inventory_item_id is None or order.quantity_produced <= 0:
            return [], []
        txn, item = await self.inventory.post(
            item_id=product.inventory_item_id,
            transaction_type=TXN_RECEIPT,
            quantity=order.quantity_produced,
            reference_type=REF_PRODUCTION_ORDER,
            reference_id=order.id,
            reference_number=order.order_number,
            notes=f"Production receipt for {order.order_number}",
            user_id=user_id,
        )
        return [txn], [item]

    async def _return_materials(self, order: ProductionOrder, user_id: Optional[UUID]) -> Postings:
        """Reverse every issue booked against the order."""
        issues = await self.ledger.list_for_reference(
            reference_type=REF_PRODUCTION_ORDER, reference_id=order.id, transaction_type=TXN_ISSUE
        )
        if not issues:
            return [], []
        await self.items.lock_items(t.item_id for t in issues)
        txns, items = [], []
        for issue in sorted(issues, key=lambda t: str(t.item_id)):
            txn, item = await self.inventory.post(
                item_id=issue.item_id,
                transaction_type=TXN_RETURN,
                quantity=-issue.quantity,
                unit_cost=issue.unit_cost,
                reference_type=REF_PRODUCTION_ORDER,
                reference_id=order.id,
                reference_number=order.order_number,
                notes=f"Material return for cancelled {order.order_number}",
                user_id=user_id,
            )
            txns.append(txn)
            items.append(item)
        return txns, items

    async def _after_transition(
        self, order: ProductionOrder, previous: str, postings: Postings, user_id: Optional[UUID]
    ) -> None:
        logger.info("Production order %s status %s -> %s", order.order_number, previous, order.status)
        await self._notify(
            "production_order.status_changed",
            {
                "production_order_id": str(order.id),
                "order_number": order.order_number,
                "from_status": previous,
                "to_status": order.status,
            },
            user_id=user_id,
        )
        txns, items = postings
        if txns:
            await self.inventory.after_postings(txns, items, user_id=user_id)
