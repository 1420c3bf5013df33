from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

TransactionType = Literal["receipt", "issue", "transfer", "adjustment", "return"]
ReferenceType = Literal["production_order", "sales_order", "purchase_order", "manual", "transfer"]
ItemType = Literal["raw_material", "finished_good", "work_in_progress", "component", "consumable"]


class InventoryItemRead(BaseModel):
    """Read model for an inventory item, with the derived low-stock flag."""
    id: UUID = Field(..., description="Item ID")
    sku: str = Field(..., description="Stock keeping unit")
    name: str = Field(...)
    description: Optional[str] = Field(None)
    category_id: Optional[UUID] = Field(None)
    unit_of_measure: str = Field(...)
    unit_cost: float = Field(...)
    current_stock: float = Field(..., description="Quantity on hand")
    minimum_stock: float = Field(...)
    maximum_stock: float = Field(...)
    reorder_point: float = Field(...)
    item_type: str = Field(...)
    is_active: bool = Field(...)
    low_stock: bool = Field(False, description="current_stock <= minimum_stock")
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def _derive_low_stock(self):
        self.low_stock = self.current_stock <= self.minimum_stock
        return self


class InventoryItemCreate(BaseModel):
    """Create item payload. Stock on hand is only set through opening_stock."""
    sku: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    unit_of_measure: str = Field("pcs")
    unit_cost: Decimal = Field(Decimal("0"), ge=0)
    minimum_stock: Decimal = Field(Decimal("0"), ge=0, decimal_places=4)
    maximum_stock: Decimal = Field(Decimal("0"), ge=0, decimal_places=4)
    reorder_point: Decimal = Field(Decimal("0"), ge=0, decimal_places=4)
    item_type: ItemType = Field("raw_material")
    opening_stock: Decimal = Field(Decimal("0"), ge=0, decimal_places=4, description="Booked as an adjustment")


class InventoryItemUpdate(BaseModel):
    """Partial item update. current_stock is not editable here."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    unit_of_measure: Optional[str] = None
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    minimum_stock: Optional[Decimal] = Field(None, ge=0, decimal_places=4)
    maximum_stock: Optional[Decimal] = Field(None, ge=0, decimal_places=4)
    reorder_point: Optional[Decimal] = Field(None, ge=0, decimal_places=4)
    item_type: Optional[ItemType] = None
    is_active: Optional[bool] = None


class InventoryTransactionRead(BaseModel):
    """Read model for a ledger row."""
    id: UUID = Field(..., description="Transaction ID")
    item_id: UUID = Field(...)
    transaction_type: str = Field(...)
    quantity: float = Field(..., description="Signed stock change")
    unit_cost: float = Field(...)
    transaction_date: datetime = Field(...)
    reference_type: str = Field(...)
    reference_id: Optional[UUID] = Field(None, description="Causing order, if any")
    reference_number: Optional[str] = Field(None)
    notes: Optional[str] = Field(None)
    created_by: Optional[UUID] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True


class InventoryTransactionCreate(BaseModel):
    """
    Stock movement request.

    receipt/return/issue take a positive quantity; adjustment/transfer take a
    non-zero signed delta.
    """
    item_id: UUID = Field(...)
    transaction_type: TransactionType = Field(...)
    quantity: Decimal = Field(..., decimal_places=4)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    reference_type: ReferenceType = Field("manual")
    reference_id: Optional[UUID] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_quantity_sign(self):
        if self.transaction_type in ("receipt", "return", "issue"):
            if self.quantity <= 0:
                raise ValueError(f"quantity must be greater than 0 for {self.transaction_type}")
        elif self.quantity == 0:
            raise ValueError("quantity must be non-zero")
        return self


class StockLevel(BaseModel):
    id: UUID
    sku: str
    name: str
    current_stock: float
    minimum_stock: float
    maximum_stock: float
    low_stock: bool


class ValuationLine(BaseModel):
    id: UUID
    sku: str
    name: str
    current_stock: float
    unit_cost: float
    total_value: float


class Valuation(BaseModel):
    items: List[ValuationLine]
    total_inventory_value: float


class LedgerReconciliation(BaseModel):
    """Cached stock compared against the ledger sum."""
    item_id: UUID
    current_stock: float
    ledger_balance: float
    transaction_count: int
    consistent: bool
