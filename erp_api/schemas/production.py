from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

ProductionStatus = Literal["planned", "released", "in_progress", "completed", "cancelled"]
Priority = Literal["low", "medium", "high", "urgent"]


class ProductionOrderRead(BaseModel):
    """Production order read model."""
    id: UUID = Field(..., description="Production order id")
    order_number: str = Field(..., description="PO-<year>-<sequence>")
    product_id: UUID = Field(...)
    quantity_planned: float = Field(...)
    quantity_produced: float = Field(...)
    quantity_rejected: float = Field(...)
    start_date: date = Field(...)
    due_date: date = Field(...)
    actual_start_date: Optional[datetime] = Field(None)
    actual_end_date: Optional[datetime] = Field(None)
    status: str = Field(...)
    priority: str = Field(...)
    notes: Optional[str] = Field(None)
    created_by: Optional[UUID] = Field(None)
    sales_order_id: Optional[UUID] = Field(None)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class ProductionOrderCreate(BaseModel):
    """Create production order payload. The order number is generated."""
    product_id: UUID = Field(..., description="Product to manufacture")
    quantity_planned: Decimal = Field(..., gt=0, decimal_places=4)
    start_date: Optional[date] = Field(None, description="Defaults to today")
    due_date: date = Field(..., description="Must not be in the past")
    priority: Priority = Field("medium")
    notes: Optional[str] = Field(None)
    sales_order_id: Optional[UUID] = Field(None)


class ProductionOrderUpdate(BaseModel):
    """
    Partial update. Quantity and dates are editable while planned; priority and
    notes while open. A status value is applied as a lifecycle transition.
    """
    quantity_planned: Optional[Decimal] = Field(None, gt=0, decimal_places=4)
    start_date: Optional[date] = Field(None)
    due_date: Optional[date] = Field(None)
    priority: Optional[Priority] = Field(None)
    notes: Optional[str] = Field(None)
    status: Optional[ProductionStatus] = Field(None)
    quantity_produced: Optional[Decimal] = Field(None, ge=0, decimal_places=4)
    quantity_rejected: Optional[Decimal] = Field(None, ge=0, decimal_places=4)


class StatusTransitionRequest(BaseModel):
    """Move a production order to another lifecycle status."""
    status: ProductionStatus = Field(...)
    quantity_produced: Optional[Decimal] = Field(None, ge=0, decimal_places=4)
    quantity_rejected: Optional[Decimal] = Field(None, ge=0, decimal_places=4)
    notes: Optional[str] = Field(None)


class StatusEventRead(BaseModel):
    id: UUID
    production_order_id: UUID
    from_status: str
    to_status: str
    changed_by: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProductionMetrics(BaseModel):
    """Dashboard figures for the current month."""
    total_orders: int = Field(..., description="Orders created this month")
    orders_by_status: Dict[str, int] = Field(default_factory=dict)
    production_efficiency: float = Field(..., description="Produced / planned for completed orders, in %")
    total_produced: float = Field(...)
    total_planned: float = Field(...)

