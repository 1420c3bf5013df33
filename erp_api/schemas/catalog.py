from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

ProductType = Literal["finished_good", "raw_material", "work_in_progress", "component"]


class CategoryRead(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    parent_id: Optional[UUID] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    parent_id: Optional[UUID] = None


class ProductRead(BaseModel):
    """Product read model."""
    id: UUID
    sku: str
    name: str
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    unit_of_measure: str
    standard_cost: float
    selling_price: float
    product_type: str
    is_active: bool
    inventory_item_id: Optional[UUID] = Field(None, description="Finished-goods stock item")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    """Create product payload."""
    sku: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    unit_of_measure: str = Field("pcs")
    standard_cost: Decimal = Field(Decimal("0"), ge=0)
    selling_price: Decimal = Field(Decimal("0"), ge=0)
    product_type: ProductType = Field("finished_good")
    inventory_item_id: Optional[UUID] = None


class ProductUpdate(BaseModel):
    """Partial product update; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    unit_of_measure: Optional[str] = None
    standard_cost: Optional[Decimal] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)
    product_type: Optional[ProductType] = None
    is_active: Optional[bool] = None
    inventory_item_id: Optional[UUID] = None


class BomItemRead(BaseModel):
    id: UUID
    material_id: UUID
    quantity_required: float
    unit_of_measure: str
    scrap_percentage: float
    is_critical: bool
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class BomItemInput(BaseModel):
    material_id: UUID = Field(..., description="Inventory item consumed")
    quantity_required: Decimal = Field(..., gt=0, decimal_places=4, description="Quantity per unit produced")
    unit_of_measure: str = Field("pcs")
    scrap_percentage: Decimal = Field(Decimal("0"), ge=0, lt=100)
    is_critical: bool = Field(False)
    notes: Optional[str] = None


class BomRead(BaseModel):
    id: UUID
    product_id: UUID
    version: str
    description: Optional[str] = None
    is_active: bool
    items: List[BomItemRead] = Field(default_factory=list)


class BomReplace(BaseModel):
    """Replace the active BOM of a product with a new version."""
    version: Optional[str] = Field(None, description="Version label; defaults to the next major version")
    description: Optional[str] = None
    items: List[BomItemInput] = Field(..., min_length=1)
