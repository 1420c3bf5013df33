from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Numeric, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from erp_api.db.base import Base, UUIDPkMixin, TimestampMixin


class Category(UUIDPkMixin, TimestampMixin, Base):
    """Grouping for products and inventory items; may nest."""
    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")


class Product(UUIDPkMixin, TimestampMixin, Base):
    """Sellable/manufacturable product master."""
    __tablename__ = "products"

    sku: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    unit_of_measure: Mapped[str] = mapped_column(Text, nullable=False, default="pcs")
    standard_cost: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    selling_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    product_type: Mapped[str] = mapped_column(Text, nullable=False, default="finished_good")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    # Finished-goods stock item that receives completed production, if tracked.
    inventory_item_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("inventory_items.id", ondelete="SET NULL"), nullable=True
    )


class BillOfMaterial(UUIDPkMixin, TimestampMixin, Base):
    """Versioned bill of materials for a product."""
    __tablename__ = "bill_of_materials"
    __table_args__ = (
        UniqueConstraint("product_id", "version", name="uq_bill_of_materials_product_version"),
    )

    product_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version: Mapped[str] = mapped_column(Text, nullable=False, default="1.0")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")


class BomItem(UUIDPkMixin, TimestampMixin, Base):
    """Material consumed per unit of the BOM's product."""
    __tablename__ = "bom_items"

    bom_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bill_of_materials.id", ondelete="CASCADE"), nullable=False, index=True
    )
    material_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("inventory_items.id", ondelete="RESTRICT"), nullable=False
    )
    quantity_required: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(Text, nullable=False, default="pcs")
    scrap_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    is_critical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
