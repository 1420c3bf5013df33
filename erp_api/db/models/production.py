from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from erp_api.db.base import Base, UUIDPkMixin, TimestampMixin


class ProductionOrder(UUIDPkMixin, TimestampMixin, Base):
    """Manufacturing work order tracking planned vs. produced quantity."""
    __tablename__ = "production_orders"
    __table_args__ = (
        CheckConstraint("quantity_planned > 0", name="quantity_planned_positive"),
    )

    order_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    product_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity_planned: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    quantity_produced: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    quantity_rejected: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    actual_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="planned", index=True)
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="medium")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    sales_order_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)


class ProductionStatusEvent(UUIDPkMixin, TimestampMixin, Base):
    """Status change history for production orders."""
    __tablename__ = "production_status_events"

    production_order_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("production_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[str] = mapped_column(Text, nullable=False)
    to_status: Mapped[str] = mapped_column(Text, nullable=False)
    changed_by: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
