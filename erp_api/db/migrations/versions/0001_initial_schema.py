"""Initial schema: security, catalog, inventory ledger and production orders.

- roles, users
- categories, products, bill_of_materials, bom_items
- inventory_items, inventory_transactions
- production_orders, production_status_events
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Security
    op.create_table(
        "roles",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_roles"),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("hashed_password", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("role_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_users_role_id_roles", ondelete="RESTRICT"),
    )

    # Catalog and inventory masters
    op.create_table(
        "categories",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("parent_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_categories"),
        sa.UniqueConstraint("name", name="uq_categories_name"),
        sa.ForeignKeyConstraint(
            ["parent_id"], ["categories.id"], name="fk_categories_parent_id_categories", ondelete="SET NULL"
        ),
    )
    op.create_table(
        "inventory_items",
        _id(),
        sa.Column("sku", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category_id", sa.Uuid(), nullable=True),
        sa.Column("unit_of_measure", sa.Text(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(15, 2), nullable=False),
        sa.Column("current_stock", sa.Numeric(18, 4), nullable=False),
        sa.Column("minimum_stock", sa.Numeric(18, 4), nullable=False),
        sa.Column("maximum_stock", sa.Numeric(18, 4), nullable=False),
        sa.Column("reorder_point", sa.Numeric(18, 4), nullable=False),
        sa.Column("item_type", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_inventory_items"),
        sa.UniqueConstraint("sku", name="uq_inventory_items_sku"),
        sa.CheckConstraint("current_stock >= 0", name="ck_inventory_items_current_stock_non_negative"),
        sa.CheckConstraint("minimum_stock >= 0", name="ck_inventory_items_minimum_stock_non_negative"),
        sa.ForeignKeyConstraint(
            ["category_id"], ["categories.id"], name="fk_inventory_items_category_id_categories", ondelete="SET NULL"
        ),
    )
    op.create_table(
        "products",
        _id(),
        sa.Column("sku", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category_id", sa.Uuid(), nullable=True),
        sa.Column("unit_of_measure", sa.Text(), nullable=False),
        sa.Column("standard_cost", sa.Numeric(15, 2), nullable=False),
        sa.Column("selling_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("product_type", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("inventory_item_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
        sa.ForeignKeyConstraint(
            ["category_id"], ["categories.id"], name="fk_products_category_id_categories", ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["inventory_item_id"],
            ["inventory_items.id"],
            name="fk_products_inventory_item_id_inventory_items",
            ondelete="SET NULL",
        ),
    )
    op.create_table(
        "bill_of_materials",
        _id(),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("version", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_bill_of_materials"),
        sa.UniqueConstraint("product_id", "version", name="uq_bill_of_materials_product_version"),
        sa.ForeignKeyConstraint(
            ["product_id"], ["products.id"], name="fk_bill_of_materials_product_id_products", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_bill_of_materials_product_id", "bill_of_materials", ["product_id"])
    op.create_table(
        "bom_items",
        _id(),
        sa.Column("bom_id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=False),
        sa.Column("quantity_required", sa.Numeric(18, 4), nullable=False),
        sa.Column("unit_of_measure", sa.Text(), nullable=False),
        sa.Column("scrap_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("is_critical", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_bom_items"),
        sa.ForeignKeyConstraint(
            ["bom_id"], ["bill_of_materials.id"], name="fk_bom_items_bom_id_bill_of_materials", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["material_id"], ["inventory_items.id"], name="fk_bom_items_material_id_inventory_items", ondelete="RESTRICT"
        ),
    )
    op.create_index("ix_bom_items_bom_id", "bom_items", ["bom_id"])

    # Inventory ledger
    op.create_table(
        "inventory_transactions",
        _id(),
        sa.Column("item_id", sa.Uuid(), nullable=False),
        sa.Column("transaction_type", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=False),
        sa.Column("unit_cost", sa.Numeric(15, 2), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reference_type", sa.Text(), nullable=False),
        sa.Column("reference_id", sa.Uuid(), nullable=True),
        sa.Column("reference_number", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_inventory_transactions"),
        sa.ForeignKeyConstraint(
            ["item_id"], ["inventory_items.id"], name="fk_inventory_transactions_item_id_inventory_items", ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(
            ["created_by"], ["users.id"], name="fk_inventory_transactions_created_by_users", ondelete="SET NULL"
        ),
    )
    op.create_index("ix_inventory_transactions_item_id", "inventory_transactions", ["item_id"])
    op.create_index("ix_inventory_transactions_reference_id", "inventory_transactions", ["reference_id"])

    # Production
    op.create_table(
        "production_orders",
        _id(),
        sa.Column("order_number", sa.Text(), nullable=False),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("quantity_planned", sa.Numeric(18, 4), nullable=False),
        sa.Column("quantity_produced", sa.Numeric(18, 4), nullable=False),
        sa.Column("quantity_rejected", sa.Numeric(18, 4), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("actual_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("priority", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("sales_order_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_production_orders"),
        sa.UniqueConstraint("order_number", name="uq_production_orders_order_number"),
        sa.CheckConstraint("quantity_planned > 0", name="ck_production_orders_quantity_planned_positive"),
        sa.ForeignKeyConstraint(
            ["product_id"], ["products.id"], name="fk_production_orders_product_id_products", ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(
            ["created_by"], ["users.id"], name="fk_production_orders_created_by_users", ondelete="SET NULL"
        ),
    )
    op.create_index("ix_production_orders_product_id", "production_orders", ["product_id"])
    op.create_index("ix_production_orders_status", "production_orders", ["status"])
    op.create_table(
        "production_status_events",
        _id(),
        sa.Column("production_order_id", sa.Uuid(), nullable=False),
        sa.Column("from_status", sa.Text(), nullable=False),
        sa.Column("to_status", sa.Text(), nullable=False),
        sa.Column("changed_by", sa.Uuid(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_production_status_events"),
        sa.ForeignKeyConstraint(
            ["production_order_id"],
            ["production_orders.id"],
            name="fk_production_status_events_production_order_id_production_orders",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["changed_by"], ["users.id"], name="fk_production_status_events_changed_by_users", ondelete="SET NULL"
        ),
    )
    op.create_index(
        "ix_production_status_events_production_order_id", "production_status_events", ["production_order_id"]
    )


def downgrade() -> None:
    op.drop_table("production_status_events")
    op.drop_table("production_orders")
    op.drop_table("inventory_transactions")
    op.drop_table("bom_items")
    op.drop_table("bill_of_materials")
    op.drop_table("products")
    op.drop_table("inventory_items")
    op.drop_table("categories")
    op.drop_table("users")
    op.drop_table("roles")
