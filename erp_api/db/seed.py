"""
Database seeding utilities for minimal reference data.

Seeds:
- All user roles
- An admin user (SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD)
- A sample category, raw material and finished-goods inventory items
- A sample product linked to its finished-goods item, with a one-line BOM

Every step is idempotent, so seeding can run on each startup.

Usage:
  python -m erp_api.db.run_migrations upgrade head
  python -m erp_api.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.core.constants import ROLE_ADMIN, USER_ROLES
from erp_api.core.security import get_password_hash
from erp_api.core.settings import get_app_settings
from erp_api.db.models.catalog import Category
from erp_api.db.models.inventory import InventoryItem
from erp_api.db.session import session_scope
from erp_api.repositories.catalog import BomRepository, CategoryRepository, ProductRepository
from erp_api.repositories.inventory import InventoryItemRepository
from erp_api.repositories.security import SecurityRepository
from erp_api.schemas.catalog import BomItemInput, BomReplace, ProductCreate
from erp_api.schemas.inventory import InventoryItemCreate
from erp_api.services.catalog import CatalogService
from erp_api.services.inventory import InventoryService

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with minimal reference data.

    This function:
      - Seeds every role and the admin account
      - Seeds a category, two inventory items, a product and its BOM
    """
    async with session_scope() as session:
        await _seed_security(session)
        category = await _seed_category(session)
        material, finished = await _seed_items(session, category)
        await _seed_product_and_bom(session, category, material, finished)


async def _seed_security(session: AsyncSession) -> None:
    repo = SecurityRepository(session)
    for name in USER_ROLES:
        await repo.ensure_role(name)

    settings = get_app_settings()
    if await repo.get_user_by_email(settings.SEED_ADMIN_EMAIL):
        return
    admin_role = await repo.ensure_role(ROLE_ADMIN)
    await repo.create_user(
        email=settings.SEED_ADMIN_EMAIL,
        first_name="System",
        last_name="Administrator",
        hashed_password=get_password_hash(settings.SEED_ADMIN_PASSWORD),
        role_id=admin_role.id,
    )
    logger.info("Seeded admin user %s", settings.SEED_ADMIN_EMAIL)


async def _seed_category(session: AsyncSession) -> Category:
    repo = CategoryRepository(session)
    category = await repo.get_by_name("General")
    if category:
        return category
    category = Category(name="General", description="Default category")
    await repo.add(category)
    await repo.commit()
    return category


async def _seed_items(session: AsyncSession, category: Category) -> tuple[InventoryItem, InventoryItem]:
    repo = InventoryItemRepository(session)
    service = InventoryService(session)

    material = await repo.get_by_sku("RAW-STEEL-001")
    if material is None:
        material = await service.create_item(
            InventoryItemCreate(
                sku="RAW-STEEL-001",
                name="Steel Sheet 2mm",
                category_id=category.id,
                unit_of_measure="kg",
                unit_cost=Decimal("4.50"),
                minimum_stock=Decimal("100"),
                maximum_stock=Decimal("5000"),
                reorder_point=Decimal("250"),
                item_type="raw_material",
                opening_stock=Decimal("1000"),
            )
        )

    finished = await repo.get_by_sku("FG-BRACKET-001")
    if finished is None:
        finished = await service.create_item(
            InventoryItemCreate(
                sku="FG-BRACKET-001",
                name="Mounting Bracket",
                category_id=category.id,
                unit_cost=Decimal("12.00"),
                item_type="finished_good",
            )
        )
    return material, finished


async def _seed_product_and_bom(
    session: AsyncSession, category: Category, material: InventoryItem, finished: InventoryItem
) -> None:
    if await ProductRepository(session).get_by_sku("BRACKET-001"):
        return
    catalog = CatalogService(session)
    product = await catalog.create_product(
        ProductCreate(
            sku="BRACKET-001",
            name="Mounting Bracket",
            category_id=category.id,
            standard_cost=Decimal("9.00"),
            selling_price=Decimal("19.90"),
            inventory_item_id=finished.id,
        )
    )
    if await BomRepository(session).get_active_bom(product.id) is None:
        await catalog.replace_bom(
            product.id,
            BomReplace(
                version="1.0",
                description="Initial BOM",
                items=[
                    BomItemInput(
                        material_id=material.id,
                        quantity_required=Decimal("0.75"),
                        unit_of_measure="kg",
                        scrap_percentage=Decimal("5"),
                        is_critical=True,
                    )
                ],
            ),
        )
    logger.info("Seeded sample product %s with BOM", product.sku)


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()
