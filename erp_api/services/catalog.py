from __future__ import annotations

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.core.errors import Conflict, NotFound, ValidationError
from erp_api.db.models.catalog import BillOfMaterial, BomItem, Category, Product
from erp_api.repositories.catalog import BomRepository, CategoryRepository, ProductRepository
from erp_api.repositories.inventory import InventoryItemRepository
from erp_api.schemas.catalog import (
    BomItemRead,
    BomRead,
    BomReplace,
    CategoryCreate,
    ProductCreate,
    ProductUpdate,
)
from erp_api.services.base import BaseService

logger = logging.getLogger(__name__)


class CatalogService(BaseService):
    """Categories, products and their bills of materials."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.categories = CategoryRepository(session)
        self.products = ProductRepository(session)
        self.boms = BomRepository(session)
        self.items = InventoryItemRepository(session)

    # Categories
    # PUBLIC_INTERFACE
    async def list_categories(self) -> List[Category]:
        return await self.categories.list_categories()

    # PUBLIC_INTERFACE
    async def create_category(self, payload: CategoryCreate) -> Category:
        if await self.categories.get_by_name(payload.name):
            raise Conflict(f"Category '{payload.name}' already exists")
        if payload.parent_id and not await self.categories.get_category(payload.parent_id):
            raise ValidationError.for_field("parent_id", "Parent category not found")
        category = Category(name=payload.name, description=payload.description, parent_id=payload.parent_id)
        await self.categories.add(category)
        await self._commit_or_conflict(f"Category '{payload.name}' already exists")
        return category

    # Products
    # PUBLIC_INTERFACE
    async def list_products(
        self, *, page: int, limit: int, search: Optional[str] = None, category_id: Optional[UUID] = None
    ) -> Tuple[List[Product], int]:
        return await self.products.list_products(
            search=search, category_id=category_id, limit=limit, offset=(page - 1) * limit
        )

    # PUBLIC_INTERFACE
    async def get_product(self, product_id: UUID) -> Product:
        product = await self.products.get_product(product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")
        return product

    # PUBLIC_INTERFACE
    async def create_product(self, payload: ProductCreate) -> Product:
        if await self.products.get_by_sku(payload.sku):
            raise Conflict(f"Product with SKU '{payload.sku}' already exists")
        await self._check_references(payload.category_id, payload.inventory_item_id)
        product = Product(**payload.model_dump())
        await self.products.add(product)
        await self._commit_or_conflict(f"Product with SKU '{payload.sku}' already exists")
        logger.info("Product created sku=%s", product.sku)
        return product

    # PUBLIC_INTERFACE
    async def update_product(self, product_id: UUID, payload: ProductUpdate) -> Product:
        product = await self.get_product(product_id)
        changes = payload.model_dump(exclude_unset=True)
        await self._check_references(changes.get("category_id"), changes.get("inventory_item_id"))
        for key, value in changes.items():
            if value is None and key not in ("description", "category_id", "inventory_item_id"):
                continue
            setattr(product, key, value)
        await self.session.commit()
        return product

    async def _check_references(self, category_id: Optional[UUID], inventory_item_id: Optional[UUID]) -> None:
        if category_id and not await self.categories.get_category(category_id):
            raise ValidationError.for_field("category_id", "Category not found")
        if inventory_item_id and not await self.items.get_item(inventory_item_id):
            raise ValidationError.for_field("inventory_item_id", "Inventory item not found")

    async def _commit_or_conflict(self, message: str) -> None:
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict(message)

    # Bills of materials
    # PUBLIC_INTERFACE
    async def get_bom(self, product_id: UUID) -> BomRead:
        """Return the product's active BOM with its lines."""
        await self.get_product(product_id)
        bom = await self.boms.get_active_bom(product_id)
        if bom is None:
            raise NotFound(f"Product {product_id} has no active bill of materials")
        return await self._bom_read(bom)

    # PUBLIC_INTERFACE
    async def replace_bom(self, product_id: UUID, payload: BomReplace) -> BomRead:
        """
        Store the given lines as a new BOM version and make it the only active one.

        Earlier versions are kept inactive for reference.
        """
        await self.get_product(product_id)
        missing = [
            str(line.material_id) for line in payload.items if not await self.items.get_item(line.material_id)
        ]
        if missing:
            raise ValidationError(
                "Validation failed",
                details=[{"field": "items.material_id", "message": f"Inventory item {m} not found"} for m in missing],
            )

        versions = await self.boms.list_versions(product_id)
        version = payload.version or _next_version(versions)
        if version in versions:
            raise Conflict(f"BOM version '{version}' already exists for this product")

        await self.boms.deactivate_all(product_id)
        bom = BillOfMaterial(product_id=product_id, version=version, description=payload.description, is_active=True)
        await self.boms.add(bom)
        await self.boms.flush()
        await self.boms.add_all(
            BomItem(bom_id=bom.id, **line.model_dump()) for line in payload.items
        )
        await self._commit_or_conflict(f"BOM version '{version}' already exists for this product")
        logger.info("BOM replaced product=%s version=%s lines=%d", product_id, version, len(payload.items))
        return await self._bom_read(bom)

    async def _bom_read(self, bom: BillOfMaterial) -> BomRead:
        lines = await self.boms.list_items(bom.id)
        return BomRead(
            id=bom.id,
            product_id=bom.product_id,
            version=bom.version,
            description=bom.description,
            is_active=bom.is_active,
            items=[BomItemRead.model_validate(line) for line in lines],
        )


def _next_version(existing: List[str]) -> str:
    majors = []
    for v in existing:
        head = v.split(".", 1)[0]
        if head.isdigit():
            majors.append(int(head))
    return f"{max(majors, default=0) + 1}.0"
