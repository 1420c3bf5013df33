from __future__ import annotations

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, select, update

from erp_api.db.models.catalog import BillOfMaterial, BomItem, Category, Product
from .base import BaseRepository


class CategoryRepository(BaseRepository):
    """Repository for categories."""

    async def list_categories(self) -> List[Category]:
        res = await self.scalars(select(Category).order_by(Category.name))
        return list(res)

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        return await self.scalar_one_or_none(select(Category).where(Category.id == category_id))

    async def get_by_name(self, name: str) -> Optional[Category]:
        return await self.scalar_one_or_none(select(Category).where(Category.name == name))


class ProductRepository(BaseRepository):
    """Repository for products."""

    async def list_products(
        self, *, search: Optional[str], category_id: Optional[UUID], limit: int, offset: int
    ) -> Tuple[List[Product], int]:
        stmt = select(Product)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Product.sku.ilike(like), Product.name.ilike(like)))
        if category_id:
            stmt = stmt.where(Product.category_id == category_id)
        stmt = stmt.order_by(Product.sku)
        return await self.paginate(stmt, limit=limit, offset=offset)

    async def get_product(self, product_id: UUID) -> Optional[Product]:
        return await self.scalar_one_or_none(select(Product).where(Product.id == product_id))

    async def get_by_sku(self, sku: str) -> Optional[Product]:
        return await self.scalar_one_or_none(select(Product).where(Product.sku == sku))


class BomRepository(BaseRepository):
    """Repository for bills of materials."""

    async def get_active_bom(self, product_id: UUID) -> Optional[BillOfMaterial]:
        stmt = (
            select(BillOfMaterial)
            .where(BillOfMaterial.product_id == product_id, BillOfMaterial.is_active.is_(True))
            .order_by(BillOfMaterial.created_at.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def list_versions(self, product_id: UUID) -> List[str]:
        stmt = select(BillOfMaterial.version).where(BillOfMaterial.product_id == product_id)
        return list(await self.scalars(stmt))

    async def list_items(self, bom_id: UUID) -> List[BomItem]:
        stmt = select(BomItem).where(BomItem.bom_id == bom_id).order_by(BomItem.created_at, BomItem.id)
        return list(await self.scalars(stmt))

    async def deactivate_all(self, product_id: UUID) -> None:
        stmt = (
            update(BillOfMaterial)
            .where(BillOfMaterial.product_id == product_id)
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)

    async def material_in_use(self, item_id: UUID) -> bool:
        stmt = select(BomItem.id).where(BomItem.material_id == item_id).limit(1)
        return (await self.scalar_one_or_none(stmt)) is not None
