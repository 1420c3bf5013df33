from __future__ import annotations

import os

# Settings are read from the environment on every access; fix them before the app is imported.
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ["AUTO_SEED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.setdefault("POSTGRES_URL", "sqlite+aiosqlite:///./erp_api_unused.db")

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Dict
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from erp_api.api.main import app
from erp_api.core.constants import USER_ROLES
from erp_api.core.deps import get_session
from erp_api.core.ratelimit import rate_limiter
from erp_api.core.security import create_access_token, get_password_hash
from erp_api.db.base import Base
from erp_api.db.models.security import Role, User
from erp_api.schemas.catalog import BomItemInput, BomReplace, ProductCreate
from erp_api.schemas.inventory import InventoryItemCreate
from erp_api.services.catalog import CatalogService
from erp_api.services.inventory import InventoryService

PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(PASSWORD)


def utc_today():
    return datetime.now(timezone.utc).date()


def due_in(days: int) -> str:
    return (utc_today() + timedelta(days=days)).isoformat()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
async def engine(tmp_path):
    """
    File-backed SQLite engine whose transactions start with BEGIN IMMEDIATE.

    Writers are serialized the way PostgreSQL row locks serialize them, so the
    concurrency tests exercise real contention.
    """
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'erp.db'}", connect_args={"timeout": 30})

    @event.listens_for(eng.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def _override() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def users(session_factory) -> Dict[str, User]:
    """One active user per role, keyed by role name."""
    created: Dict[str, User] = {}
    async with session_factory() as session:
        for name in USER_ROLES:
            role = Role(name=name, description=name)
            session.add(role)
            await session.flush()
            user = User(
                email=f"{name}@example.com",
                first_name=name.title(),
                last_name="Tester",
                hashed_password=PASSWORD_HASH,
                role_id=role.id,
            )
            session.add(user)
            created[name] = user
        await session.commit()
    return created


@pytest.fixture
def auth(users):
    """auth(role) -> Authorization header for that role's user."""

    def _headers(role: str) -> Dict[str, str]:
        token = create_access_token(subject=str(users[role].id), role=role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@dataclass
class Catalog:
    material_id: UUID
    finished_id: UUID
    product_id: UUID


@pytest.fixture
async def catalog(session_factory) -> Catalog:
    """
    Steel (500 kg on hand, minimum 50) feeding a bracket product whose BOM needs
    2 kg per unit with 10% scrap; completed brackets go to the BRACKET-FG item.
    """
    async with session_factory() as session:
        inventory = InventoryService(session)
        material = await inventory.create_item(
            InventoryItemCreate(
                sku="STEEL-2MM",
                name="Steel sheet",
                unit_of_measure="kg",
                unit_cost=Decimal("4.00"),
                minimum_stock=Decimal("50"),
                opening_stock=Decimal("500"),
            )
        )
        finished = await inventory.create_item(
            InventoryItemCreate(sku="BRACKET-FG", name="Bracket stock", item_type="finished_good")
        )
        service = CatalogService(session)
        product = await service.create_product(
            ProductCreate(sku="BRACKET", name="Bracket", inventory_item_id=finished.id)
        )
        await service.replace_bom(
            product.id,
            BomReplace(
                items=[
                    BomItemInput(
                        material_id=material.id,
                        quantity_required=Decimal("2"),
                        unit_of_measure="kg",
                        scrap_percentage=Decimal("10"),
                    )
                ]
            ),
        )
        return Catalog(material_id=material.id, finished_id=finished.id, product_id=product.id)
