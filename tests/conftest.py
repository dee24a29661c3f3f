"""
Shared pytest fixtures.

Every test gets its own in-memory SQLite database (aiosqlite + StaticPool)
with all tables created from the models, plus small seeding helpers that
go through the real services.
"""

import os
import uuid
from decimal import Decimal
from typing import AsyncGenerator, Optional

# Settings are read at import time; configure the environment first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-marketplace-tests")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from furnilink import models  # noqa: F401
from furnilink.core.permissions import Actor, ActorRole
from furnilink.core.security import create_access_token
from furnilink.database import Base, custom_json_dumps, get_db
from furnilink.models.authorization import AuthorizationEdge
from furnilink.models.manufacturer import Manufacturer, Product
from furnilink.schemas.authorization import AuthorizationCreate
from furnilink.schemas.manufacturer import ManufacturerCreate
from furnilink.schemas.order import OrderCreate, OrderItemCreate
from furnilink.services.authorization_service import AuthorizationService
from furnilink.services.manufacturer_service import ManufacturerService
from furnilink.services.order_service import OrderService


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def async_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        json_serializer=custom_json_dumps,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_engine) -> async_sessionmaker:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ============================================================================
# SEEDING HELPERS
# ============================================================================


class Seed:
    """Builds marketplace fixtures through the services."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def manufacturer(
        self,
        code: str,
        name: Optional[str] = None,
        discount: str = "100",
        commission: str = "0",
        **kwargs,
    ) -> Manufacturer:
        return await ManufacturerService(self.db).onboard_manufacturer(
            ManufacturerCreate(
                code=code,
                name=name or f"{code} Furniture",
                default_discount_rate=Decimal(discount),
                default_commission_rate=Decimal(commission),
                **kwargs,
            )
        )

    async def product(
        self,
        manufacturer: Optional[Manufacturer],
        price: str = "1000",
        category_id: Optional[str] = "sofa",
        name: str = "Three-seat sofa",
    ) -> Product:
        product = Product(
            name=name,
            manufacturer_id=manufacturer.id if manufacturer else None,
            category_id=category_id,
            base_price=Decimal(price),
        )
        self.db.add(product)
        await self.db.commit()
        await self.db.refresh(product)
        return product

    async def grant(
        self,
        grantor: Manufacturer,
        to_manufacturer: Optional[Manufacturer] = None,
        to_designer_id: Optional[uuid.UUID] = None,
        **terms,
    ) -> AuthorizationEdge:
        data = AuthorizationCreate(
            to_manufacturer_id=to_manufacturer.id if to_manufacturer else None,
            to_designer_id=to_designer_id,
            **terms,
        )
        return await AuthorizationService(self.db).grant_authorization(data, grantor.id)

    async def raw_edge(self, grantor: Manufacturer, grantee_id: uuid.UUID, **fields) -> AuthorizationEdge:
        """Insert an edge without service validation (legacy or duplicate data)."""
        edge = AuthorizationEdge(
            from_manufacturer_id=grantor.id,
            to_designer_id=grantee_id,
            authorization_type="DESIGNER",
            scope=fields.pop("scope", "ALL"),
            categories=fields.pop("categories", []),
            products=fields.pop("products", []),
            tier_rule_set_ids=[],
            status="ACTIVE",
            is_enabled=True,
            **fields,
        )
        self.db.add(edge)
        await self.db.commit()
        await self.db.refresh(edge)
        return edge

    async def order(self, *lines: OrderItemCreate, placed_by: Optional[Actor] = None, **fields):
        data = OrderCreate(customer_name="Li Wei", customer_phone="13800000000", items=list(lines), **fields)
        return await OrderService(self.db).place_order(data, placed_by=placed_by)


@pytest.fixture
def seed(db_session) -> Seed:
    return Seed(db_session)


def designer(actor_id: Optional[uuid.UUID] = None) -> Actor:
    return Actor(id=actor_id or uuid.uuid4(), role=ActorRole.DESIGNER.value)


def line(product: Optional[Product] = None, quantity: int = 1, **fields) -> OrderItemCreate:
    if product is not None:
        return OrderItemCreate(product_id=product.id, quantity=quantity, **fields)
    fields.setdefault("product_name", "Custom cabinet")
    fields.setdefault("price", Decimal("500"))
    return OrderItemCreate(quantity=quantity, **fields)


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    """ASGI client against the app, wired to the per-test database."""
    from furnilink.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(
    role: str,
    subject: Optional[uuid.UUID] = None,
    manufacturer_id: Optional[uuid.UUID] = None,
) -> dict:
    token = create_access_token(subject or uuid.uuid4(), role, manufacturer_id=manufacturer_id)
    return {"Authorization": f"Bearer {token}"}
