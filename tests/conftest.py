# tests/conftest.py
import os

# marketsync.database builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE_DIR", "/tmp/marketsync-tests/storage")
os.environ.setdefault("TEMP_UPLOAD_DIR", "/tmp/marketsync-tests/tmp")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from marketsync import models  # noqa: F401
from marketsync.core.config import clear_settings_cache
from marketsync.core.enums import Marketplace, PublishStatus
from marketsync.database import Base
from marketsync.dependencies import get_db
from marketsync.main import app
from marketsync.models.category import Category
from marketsync.models.integration import Integration
from marketsync.models.price import PriceList
from marketsync.models.product import Product, ProductVariation, ProductVariationItem
from marketsync.models.user import User
from marketsync.models.warehouse import Warehouse

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(autouse=True)
def fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
async def test_engine():
    """In-memory database, created per test function"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def api_client(db_session):
    """HTTP client bound to the app with get_db pointing at the test session"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# Factories

@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    async def _make(api_token=None, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=kwargs.pop("name", f"User {n}"),
            email=kwargs.pop("email", f"user{n}@example.com"),
            api_token=api_token or f"token-{n}",
            **kwargs,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest.fixture
async def user(make_user):
    return await make_user(api_token="secret-token")


@pytest.fixture
def auth_headers():
    return {"X-Api-Token": "secret-token"}


@pytest.fixture
def make_integration(db_session):
    async def _make(user, marketplace=Marketplace.WILDBERRIES.value, settings=None, active=True, with_price_list=False):
        price_list_id = None
        if with_price_list:
            price_list = PriceList(user_id=user.id, name="Default")
            db_session.add(price_list)
            await db_session.flush()
            price_list_id = price_list.id
        integration = Integration(
            user_id=user.id,
            name=marketplace.capitalize(),
            type=marketplace,
            settings=settings or {},
            status=PublishStatus.PUBLISHED.value if active else PublishStatus.UNPUBLISHED.value,
            price_list_id=price_list_id,
        )
        db_session.add(integration)
        await db_session.flush()
        return integration

    return _make


@pytest.fixture
def make_category(db_session):
    async def _make(user, external_id="cat-1", title="Dresses", **kwargs):
        category = Category(user_id=user.id, external_id=external_id, title=title, **kwargs)
        db_session.add(category)
        await db_session.flush()
        return category

    return _make


@pytest.fixture
def make_product(db_session):
    """Product with one variation and one item per barcode"""
    counter = {"n": 0}

    async def _make(user, sku=None, category=None, barcodes=("2000000000011",), vendor_code=None, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        product = Product(
            user_id=user.id,
            sku=sku or f"SKU-{n}",
            title=kwargs.pop("title", f"Product {n}"),
            description=kwargs.pop("description", "Description"),
            external_id=kwargs.pop("external_id", f"ext-{n}"),
            category_id=category.id if category else None,
            status=kwargs.pop("status", PublishStatus.PUBLISHED.value),
            **kwargs,
        )
        db_session.add(product)
        await db_session.flush()

        variation = ProductVariation(
            product_id=product.id,
            uuid=f"00000000-0000-4000-8000-{n:012d}",
            vendor_code=vendor_code or product.sku,
            title=product.title,
            status=PublishStatus.PUBLISHED.value,
            is_main=True,
        )
        db_session.add(variation)
        await db_session.flush()

        for index, barcode in enumerate(barcodes):
            db_session.add(ProductVariationItem(
                variation_id=variation.id,
                uuid=f"00000000-0000-4000-9000-{n:06d}{index:06d}",
                barcode=barcode,
                title=f"Size {index}",
                status=PublishStatus.PUBLISHED.value,
            ))
        await db_session.flush()
        return product

    return _make


@pytest.fixture
def make_warehouse(db_session):
    async def _make(user, marketplace=Marketplace.WILDBERRIES.value, external_id="101", name="Main"):
        warehouse = Warehouse(user_id=user.id, marketplace=marketplace, external_id=external_id, name=name, is_active=True)
        db_session.add(warehouse)
        await db_session.flush()
        return warehouse

    return _make
