from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List

import pytest
import pytest_asyncio

from storefront.models.product_attribute import AttributeDataType
from storefront.schemas.search import ProductResult
from storefront.services.catalog.backends import AttributeInfo, CatalogSnapshot, InMemoryCatalogBackend

LAPTOPS = 1
MONITORS = 2

CATEGORIES = {LAPTOPS: "Laptops", MONITORS: "Monitors"}

ATTRIBUTES: List[AttributeInfo] = [
    AttributeInfo(id=1, name="ram_size", display_name="RAM", data_type=AttributeDataType.NUMERIC, unit="GB", sort_order=1),
    AttributeInfo(id=2, name="processor", display_name="Processor", data_type=AttributeDataType.STRING, sort_order=2),
    AttributeInfo(id=3, name="touchscreen", display_name="Touchscreen", data_type=AttributeDataType.BOOLEAN, sort_order=3),
    AttributeInfo(
        id=4,
        name="internal_code",
        display_name="Internal code",
        data_type=AttributeDataType.STRING,
        is_filterable=False,
        sort_order=9,
    ),
]

_BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)

# A/B/C are the Dell/HP laptops; C is inactive.
PRODUCTS: List[Dict[str, Any]] = [
    {
        "id": 1,
        "category_id": LAPTOPS,
        "name": "XPS 15",
        "description": "Dell flagship laptop",
        "sku": "LAP-A",
        "price": Decimal("900.00"),
        "stock_quantity": 5,
        "brand": "Dell",
        "is_active": True,
        "created_at": _BASE_TIME,
        "specs": {"ram_size": "16", "processor": "Intel Core i7", "touchscreen": "true", "internal_code": "x1"},
    },
    {
        "id": 2,
        "category_id": LAPTOPS,
        "name": "Pavilion 14",
        "description": "Everyday laptop",
        "sku": "LAP-B",
        "price": Decimal("1200.00"),
        "stock_quantity": 0,
        "brand": "HP",
        "is_active": True,
        "created_at": _BASE_TIME + timedelta(days=1),
        "specs": {"ram_size": "8", "processor": "AMD Ryzen 5", "touchscreen": "false"},
    },
    {
        "id": 3,
        "category_id": LAPTOPS,
        "name": "Precision 7770",
        "description": "Mobile workstation",
        "sku": "LAP-C",
        "price": Decimal("1800.00"),
        "stock_quantity": 2,
        "brand": "Dell",
        "is_active": False,
        "created_at": _BASE_TIME + timedelta(days=2),
        "specs": {"ram_size": "16", "processor": "Intel Core i9"},
    },
    {
        "id": 4,
        "category_id": MONITORS,
        "name": "UltraSharp U2723QE",
        "description": "27 inch 4K monitor",
        "sku": "MON-D",
        "price": Decimal("450.00"),
        "stock_quantity": 3,
        "brand": "Dell",
        "is_active": True,
        "created_at": _BASE_TIME + timedelta(days=3),
        "specs": {},
    },
    {
        "id": 5,
        "category_id": LAPTOPS,
        "name": "ThinkPad X1 Carbon",
        "description": "Business ultrabook",
        "sku": "LAP-E",
        "price": Decimal("2100.00"),
        "stock_quantity": 7,
        "brand": "Lenovo",
        "is_active": True,
        "created_at": _BASE_TIME + timedelta(days=4),
        "specs": {"ram_size": "32", "processor": "Intel Core i7"},
    },
]


def product_result(row: Dict[str, Any]) -> ProductResult:
    fields = {key: value for key, value in row.items() if key != "specs"}
    return ProductResult(**fields)


def build_snapshot() -> CatalogSnapshot:
    snapshot = CatalogSnapshot()
    for category_id, name in CATEGORIES.items():
        snapshot.add_category(category_id, name)
    for info in ATTRIBUTES:
        snapshot.add_attribute(info)
    for row in PRODUCTS:
        snapshot.add_product(product_result(row), row["specs"])
    return snapshot


@pytest.fixture
def catalog_snapshot() -> CatalogSnapshot:
    return build_snapshot()


@pytest.fixture
def memory_backend(catalog_snapshot: CatalogSnapshot) -> InMemoryCatalogBackend:
    return InMemoryCatalogBackend(catalog_snapshot)


async def seed_catalog(session_factory) -> None:
    from storefront.models import AttributeDefinition, Category, Product, ProductSpecification
    from storefront.services.catalog.values import coerce_value, value_to_columns

    async with session_factory() as db:
        for category_id, name in CATEGORIES.items():
            db.add(Category(id=category_id, name=name, slug=name.lower()))
        for info in ATTRIBUTES:
            db.add(
                AttributeDefinition(
                    id=info.id,
                    name=info.name,
                    display_name=info.display_name,
                    data_type=info.data_type.value,
                    unit=info.unit,
                    is_filterable=info.is_filterable,
                    sort_order=info.sort_order,
                )
            )
        await db.flush()
        types = {info.name: (info.id, info.data_type) for info in ATTRIBUTES}
        for row in PRODUCTS:
            fields = {key: value for key, value in row.items() if key != "specs"}
            db.add(Product(images=[], **fields))
            await db.flush()
            for name, raw in row["specs"].items():
                attribute_id, data_type = types[name]
                db.add(
                    ProductSpecification(
                        product_id=row["id"],
                        attribute_id=attribute_id,
                        **value_to_columns(coerce_value(raw, data_type)),
                    )
                )
        await db.commit()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    pytest.importorskip("aiosqlite")
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from storefront.db.base import Base
    import storefront.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def seeded_session_factory(session_factory):
    await seed_catalog(session_factory)
    return session_factory
