from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.config import settings
from storefront.core.exceptions import (
    CategoryNotFoundException,
    DuplicateResourceException,
    ProductNotFoundException,
)
from storefront.core.logging import get_logger
from storefront.models.product import Category, Product
from storefront.schemas.product import ProductCreate, ProductDetail, ProductSpecificationSchema, ProductUpdate
from storefront.schemas.search import PageResponse, ProductResult
from storefront.services.catalog.attributes_service import eav_service
from storefront.services.catalog.backends.memory import SnapshotProvider
from storefront.services.catalog.backends.sql import product_to_result
from storefront.utils.pagination import normalize_pagination, page_fields

logger = get_logger(__name__)

_PRODUCT_FIELDS = (
    "category_id",
    "name",
    "description",
    "sku",
    "price",
    "discount_price",
    "stock_quantity",
    "brand",
    "model",
    "images",
)


class ProductService:
    def __init__(self, db: AsyncSession, snapshot_provider: Optional[SnapshotProvider] = None):
        self.db = db
        self.snapshot_provider = snapshot_provider

    def _catalog_changed(self) -> None:
        # In-memory search reloads on its next read instead of waiting for the TTL.
        if self.snapshot_provider is not None:
            self.snapshot_provider.invalidate()

    async def _load(self, product_id: int) -> Product:
        stmt = (
            select(Product)
            .options(selectinload(Product.category))
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        product = result.scalar_one_or_none()
        if product is None:
            raise ProductNotFoundException(product_id)
        return product

    async def _ensure_category(self, category_id: int) -> Category:
        category = await self.db.get(Category, category_id)
        if category is None:
            raise CategoryNotFoundException(category_id)
        return category

    async def _ensure_unique_sku(self, sku: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Product.id).where(Product.sku == sku)
        if exclude_id is not None:
            stmt = stmt.where(Product.id != exclude_id)
        result = await self.db.execute(stmt)
        if result.first() is not None:
            raise DuplicateResourceException(f"Product with sku '{sku}' already exists")

    async def get_product(self, product_id: int) -> ProductResult:
        product = await self._load(product_id)
        return product_to_result(product, product.category.name if product.category else None)

    async def get_product_specifications(self, product_id: int) -> List[ProductSpecificationSchema]:
        await self._load(product_id)
        specs = await eav_service.get_product_specifications(self.db, [product_id])
        return specs.get(product_id, [])

    async def get_product_detail(self, product_id: int) -> ProductDetail:
        result = await self.get_product(product_id)
        specs = await eav_service.get_product_specifications(self.db, [product_id])
        return ProductDetail(**result.model_dump(), specifications=specs.get(product_id, []))

    async def _list_active(self, conditions: list, page: int, size: int) -> PageResponse[ProductResult]:
        safe_page, safe_size, offset = normalize_pagination(page, size, settings.SEARCH_MAX_PAGE_SIZE)
        conditions = [Product.is_active.is_(True), *conditions]

        total = (await self.db.execute(select(func.count(Product.id)).where(*conditions))).scalar() or 0
        stmt = (
            select(Product, Category.name)
            .outerjoin(Category, Category.id == Product.category_id)
            .where(*conditions)
            .order_by(Product.id.asc())
            .offset(offset)
            .limit(safe_size)
        )
        rows = (await self.db.execute(stmt)).all()
        return PageResponse[ProductResult](
            content=[product_to_result(product, category_name) for product, category_name in rows],
            **page_fields(safe_page, safe_size, int(total)),
        )

    async def list_products(self, page: int = 0, size: int = 20) -> PageResponse[ProductResult]:
        """Active products by id, without specifications."""
        return await self._list_active([], page, size)

    async def list_products_by_category(
        self,
        category_id: int,
        page: int = 0,
        size: int = 20,
    ) -> PageResponse[ProductResult]:
        await self._ensure_category(category_id)
        return await self._list_active([Product.category_id == category_id], page, size)

    async def create_product(self, payload: ProductCreate) -> ProductDetail:
        await self._ensure_category(payload.category_id)
        await self._ensure_unique_sku(payload.sku)

        product = Product(**payload.model_dump(include=set(_PRODUCT_FIELDS)))
        self.db.add(product)
        await self.db.flush()
        product_id = product.id

        await eav_service.replace_product_specifications(
            self.db,
            product_id=product_id,
            values=payload.specifications,
        )
        await self.db.commit()
        self._catalog_changed()
        logger.info("Created product %s (sku=%s)", product_id, payload.sku)
        return await self.get_product_detail(product_id)

    async def update_product(self, product_id: int, payload: ProductUpdate) -> ProductDetail:
        product = await self._load(product_id)
        if payload.category_id != product.category_id:
            await self._ensure_category(payload.category_id)
        if payload.sku != product.sku:
            await self._ensure_unique_sku(payload.sku, exclude_id=product_id)

        for field_name, value in payload.model_dump(include=set(_PRODUCT_FIELDS)).items():
            setattr(product, field_name, value)

        # Specification rows are replaced wholesale, never patched.
        await eav_service.replace_product_specifications(
            self.db,
            product_id=product_id,
            values=payload.specifications,
        )
        await self.db.commit()
        self._catalog_changed()
        logger.info("Updated product %s", product_id)
        return await self.get_product_detail(product_id)

    async def deactivate_product(self, product_id: int) -> None:
        product = await self._load(product_id)
        product.is_active = False
        await self.db.commit()
        self._catalog_changed()
        logger.info("Deactivated product %s", product_id)
