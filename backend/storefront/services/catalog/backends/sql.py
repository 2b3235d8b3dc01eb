from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import String, and_, case, cast, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from storefront.models.product import Category, Product
from storefront.models.product_attribute import AttributeDataType, AttributeDefinition, ProductSpecification
from storefront.schemas.product import ProductSpecificationSchema
from storefront.schemas.search import ProductResult, SpecificationOperator
from storefront.services.catalog.backends.base import (
    AttributeInfo,
    FacetCount,
    PriceBucket,
    SpecificationCount,
)
from storefront.services.catalog.predicates import (
    ExcludeProductsPredicate,
    FilterDimension,
    MembershipPredicate,
    Predicate,
    PredicateSet,
    RangePredicate,
    SortField,
    SortSpec,
    SpecificationPredicate,
    StockPredicate,
    TextPredicate,
)
from storefront.services.catalog.values import (
    BoolValue,
    NumericValue,
    to_data_type,
    value_from_columns,
)


def product_to_result(product: Product, category_name: Optional[str] = None) -> ProductResult:
    images = product.images if isinstance(product.images, list) else []
    return ProductResult(
        id=product.id,
        category_id=product.category_id,
        category_name=category_name,
        name=product.name,
        description=product.description,
        sku=product.sku,
        price=product.price,
        discount_price=product.discount_price,
        stock_quantity=product.stock_quantity or 0,
        brand=product.brand,
        model=product.model,
        images=[str(item) for item in images],
        is_active=bool(product.is_active),
        created_at=product.created_at,
    )


def specification_to_schema(
    spec: ProductSpecification,
    definition: AttributeDefinition,
) -> ProductSpecificationSchema:
    return ProductSpecificationSchema(
        attribute_id=definition.id,
        attribute_name=definition.name,
        display_name=definition.display_name,
        data_type=definition.data_type,
        unit=definition.unit,
        value_string=spec.value_string,
        value_numeric=spec.value_numeric,
        value_boolean=spec.value_boolean,
    )


class SqlCatalogBackend:
    """Catalog search over the relational store.

    Predicates render to SQLAlchemy expressions; the count, page and every facet
    query share ``_conditions`` so they filter identically. Each call opens its own
    session, which lets the orchestrator run sub-queries concurrently.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _like_pattern(needle: str) -> str:
        escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    @classmethod
    def _contains(cls, column, needle: str):
        return func.lower(func.coalesce(column, "")).like(cls._like_pattern(needle.lower()), escape="\\")

    @classmethod
    def _specification_value_condition(cls, predicate: SpecificationPredicate, spec):
        if predicate.bounds is not None:
            low, high = predicate.bounds
            return spec.value_numeric.between(low, high)
        value = predicate.value
        if isinstance(value, BoolValue):
            return spec.value_boolean == value.flag
        if isinstance(value, NumericValue):
            if predicate.operator == SpecificationOperator.GREATER_THAN:
                return spec.value_numeric > value.number
            if predicate.operator == SpecificationOperator.LESS_THAN:
                return spec.value_numeric < value.number
            # Numeric equality, or the same number stored as text.
            return or_(
                spec.value_numeric == value.number,
                cls._contains(spec.value_string, predicate.raw_value),
            )
        needle = value.text.lower()
        if predicate.operator == SpecificationOperator.EQUALS:
            return func.lower(func.trim(spec.value_string)) == needle
        return or_(
            cls._contains(spec.value_string, needle),
            cls._contains(cast(spec.value_numeric, String), needle),
        )

    @classmethod
    def _specification_condition(cls, predicate: SpecificationPredicate):
        if predicate.matches_nothing:
            return false()
        spec = aliased(ProductSpecification)
        attr = aliased(AttributeDefinition)
        return (
            select(spec.id)
            .join(attr, attr.id == spec.attribute_id)
            .where(spec.product_id == Product.id)
            .where(attr.name == predicate.attribute_name)
            .where(cls._specification_value_condition(predicate, spec))
            .correlate(Product)
            .exists()
        )

    @classmethod
    def _render(cls, predicate: Predicate):
        if isinstance(predicate, TextPredicate):
            columns = [Product.name, Product.brand]
            if predicate.include_description:
                columns.append(Product.description)
            return or_(*(cls._contains(column, predicate.needle) for column in columns))
        if isinstance(predicate, MembershipPredicate):
            if predicate.dimension == FilterDimension.CATEGORY:
                return Product.category_id.in_(list(predicate.values))
            return func.lower(func.trim(Product.brand)).in_(list(predicate.values))
        if isinstance(predicate, RangePredicate):
            bounds = []
            if predicate.lower is not None:
                bounds.append(Product.price >= predicate.lower)
            if predicate.upper is not None:
                bounds.append(Product.price <= predicate.upper)
            return and_(*bounds)
        if isinstance(predicate, StockPredicate):
            return Product.stock_quantity > 0
        if isinstance(predicate, ExcludeProductsPredicate):
            return ~Product.id.in_(list(predicate.product_ids))
        if isinstance(predicate, SpecificationPredicate):
            return cls._specification_condition(predicate)
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    @classmethod
    def _conditions(cls, predicates: PredicateSet) -> List[Any]:
        conditions: List[Any] = [Product.is_active.is_(True)]
        for predicate in predicates:
            conditions.append(cls._render(predicate))
        return conditions

    @staticmethod
    def _order_by(sort: SortSpec) -> List[Any]:
        if sort.field == SortField.PRICE:
            column = Product.price
        elif sort.field == SortField.CREATED_AT:
            column = Product.created_at
        else:
            column = func.lower(Product.name)
        primary = column.desc() if sort.descending else column.asc()
        return [primary, Product.id.asc()]

    async def count_matching(self, predicates: PredicateSet) -> int:
        stmt = select(func.count(Product.id)).where(*self._conditions(predicates))
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return int(result.scalar() or 0)

    async def fetch_page(
        self,
        predicates: PredicateSet,
        sort: SortSpec,
        offset: int,
        limit: int,
    ) -> List[ProductResult]:
        stmt = (
            select(Product, Category.name)
            .outerjoin(Category, Category.id == Product.category_id)
            .where(*self._conditions(predicates))
            .order_by(*self._order_by(sort))
            .offset(max(0, int(offset)))
            .limit(max(0, int(limit)))
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            rows = result.all()
        return [product_to_result(product, category_name) for product, category_name in rows]

    async def group_count(self, predicates: PredicateSet, dimension: FilterDimension) -> List[FacetCount]:
        count_col = func.count(func.distinct(Product.id))
        if dimension == FilterDimension.CATEGORY:
            stmt = (
                select(Category.id, Category.name, count_col.label("count"))
                .select_from(Product)
                .join(Category, Category.id == Product.category_id)
                .where(*self._conditions(predicates))
                .group_by(Category.id, Category.name)
                .order_by(count_col.desc(), Category.name.asc())
            )
            async with self._session_factory() as db:
                rows = (await db.execute(stmt)).all()
            return [FacetCount(key=row[0], label=row[1], count=int(row[2])) for row in rows]

        if dimension == FilterDimension.BRAND:
            label_col = func.min(Product.brand)
            stmt = (
                select(label_col.label("brand"), count_col.label("count"))
                .where(*self._conditions(predicates))
                .where(Product.brand.isnot(None))
                .where(func.trim(Product.brand) != "")
                .group_by(func.lower(func.trim(Product.brand)))
                .order_by(count_col.desc(), label_col.asc())
            )
            async with self._session_factory() as db:
                rows = (await db.execute(stmt)).all()
            return [FacetCount(key=row[0], label=row[0], count=int(row[1])) for row in rows]

        raise ValueError(f"group_count does not support dimension {dimension.value!r}")

    async def price_bucket_counts(
        self,
        predicates: PredicateSet,
        buckets: Sequence[PriceBucket],
    ) -> List[int]:
        if not buckets:
            return []
        whens = []
        for idx, bucket in enumerate(buckets):
            condition = Product.price >= bucket.lower
            if bucket.upper is not None:
                condition = and_(condition, Product.price < bucket.upper)
            whens.append((condition, idx))
        # Bucket in a subquery so GROUP BY does not repeat the bound CASE parameters.
        bucketed = (
            select(case(*whens).label("bucket"))
            .where(*self._conditions(predicates))
            .subquery()
        )
        stmt = (
            select(bucketed.c.bucket, func.count().label("count"))
            .where(bucketed.c.bucket.isnot(None))
            .group_by(bucketed.c.bucket)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        counts = [0 for _ in buckets]
        for bucket_idx, count in rows:
            counts[int(bucket_idx)] = int(count)
        return counts

    async def specification_value_counts(
        self,
        predicates: PredicateSet,
        attribute_names: Sequence[str],
    ) -> List[SpecificationCount]:
        names = [name for name in attribute_names if name]
        if not names:
            return []
        matching = select(Product.id.label("id")).where(*self._conditions(predicates)).subquery()
        count_col = func.count(func.distinct(ProductSpecification.product_id))
        stmt = (
            select(
                AttributeDefinition.name,
                ProductSpecification.value_string,
                ProductSpecification.value_numeric,
                ProductSpecification.value_boolean,
                count_col.label("count"),
            )
            .select_from(ProductSpecification)
            .join(matching, ProductSpecification.product_id == matching.c.id)
            .join(AttributeDefinition, AttributeDefinition.id == ProductSpecification.attribute_id)
            .where(AttributeDefinition.name.in_(names))
            .group_by(
                AttributeDefinition.name,
                ProductSpecification.value_string,
                ProductSpecification.value_numeric,
                ProductSpecification.value_boolean,
            )
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        counts: List[SpecificationCount] = []
        for name, value_string, value_numeric, value_boolean, count in rows:
            value = value_from_columns(value_string, value_numeric, value_boolean)
            if value is None:
                continue
            counts.append(SpecificationCount(attribute_name=name, value=value, count=int(count)))
        return counts

    async def filterable_attributes(self) -> List[AttributeInfo]:
        stmt = (
            select(AttributeDefinition)
            .where(AttributeDefinition.is_filterable.is_(True))
            .order_by(AttributeDefinition.sort_order, AttributeDefinition.name)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return [
            AttributeInfo(
                name=row.name,
                display_name=row.display_name,
                data_type=to_data_type(row.data_type) or AttributeDataType.STRING,
                unit=row.unit,
                is_filterable=bool(row.is_filterable),
                sort_order=row.sort_order or 0,
                id=row.id,
            )
            for row in rows
        ]

    async def attribute_types(self, names: Sequence[str]) -> Dict[str, AttributeDataType]:
        cleaned = [name for name in names if name]
        if not cleaned:
            return {}
        stmt = select(AttributeDefinition.name, AttributeDefinition.data_type).where(
            AttributeDefinition.name.in_(cleaned)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        types: Dict[str, AttributeDataType] = {}
        for name, data_type in rows:
            resolved = to_data_type(data_type)
            if resolved is not None:
                types[str(name).lower()] = resolved
        return types

    async def get_product(self, product_id: int) -> Optional[ProductResult]:
        stmt = (
            select(Product, Category.name)
            .outerjoin(Category, Category.id == Product.category_id)
            .where(Product.id == product_id)
        )
        async with self._session_factory() as db:
            row = (await db.execute(stmt)).first()
        if row is None:
            return None
        return product_to_result(row[0], row[1])

    async def specifications_of(self, product_id: int) -> List[ProductSpecificationSchema]:
        by_product = await self.specifications_of_many([product_id])
        return by_product.get(product_id, [])

    async def specifications_of_many(
        self,
        product_ids: Sequence[int],
    ) -> Dict[int, List[ProductSpecificationSchema]]:
        ids = list(dict.fromkeys(pid for pid in product_ids if pid is not None))
        if not ids:
            return {}
        stmt = (
            select(ProductSpecification, AttributeDefinition)
            .join(AttributeDefinition, AttributeDefinition.id == ProductSpecification.attribute_id)
            .where(ProductSpecification.product_id.in_(ids))
            .order_by(AttributeDefinition.sort_order, AttributeDefinition.name)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        grouped: Dict[int, List[ProductSpecificationSchema]] = defaultdict(list)
        for spec, definition in rows:
            grouped[spec.product_id].append(specification_to_schema(spec, definition))
        return dict(grouped)
