"""Catalog search over an in-process snapshot of the catalog.

The snapshot is fetched once (and refreshed on a TTL) and every predicate is
evaluated in Python with the same semantics the SQL backend renders, so both
backends return identical pages and facets for the same catalog.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter, defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.core.logging import get_logger
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
from storefront.services.catalog.backends.sql import product_to_result
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
    SpecValue,
    StringValue,
    coerce_value,
    normalize_attribute_name,
    to_data_type,
    value_from_columns,
    value_to_columns,
)

logger = get_logger(__name__)

_SPEC_VALUE_TYPES = (StringValue, NumericValue, BoolValue)


class CatalogSnapshot:
    """Immutable-after-build view of categories, attributes, products and their specs."""

    def __init__(self) -> None:
        self.categories: Dict[int, str] = {}
        self.attributes: Dict[str, AttributeInfo] = {}
        self.products: Dict[int, ProductResult] = {}
        self.specifications: Dict[int, Dict[str, SpecValue]] = {}

    def add_category(self, category_id: int, name: str) -> None:
        self.categories[int(category_id)] = name

    def add_attribute(self, info: AttributeInfo) -> None:
        name = normalize_attribute_name(info.name)
        if name != info.name:
            info = AttributeInfo(
                name=name,
                display_name=info.display_name,
                data_type=info.data_type,
                unit=info.unit,
                is_filterable=info.is_filterable,
                sort_order=info.sort_order,
                id=info.id,
            )
        self.attributes[name] = info

    def add_product(
        self,
        product: ProductResult,
        specifications: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if product.category_name is None and product.category_id in self.categories:
            product = product.model_copy(update={"category_name": self.categories[product.category_id]})
        values: Dict[str, SpecValue] = {}
        for raw_name, raw_value in (specifications or {}).items():
            name = normalize_attribute_name(raw_name)
            info = self.attributes.get(name)
            if info is None:
                raise KeyError(f"Unknown attribute '{name}'")
            if isinstance(raw_value, _SPEC_VALUE_TYPES):
                value = raw_value
            else:
                value = coerce_value(raw_value, info.data_type)
            if value is None:
                raise ValueError(f"Value {raw_value!r} is not a valid {info.data_type.value} for '{name}'")
            values[name] = value
        self.products[product.id] = product
        self.specifications[product.id] = values


async def load_snapshot(session_factory: async_sessionmaker[AsyncSession]) -> CatalogSnapshot:
    """Read the whole catalog into a fresh snapshot."""
    snapshot = CatalogSnapshot()
    async with session_factory() as db:
        categories = (await db.execute(select(Category.id, Category.name))).all()
        for category_id, name in categories:
            snapshot.add_category(category_id, name)

        definitions = (await db.execute(select(AttributeDefinition))).scalars().all()
        names_by_id: Dict[int, str] = {}
        for row in definitions:
            data_type = to_data_type(row.data_type) or AttributeDataType.STRING
            snapshot.add_attribute(
                AttributeInfo(
                    name=row.name,
                    display_name=row.display_name,
                    data_type=data_type,
                    unit=row.unit,
                    is_filterable=bool(row.is_filterable),
                    sort_order=row.sort_order or 0,
                    id=row.id,
                )
            )
            names_by_id[row.id] = normalize_attribute_name(row.name)

        spec_rows = (await db.execute(select(ProductSpecification))).scalars().all()
        specs_by_product: Dict[int, Dict[str, SpecValue]] = defaultdict(dict)
        for spec in spec_rows:
            name = names_by_id.get(spec.attribute_id)
            value = value_from_columns(spec.value_string, spec.value_numeric, spec.value_boolean)
            if name is None or value is None:
                continue
            specs_by_product[spec.product_id][name] = value

        products = (await db.execute(select(Product))).scalars().all()
        for product in products:
            snapshot.add_product(
                product_to_result(product, snapshot.categories.get(product.category_id)),
                specs_by_product.get(product.id),
            )

    logger.info(
        "Loaded catalog snapshot: %s products, %s attributes",
        len(snapshot.products),
        len(snapshot.attributes),
    )
    return snapshot


class SnapshotProvider:
    """Caches a loaded snapshot for ``ttl_seconds``; one refresh at a time."""

    def __init__(
        self,
        loader: Callable[[], Awaitable[CatalogSnapshot]],
        ttl_seconds: float,
    ) -> None:
        self._loader = loader
        self._ttl_seconds = max(0.0, float(ttl_seconds))
        self._snapshot: Optional[CatalogSnapshot] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        if self._snapshot is None:
            return False
        return (time.monotonic() - self._loaded_at) < self._ttl_seconds

    async def get(self) -> CatalogSnapshot:
        if self._is_fresh():
            return self._snapshot
        async with self._lock:
            if not self._is_fresh():
                self._snapshot = await self._loader()
                self._loaded_at = time.monotonic()
            return self._snapshot

    def invalidate(self) -> None:
        self._snapshot = None


class InMemoryCatalogBackend:
    def __init__(
        self,
        snapshot: Optional[CatalogSnapshot] = None,
        *,
        provider: Optional[SnapshotProvider] = None,
    ) -> None:
        if snapshot is None and provider is None:
            raise ValueError("InMemoryCatalogBackend needs a snapshot or a provider")
        self._fixed = snapshot
        self._provider = provider

    async def _snapshot(self) -> CatalogSnapshot:
        if self._fixed is not None:
            return self._fixed
        return await self._provider.get()

    @staticmethod
    def _contains(haystack: Optional[str], needle: str) -> bool:
        return needle.lower() in (haystack or "").lower()

    @classmethod
    def _value_matches(cls, predicate: SpecificationPredicate, stored: SpecValue) -> bool:
        if predicate.matches_nothing:
            return False
        if predicate.bounds is not None:
            low, high = predicate.bounds
            return isinstance(stored, NumericValue) and low <= stored.number <= high
        value = predicate.value
        if isinstance(value, BoolValue):
            return isinstance(stored, BoolValue) and stored.flag == value.flag
        if isinstance(value, NumericValue):
            if isinstance(stored, NumericValue):
                if predicate.operator == SpecificationOperator.GREATER_THAN:
                    return stored.number > value.number
                if predicate.operator == SpecificationOperator.LESS_THAN:
                    return stored.number < value.number
                return stored.number == value.number
            if isinstance(stored, StringValue) and predicate.operator == SpecificationOperator.EQUALS:
                return cls._contains(stored.text, predicate.raw_value)
            return False
        needle = value.text.lower()
        if predicate.operator == SpecificationOperator.EQUALS:
            return isinstance(stored, StringValue) and stored.text.strip().lower() == needle
        if isinstance(stored, StringValue):
            return cls._contains(stored.text, needle)
        if isinstance(stored, NumericValue):
            return cls._contains(stored.render(), needle)
        return False

    @classmethod
    def _matches(
        cls,
        product: ProductResult,
        specs: Mapping[str, SpecValue],
        predicate: Predicate,
    ) -> bool:
        if isinstance(predicate, TextPredicate):
            fields = [product.name, product.brand]
            if predicate.include_description:
                fields.append(product.description)
            return any(cls._contains(field, predicate.needle) for field in fields)
        if isinstance(predicate, MembershipPredicate):
            if predicate.dimension == FilterDimension.CATEGORY:
                return product.category_id in predicate.values
            return (product.brand or "").strip().lower() in predicate.values
        if isinstance(predicate, RangePredicate):
            if predicate.lower is not None and product.price < predicate.lower:
                return False
            if predicate.upper is not None and product.price > predicate.upper:
                return False
            return True
        if isinstance(predicate, StockPredicate):
            return product.stock_quantity > 0
        if isinstance(predicate, ExcludeProductsPredicate):
            return product.id not in predicate.product_ids
        if isinstance(predicate, SpecificationPredicate):
            stored = specs.get(predicate.attribute_name)
            return stored is not None and cls._value_matches(predicate, stored)
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    def _matching(self, snapshot: CatalogSnapshot, predicates: PredicateSet) -> List[ProductResult]:
        matched: List[ProductResult] = []
        for product_id, product in snapshot.products.items():
            if not product.is_active:
                continue
            specs = snapshot.specifications.get(product_id, {})
            if all(self._matches(product, specs, p) for p in predicates):
                matched.append(product)
        return matched

    @staticmethod
    def _sort_key(sort: SortSpec) -> Callable[[ProductResult], Tuple[bool, Any]]:
        def key(product: ProductResult) -> Tuple[bool, Any]:
            if sort.field == SortField.PRICE:
                value = product.price
            elif sort.field == SortField.CREATED_AT:
                value = product.created_at
            else:
                value = (product.name or "").lower()
            # Nulls sort last ascending and first descending.
            return (value is None, value)

        return key

    async def count_matching(self, predicates: PredicateSet) -> int:
        snapshot = await self._snapshot()
        return len(self._matching(snapshot, predicates))

    async def fetch_page(
        self,
        predicates: PredicateSet,
        sort: SortSpec,
        offset: int,
        limit: int,
    ) -> List[ProductResult]:
        snapshot = await self._snapshot()
        # Two stable passes: id ascending first, then the primary key (reverse keeps ties stable).
        ordered = sorted(self._matching(snapshot, predicates), key=lambda p: p.id)
        ordered = sorted(ordered, key=self._sort_key(sort), reverse=sort.descending)
        start = max(0, int(offset))
        return ordered[start:start + max(0, int(limit))]

    async def group_count(self, predicates: PredicateSet, dimension: FilterDimension) -> List[FacetCount]:
        snapshot = await self._snapshot()
        matched = self._matching(snapshot, predicates)

        if dimension == FilterDimension.CATEGORY:
            counts: Counter = Counter(
                p.category_id for p in matched if p.category_id in snapshot.categories
            )
            facets = [
                FacetCount(key=category_id, label=snapshot.categories[category_id], count=count)
                for category_id, count in counts.items()
            ]
            return sorted(facets, key=lambda f: (-f.count, f.label))

        if dimension == FilterDimension.BRAND:
            counts = Counter()
            labels: Dict[str, str] = {}
            for product in matched:
                brand = product.brand
                if brand is None or not brand.strip():
                    continue
                group = brand.strip().lower()
                counts[group] += 1
                if group not in labels or brand < labels[group]:
                    labels[group] = brand
            facets = [FacetCount(key=labels[g], label=labels[g], count=c) for g, c in counts.items()]
            return sorted(facets, key=lambda f: (-f.count, f.label))

        raise ValueError(f"group_count does not support dimension {dimension.value!r}")

    async def price_bucket_counts(
        self,
        predicates: PredicateSet,
        buckets: Sequence[PriceBucket],
    ) -> List[int]:
        snapshot = await self._snapshot()
        counts = [0 for _ in buckets]
        for product in self._matching(snapshot, predicates):
            for idx, bucket in enumerate(buckets):
                if bucket.contains(product.price):
                    counts[idx] += 1
                    break
        return counts

    async def specification_value_counts(
        self,
        predicates: PredicateSet,
        attribute_names: Sequence[str],
    ) -> List[SpecificationCount]:
        names = [name for name in attribute_names if name]
        if not names:
            return []
        snapshot = await self._snapshot()
        counts: Counter = Counter()
        for product in self._matching(snapshot, predicates):
            specs = snapshot.specifications.get(product.id, {})
            for name in names:
                value = specs.get(name)
                if value is not None:
                    counts[(name, value)] += 1
        return [
            SpecificationCount(attribute_name=name, value=value, count=count)
            for (name, value), count in counts.items()
        ]

    async def filterable_attributes(self) -> List[AttributeInfo]:
        snapshot = await self._snapshot()
        attributes = [info for info in snapshot.attributes.values() if info.is_filterable]
        return sorted(attributes, key=lambda info: (info.sort_order, info.name))

    async def attribute_types(self, names: Sequence[str]) -> Dict[str, AttributeDataType]:
        snapshot = await self._snapshot()
        return {
            name: snapshot.attributes[name].data_type
            for name in names
            if name in snapshot.attributes
        }

    async def get_product(self, product_id: int) -> Optional[ProductResult]:
        snapshot = await self._snapshot()
        return snapshot.products.get(product_id)

    async def specifications_of(self, product_id: int) -> List[ProductSpecificationSchema]:
        by_product = await self.specifications_of_many([product_id])
        return by_product.get(product_id, [])

    async def specifications_of_many(
        self,
        product_ids: Sequence[int],
    ) -> Dict[int, List[ProductSpecificationSchema]]:
        snapshot = await self._snapshot()
        grouped: Dict[int, List[ProductSpecificationSchema]] = {}
        for product_id in dict.fromkeys(product_ids):
            specs = snapshot.specifications.get(product_id)
            if not specs:
                continue
            rows = []
            for name, value in specs.items():
                info = snapshot.attributes[name]
                rows.append(
                    (
                        (info.sort_order, info.name),
                        ProductSpecificationSchema(
                            attribute_id=info.id,
                            attribute_name=info.name,
                            display_name=info.display_name,
                            data_type=info.data_type.value,
                            unit=info.unit,
                            **value_to_columns(value),
                        ),
                    )
                )
            grouped[product_id] = [schema for _, schema in sorted(rows, key=lambda r: r[0])]
        return grouped
