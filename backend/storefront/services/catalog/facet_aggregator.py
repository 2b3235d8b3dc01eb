from __future__ import annotations

import asyncio
from collections import Counter, OrderedDict
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Sequence

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.schemas.search import (
    BrandFacet,
    CategoryFacet,
    PriceRangeFacet,
    SpecificationFacet,
    SpecificationValue,
)
from storefront.services.catalog.backends.base import (
    AttributeInfo,
    CatalogSearchBackend,
    PriceBucket,
    SpecificationCount,
)
from storefront.services.catalog.predicates import FilterDimension, PredicateSet
from storefront.utils.concurrency import gather_all

logger = get_logger(__name__)

PRICE_BUCKETS: Sequence[PriceBucket] = (
    PriceBucket(Decimal("0"), Decimal("100"), "Under $100"),
    PriceBucket(Decimal("100"), Decimal("500"), "$100 - $500"),
    PriceBucket(Decimal("500"), Decimal("1000"), "$500 - $1,000"),
    PriceBucket(Decimal("1000"), Decimal("2000"), "$1,000 - $2,000"),
    PriceBucket(Decimal("2000"), None, "$2,000+"),
)


class FacetAggregator:
    """Facet counts per dimension, each computed with that dimension's own filter removed.

    Every dimension is isolated: a failure or timeout is logged and yields ``[]``
    for that dimension only.
    """

    def __init__(
        self,
        backend: CatalogSearchBackend,
        *,
        top_values: int | None = None,
        timeout_seconds: float | None = None,
        parallel: bool | None = None,
        price_buckets: Sequence[PriceBucket] = PRICE_BUCKETS,
    ) -> None:
        self._backend = backend
        self._top_values = top_values or settings.SEARCH_FACET_TOP_VALUES
        self._timeout = timeout_seconds or settings.SEARCH_FACET_TIMEOUT_SECONDS
        self._parallel = settings.SEARCH_PARALLEL_QUERIES if parallel is None else parallel
        self._price_buckets = tuple(price_buckets)

    async def _guarded(self, dimension: FilterDimension, work: Awaitable[List[Any]]) -> List[Any]:
        try:
            return await asyncio.wait_for(work, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Facet '%s' timed out after %.2fs", dimension.value, self._timeout)
            return []
        except Exception as exc:
            logger.warning("Facet '%s' failed: %s", dimension.value, exc, exc_info=True)
            return []

    async def aggregate(self, predicates: PredicateSet, dimension: FilterDimension) -> List[Any]:
        if dimension == FilterDimension.CATEGORY:
            work = self._category_facets(predicates)
        elif dimension == FilterDimension.BRAND:
            work = self._brand_facets(predicates)
        elif dimension == FilterDimension.PRICE:
            work = self._price_range_facets(predicates)
        elif dimension == FilterDimension.SPECIFICATION:
            work = self._specification_facets(predicates)
        else:
            raise ValueError(f"No facet for dimension {dimension.value!r}")
        return await self._guarded(dimension, work)

    async def category_facets(self, predicates: PredicateSet) -> List[CategoryFacet]:
        return await self.aggregate(predicates, FilterDimension.CATEGORY)

    async def brand_facets(self, predicates: PredicateSet) -> List[BrandFacet]:
        return await self.aggregate(predicates, FilterDimension.BRAND)

    async def price_range_facets(self, predicates: PredicateSet) -> List[PriceRangeFacet]:
        return await self.aggregate(predicates, FilterDimension.PRICE)

    async def specification_facets(self, predicates: PredicateSet) -> List[SpecificationFacet]:
        return await self.aggregate(predicates, FilterDimension.SPECIFICATION)

    async def _category_facets(self, predicates: PredicateSet) -> List[CategoryFacet]:
        rows = await self._backend.group_count(
            predicates.excluding(FilterDimension.CATEGORY),
            FilterDimension.CATEGORY,
        )
        return [
            CategoryFacet(category_id=row.key, category_name=row.label, count=row.count)
            for row in rows
            if row.count > 0
        ]

    async def _brand_facets(self, predicates: PredicateSet) -> List[BrandFacet]:
        rows = await self._backend.group_count(
            predicates.excluding(FilterDimension.BRAND),
            FilterDimension.BRAND,
        )
        return [BrandFacet(brand=row.label, count=row.count) for row in rows if row.count > 0]

    async def _price_range_facets(self, predicates: PredicateSet) -> List[PriceRangeFacet]:
        counts = await self._backend.price_bucket_counts(
            predicates.excluding(FilterDimension.PRICE),
            self._price_buckets,
        )
        return [
            PriceRangeFacet(min=bucket.lower, max=bucket.upper, label=bucket.label, count=count)
            for bucket, count in zip(self._price_buckets, counts)
            if count > 0
        ]

    async def _specification_facets(self, predicates: PredicateSet) -> List[SpecificationFacet]:
        attributes = await self._backend.filterable_attributes()
        if not attributes:
            return []
        known = {attr.name for attr in attributes}
        filtered = [name for name in predicates.specification_keys() if name in known]
        unfiltered = [attr.name for attr in attributes if attr.name not in filtered]

        # Attributes without a filter share one query; each filtered one drops only its own predicate.
        jobs: List[Awaitable[List[SpecificationCount]]] = []
        if unfiltered:
            jobs.append(self._backend.specification_value_counts(predicates, unfiltered))
        for name in filtered:
            jobs.append(
                self._backend.specification_value_counts(
                    predicates.excluding(FilterDimension.SPECIFICATION, name),
                    [name],
                )
            )
        if self._parallel:
            results = await gather_all(*jobs)
        else:
            results = [await job for job in jobs]

        counts: Dict[str, Counter] = {}
        for rows in results:
            for row in rows:
                counts.setdefault(row.attribute_name, Counter())[row.value.render()] += row.count
        return self._build_specification_facets(attributes, counts)

    def _build_specification_facets(
        self,
        attributes: Sequence[AttributeInfo],
        counts: Dict[str, Counter],
    ) -> List[SpecificationFacet]:
        facets: "OrderedDict[str, SpecificationFacet]" = OrderedDict()
        for attr in attributes:
            observed = counts.get(attr.name)
            if not observed:
                continue
            ranked = sorted(
                ((value, count) for value, count in observed.items() if count > 0),
                key=lambda item: (-item[1], item[0]),
            )[: self._top_values]
            if not ranked:
                continue
            facets[attr.name] = SpecificationFacet(
                attribute_name=attr.name,
                attribute_display_name=attr.display_name,
                unit=attr.unit,
                values=[SpecificationValue(value=value, count=count) for value, count in ranked],
            )
        return list(facets.values())
