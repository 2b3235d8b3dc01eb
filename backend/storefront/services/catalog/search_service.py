from __future__ import annotations

import time
from typing import Dict, List, Optional

from storefront.core.config import settings
from storefront.core.exceptions import ProductNotFoundException
from storefront.core.logging import get_logger
from storefront.schemas.search import (
    PageResponse,
    ProductResult,
    SearchFacets,
    SearchRequest,
    SearchResponse,
    SpecificationFilter,
    SpecificationOperator,
)
from storefront.services.catalog.backends.base import CatalogSearchBackend
from storefront.services.catalog.facet_aggregator import FacetAggregator
from storefront.services.catalog.filter_compiler import FilterCompiler, filter_compiler
from storefront.services.catalog.predicates import (
    ExcludeProductsPredicate,
    FilterDimension,
    MembershipPredicate,
    PredicateSet,
    SortField,
    SortSpec,
    TextPredicate,
    resolve_sort,
)
from storefront.services.catalog.query_executor import QueryExecutor, SearchPage
from storefront.utils.concurrency import gather_all
from storefront.utils.debug_log import debug_log
from storefront.utils.pagination import page_fields

logger = get_logger(__name__)

_NAME_ASC = SortSpec(SortField.NAME, descending=False)


class CatalogSearchService:
    """Faceted product search: one compiled PredicateSet drives the page and every facet."""

    def __init__(
        self,
        backend: CatalogSearchBackend,
        *,
        compiler: FilterCompiler = filter_compiler,
        executor: Optional[QueryExecutor] = None,
        aggregator: Optional[FacetAggregator] = None,
        parallel: Optional[bool] = None,
    ) -> None:
        self._backend = backend
        self._compiler = compiler
        self._parallel = settings.SEARCH_PARALLEL_QUERIES if parallel is None else parallel
        self._executor = executor or QueryExecutor(backend, parallel=self._parallel)
        self._aggregator = aggregator or FacetAggregator(backend, parallel=self._parallel)
        self.last_metrics: Dict[str, float] = {}

    def _reset_metrics(self) -> None:
        self.last_metrics = {"compile_ms": 0.0, "query_ms": 0.0, "total_ms": 0.0}

    def _add_metric(self, key: str, elapsed_ms: float) -> None:
        current = float(self.last_metrics.get(key, 0.0) or 0.0)
        self.last_metrics[key] = current + max(0.0, float(elapsed_ms))

    async def compile(self, request: SearchRequest) -> PredicateSet:
        names = self._compiler.requested_attribute_names(request)
        attribute_types = await self._backend.attribute_types(names) if names else {}
        return self._compiler.compile(request, attribute_types)

    async def search(
        self,
        request: SearchRequest,
        page: int = 0,
        size: Optional[int] = None,
    ) -> SearchResponse:
        self._reset_metrics()
        started = time.perf_counter()
        page_size = size if size is not None else settings.SEARCH_DEFAULT_PAGE_SIZE

        predicates = await self.compile(request)
        sort = resolve_sort(request.sort_by, request.sort_order)
        self._add_metric("compile_ms", (time.perf_counter() - started) * 1000.0)

        query_started = time.perf_counter()
        if self._parallel:
            result, categories, brands, price_ranges, specifications = await gather_all(
                self._executor.execute(predicates, sort, page, page_size),
                self._aggregator.category_facets(predicates),
                self._aggregator.brand_facets(predicates),
                self._aggregator.price_range_facets(predicates),
                self._aggregator.specification_facets(predicates),
            )
        else:
            result = await self._executor.execute(predicates, sort, page, page_size)
            categories = await self._aggregator.category_facets(predicates)
            brands = await self._aggregator.brand_facets(predicates)
            price_ranges = await self._aggregator.price_range_facets(predicates)
            specifications = await self._aggregator.specification_facets(predicates)
        self._add_metric("query_ms", (time.perf_counter() - query_started) * 1000.0)
        self._add_metric("total_ms", (time.perf_counter() - started) * 1000.0)

        logger.debug(
            "Search matched %s products (page=%s size=%s filters=%s) in %.1fms",
            result.total,
            result.page,
            result.size,
            predicates.describe(),
            self.last_metrics["total_ms"],
        )
        debug_log(
            {
                "event": "catalog_search",
                "filters": predicates.describe(),
                "total": result.total,
                "page": result.page,
                "size": result.size,
                "metrics": dict(self.last_metrics),
            }
        )

        return SearchResponse(
            products=PageResponse[ProductResult](
                content=result.items,
                **page_fields(result.page, result.size, result.total),
            ),
            facets=SearchFacets(
                categories=categories,
                brands=brands,
                price_ranges=price_ranges,
                specifications=specifications,
            ),
        )

    async def search_by_specification(
        self,
        attribute_name: str,
        value: str,
        page: int = 0,
        size: Optional[int] = None,
        operator: Optional[SpecificationOperator] = None,
    ) -> SearchResponse:
        request = SearchRequest(
            specification_filters=[
                SpecificationFilter(attribute_name=attribute_name, value=value, operator=operator)
            ]
        )
        return await self.search(request, page=page, size=size)

    async def autocomplete(self, prefix: str, limit: int = 10) -> List[str]:
        needle = (prefix or "").strip().lower()
        if not needle or limit <= 0:
            return []

        predicates = PredicateSet((TextPredicate(needle, include_description=False),))
        candidate_limit = limit * max(1, settings.SEARCH_AUTOCOMPLETE_CANDIDATE_MULTIPLIER)
        candidates = await self._backend.fetch_page(predicates, _NAME_ASC, 0, candidate_limit)

        suggestions: List[str] = []
        seen: set[str] = set()
        for product in candidates:
            for text in (product.name, product.brand):
                if not text or needle not in text.lower():
                    continue
                key = text.strip().lower()
                if key in seen:
                    continue
                seen.add(key)
                suggestions.append(text.strip())
                if len(suggestions) >= limit:
                    return suggestions
        return suggestions

    async def more_like_this(self, product_id: int, limit: int = 10) -> List[ProductResult]:
        anchor = await self._backend.get_product(product_id)
        if anchor is None:
            raise ProductNotFoundException(product_id)
        if limit <= 0:
            return []

        predicates = PredicateSet(
            (
                MembershipPredicate(FilterDimension.CATEGORY, (anchor.category_id,)),
                ExcludeProductsPredicate((anchor.id,)),
            )
        )
        candidate_limit = limit * max(1, settings.SEARCH_SIMILAR_CANDIDATE_MULTIPLIER)
        page: SearchPage = await self._executor.execute(predicates, _NAME_ASC, 0, candidate_limit)
        if not page.items:
            return []

        anchor_specs = await self._backend.specifications_of(anchor.id)
        anchor_values = {
            (spec.attribute_name, spec.value_string, spec.value_numeric, spec.value_boolean)
            for spec in anchor_specs
        }
        if not anchor_values:
            return page.items[:limit]

        specs_by_product = await self._backend.specifications_of_many([item.id for item in page.items])

        def overlap(item: ProductResult) -> int:
            return sum(
                1
                for spec in specs_by_product.get(item.id, [])
                if (spec.attribute_name, spec.value_string, spec.value_numeric, spec.value_boolean)
                in anchor_values
            )

        # Candidates arrive name-ordered; the stable sort keeps that order within equal overlap.
        ranked = sorted(page.items, key=overlap, reverse=True)
        return ranked[:limit]
