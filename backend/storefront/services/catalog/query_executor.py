from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from storefront.core.config import settings
from storefront.schemas.search import ProductResult
from storefront.services.catalog.backends.base import CatalogSearchBackend
from storefront.services.catalog.predicates import PredicateSet, SortSpec
from storefront.utils.concurrency import gather_all
from storefront.utils.pagination import compute_total_pages, normalize_pagination


@dataclass
class SearchPage:
    items: List[ProductResult] = field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int = 0

    @property
    def total_pages(self) -> int:
        return compute_total_pages(self.total, self.size)


class QueryExecutor:
    """Runs the count and the page query from one PredicateSet."""

    def __init__(
        self,
        backend: CatalogSearchBackend,
        *,
        max_page_size: int | None = None,
        parallel: bool | None = None,
    ) -> None:
        self._backend = backend
        self._max_page_size = max_page_size or settings.SEARCH_MAX_PAGE_SIZE
        self._parallel = settings.SEARCH_PARALLEL_QUERIES if parallel is None else parallel

    async def execute(
        self,
        predicates: PredicateSet,
        sort: SortSpec,
        page: int,
        size: int,
    ) -> SearchPage:
        safe_page, safe_size, offset = normalize_pagination(page, size, self._max_page_size)
        if self._parallel:
            total, items = await gather_all(
                self._backend.count_matching(predicates),
                self._backend.fetch_page(predicates, sort, offset, safe_size),
            )
        else:
            total = await self._backend.count_matching(predicates)
            items = await self._backend.fetch_page(predicates, sort, offset, safe_size)
        return SearchPage(items=list(items), total=int(total), page=safe_page, size=safe_size)
