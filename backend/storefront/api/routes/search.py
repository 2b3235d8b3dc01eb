from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from storefront.core.config import settings
from storefront.dependencies import get_search_service
from storefront.schemas.search import (
    ProductResult,
    SearchRequest,
    SearchResponse,
    SortOption,
    SortOrder,
    SpecificationOperator,
)
from storefront.services.catalog.search_service import CatalogSearchService

router = APIRouter()

# Short query params accepted by GET /search, mapped to attribute names.
SPEC_SHORTHAND_PARAMS: Dict[str, str] = {
    "ram": "ram_size",
    "cpu": "processor",
    "processor": "processor",
    "storage": "storage_capacity",
    "gpu": "gpu",
    "brand_cpu": "cpu_brand",
    "screen_size": "screen_size",
    "os": "operating_system",
    "weight": "weight",
}
SPEC_PARAM_PREFIX = "spec."


def _collect_specifications(request: Request) -> Dict[str, str]:
    specs: Dict[str, str] = {}
    for key, value in request.query_params.multi_items():
        if value is None or not value.strip():
            continue
        if key in SPEC_SHORTHAND_PARAMS:
            specs[SPEC_SHORTHAND_PARAMS[key]] = value.strip()
        elif key.startswith(SPEC_PARAM_PREFIX) and len(key) > len(SPEC_PARAM_PREFIX):
            specs[key[len(SPEC_PARAM_PREFIX):]] = value.strip()
    return specs


@router.post("", response_model=SearchResponse)
async def search_products(
    search_request: SearchRequest,
    page: int = Query(0, ge=0),
    size: int = Query(settings.SEARCH_DEFAULT_PAGE_SIZE, ge=1),
    service: CatalogSearchService = Depends(get_search_service),
):
    return await service.search(search_request, page=page, size=size)


@router.get("", response_model=SearchResponse)
async def search_products_by_params(
    request: Request,
    query: Optional[str] = None,
    category_ids: Optional[List[int]] = Query(None),
    brands: Optional[List[str]] = Query(None),
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    in_stock: Optional[bool] = None,
    sort_by: SortOption = SortOption.RELEVANCE,
    sort_order: SortOrder = SortOrder.DESC,
    page: int = Query(0, ge=0),
    size: int = Query(settings.SEARCH_DEFAULT_PAGE_SIZE, ge=1),
    service: CatalogSearchService = Depends(get_search_service),
):
    """Query-string search. Specifications come from ``ram``/``cpu``/... or ``spec.<attribute>`` params."""
    search_request = SearchRequest(
        query=query,
        category_ids=category_ids,
        brands=brands,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
        sort_by=sort_by,
        sort_order=sort_order,
        specifications=_collect_specifications(request) or None,
    )
    return await service.search(search_request, page=page, size=size)


@router.get("/autocomplete", response_model=List[str])
async def autocomplete(
    prefix: str = Query("", max_length=100),
    limit: int = Query(10, le=50),
    service: CatalogSearchService = Depends(get_search_service),
):
    return await service.autocomplete(prefix, limit)


@router.get("/similar/{product_id}", response_model=List[ProductResult])
async def similar_products(
    product_id: int,
    limit: int = Query(10, ge=1, le=50),
    service: CatalogSearchService = Depends(get_search_service),
):
    return await service.more_like_this(product_id, limit)


@router.get("/by-spec", response_model=SearchResponse)
async def search_by_specification(
    attr: str = Query(..., min_length=1),
    value: str = Query(..., min_length=1),
    operator: Optional[SpecificationOperator] = None,
    page: int = Query(0, ge=0),
    size: int = Query(settings.SEARCH_DEFAULT_PAGE_SIZE, ge=1),
    service: CatalogSearchService = Depends(get_search_service),
):
    return await service.search_by_specification(attr, value, page=page, size=size, operator=operator)
