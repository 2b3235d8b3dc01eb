from typing import List

from fastapi import APIRouter, Depends, Query, status

from storefront.core.config import settings
from storefront.dependencies import get_product_service
from storefront.schemas.product import ProductCreate, ProductDetail, ProductSpecificationSchema, ProductUpdate
from storefront.schemas.search import PageResponse, ProductResult
from storefront.services.product_service import ProductService

router = APIRouter()


@router.get("", response_model=PageResponse[ProductResult])
async def list_products(
    page: int = Query(0, ge=0),
    size: int = Query(settings.SEARCH_DEFAULT_PAGE_SIZE, ge=1),
    service: ProductService = Depends(get_product_service),
):
    return await service.list_products(page, size)


@router.get("/category/{category_id}", response_model=PageResponse[ProductResult])
async def list_products_by_category(
    category_id: int,
    page: int = Query(0, ge=0),
    size: int = Query(settings.SEARCH_DEFAULT_PAGE_SIZE, ge=1),
    service: ProductService = Depends(get_product_service),
):
    return await service.list_products_by_category(category_id, page, size)


@router.get("/{product_id}", response_model=ProductDetail)
async def get_product(product_id: int, service: ProductService = Depends(get_product_service)):
    return await service.get_product_detail(product_id)


@router.get("/{product_id}/specifications", response_model=List[ProductSpecificationSchema])
async def get_product_specifications(product_id: int, service: ProductService = Depends(get_product_service)):
    return await service.get_product_specifications(product_id)


@router.post("", response_model=ProductDetail, status_code=status.HTTP_201_CREATED)
async def create_product(product_in: ProductCreate, service: ProductService = Depends(get_product_service)):
    return await service.create_product(product_in)


@router.put("/{product_id}", response_model=ProductDetail)
async def update_product(
    product_id: int,
    product_in: ProductUpdate,
    service: ProductService = Depends(get_product_service),
):
    return await service.update_product(product_id, product_in)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_product(product_id: int, service: ProductService = Depends(get_product_service)):
    """Soft delete: the product stays in the catalog but leaves search results."""
    await service.deactivate_product(product_id)
