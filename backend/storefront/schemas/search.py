import enum
from datetime import datetime
from decimal import Decimal
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class SortOption(str, enum.Enum):
    RELEVANCE = "RELEVANCE"
    PRICE = "PRICE"
    NAME = "NAME"
    NEWEST = "NEWEST"


class SortOrder(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"


class SpecificationOperator(str, enum.Enum):
    EQUALS = "EQUALS"  # RAM = 16
    CONTAINS = "CONTAINS"  # CPU contains "Intel"
    GREATER_THAN = "GREATER_THAN"  # Storage > 512
    LESS_THAN = "LESS_THAN"  # Weight < 2
    RANGE = "RANGE"  # RAM between 8 and 32, written "8..32"


class SpecificationFilter(BaseModel):
    attribute_name: str
    value: str
    # None means the default rule for the attribute's data type.
    operator: Optional[SpecificationOperator] = None


class SearchRequest(BaseModel):
    """Filters for product search. Empty/absent fields apply no filter."""
    query: Optional[str] = None
    category_ids: Optional[List[int]] = None
    brands: Optional[List[str]] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    in_stock: Optional[bool] = None
    sort_by: SortOption = SortOption.RELEVANCE
    sort_order: SortOrder = SortOrder.DESC
    # e.g. {"ram_size": "16", "processor": "Intel Core i7"}
    specifications: Optional[Dict[str, str]] = None
    specification_filters: Optional[List[SpecificationFilter]] = None


class ProductResult(BaseModel):
    """Flattened product view returned by search."""
    id: int
    category_id: int
    category_name: Optional[str] = None
    name: str
    description: Optional[str] = None
    sku: str
    price: Decimal
    discount_price: Optional[Decimal] = None
    stock_quantity: int = 0
    brand: Optional[str] = None
    model: Optional[str] = None
    images: List[str] = []
    is_active: bool = True
    created_at: Optional[datetime] = None


class PageResponse(BaseModel, Generic[T]):
    content: List[T]
    number: int
    size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool


class CategoryFacet(BaseModel):
    category_id: int
    category_name: str
    count: int


class BrandFacet(BaseModel):
    brand: str
    count: int


class PriceRangeFacet(BaseModel):
    min: Decimal
    max: Optional[Decimal] = None  # open-ended top bucket
    label: str
    count: int


class SpecificationValue(BaseModel):
    value: str
    count: int


class SpecificationFacet(BaseModel):
    attribute_name: str
    attribute_display_name: str
    unit: Optional[str] = None
    values: List[SpecificationValue]


class SearchFacets(BaseModel):
    categories: List[CategoryFacet] = Field(default_factory=list)
    brands: List[BrandFacet] = Field(default_factory=list)
    price_ranges: List[PriceRangeFacet] = Field(default_factory=list)
    specifications: List[SpecificationFacet] = Field(default_factory=list)


class SearchResponse(BaseModel):
    products: PageResponse[ProductResult]
    facets: SearchFacets
