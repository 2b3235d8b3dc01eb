from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Sequence

from storefront.models.product_attribute import AttributeDataType
from storefront.schemas.product import ProductSpecificationSchema
from storefront.schemas.search import ProductResult
from storefront.services.catalog.predicates import FilterDimension, PredicateSet, SortSpec
from storefront.services.catalog.values import SpecValue


@dataclass(frozen=True)
class FacetCount:
    key: Any
    label: str
    count: int


@dataclass(frozen=True)
class PriceBucket:
    lower: Decimal
    upper: Optional[Decimal]  # exclusive; None for the open-ended top bucket
    label: str

    def contains(self, price: Decimal) -> bool:
        if price < self.lower:
            return False
        return self.upper is None or price < self.upper


@dataclass(frozen=True)
class AttributeInfo:
    name: str
    display_name: str
    data_type: AttributeDataType
    unit: Optional[str] = None
    is_filterable: bool = True
    sort_order: int = 0
    id: Optional[int] = None


@dataclass(frozen=True)
class SpecificationCount:
    attribute_name: str
    value: SpecValue
    count: int


class CatalogSearchBackend(Protocol):
    """Read-only catalog access used by search. Every call is independent and idempotent."""

    async def count_matching(self, predicates: PredicateSet) -> int:
        ...

    async def fetch_page(
        self,
        predicates: PredicateSet,
        sort: SortSpec,
        offset: int,
        limit: int,
    ) -> List[ProductResult]:
        ...

    async def group_count(self, predicates: PredicateSet, dimension: FilterDimension) -> List[FacetCount]:
        ...

    async def price_bucket_counts(
        self,
        predicates: PredicateSet,
        buckets: Sequence[PriceBucket],
    ) -> List[int]:
        ...

    async def specification_value_counts(
        self,
        predicates: PredicateSet,
        attribute_names: Sequence[str],
    ) -> List[SpecificationCount]:
        ...

    async def filterable_attributes(self) -> List[AttributeInfo]:
        ...

    async def attribute_types(self, names: Sequence[str]) -> Dict[str, AttributeDataType]:
        ...

    async def get_product(self, product_id: int) -> Optional[ProductResult]:
        ...

    async def specifications_of(self, product_id: int) -> List[ProductSpecificationSchema]:
        ...

    async def specifications_of_many(
        self,
        product_ids: Sequence[int],
    ) -> Dict[int, List[ProductSpecificationSchema]]:
        ...
