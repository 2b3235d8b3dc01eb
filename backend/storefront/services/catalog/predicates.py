"""Typed filter predicates shared by the compiler, executor, aggregator and backends.

A search request compiles to an immutable ``PredicateSet``. Backends render each
predicate into their own query form; facet aggregation derives sub-sets with
``PredicateSet.excluding`` instead of editing query text.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from storefront.models.product_attribute import AttributeDataType
from storefront.schemas.search import SortOption, SortOrder, SpecificationOperator
from storefront.services.catalog.values import SpecValue


class FilterDimension(str, enum.Enum):
    TEXT = "text"
    CATEGORY = "category"
    BRAND = "brand"
    PRICE = "price"
    STOCK = "stock"
    SPECIFICATION = "specification"
    IDENTITY = "identity"


class _PredicateBase:
    @property
    def key(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class TextPredicate(_PredicateBase):
    # Lower-cased needle matched as a substring of name, brand and (unless disabled) description.
    needle: str
    include_description: bool = True
    dimension: FilterDimension = field(default=FilterDimension.TEXT, init=False)


@dataclass(frozen=True)
class MembershipPredicate(_PredicateBase):
    dimension: FilterDimension
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class RangePredicate(_PredicateBase):
    # Inclusive bounds over price; each side is optional.
    lower: Optional[Decimal] = None
    upper: Optional[Decimal] = None
    dimension: FilterDimension = field(default=FilterDimension.PRICE, init=False)


@dataclass(frozen=True)
class StockPredicate(_PredicateBase):
    dimension: FilterDimension = field(default=FilterDimension.STOCK, init=False)


@dataclass(frozen=True)
class ExcludeProductsPredicate(_PredicateBase):
    product_ids: Tuple[int, ...]
    dimension: FilterDimension = field(default=FilterDimension.IDENTITY, init=False)


@dataclass(frozen=True)
class SpecificationPredicate(_PredicateBase):
    """Existence check: the product has a spec row for ``attribute_name`` matching the rule."""

    attribute_name: str
    operator: SpecificationOperator
    raw_value: str
    data_type: Optional[AttributeDataType] = None
    value: Optional[SpecValue] = None
    bounds: Optional[Tuple[Decimal, Decimal]] = None
    dimension: FilterDimension = field(default=FilterDimension.SPECIFICATION, init=False)

    @property
    def key(self) -> Optional[str]:
        return self.attribute_name

    @property
    def matches_nothing(self) -> bool:
        return self.value is None and self.bounds is None


Predicate = Union[
    TextPredicate,
    MembershipPredicate,
    RangePredicate,
    StockPredicate,
    ExcludeProductsPredicate,
    SpecificationPredicate,
]


@dataclass(frozen=True)
class PredicateSet:
    predicates: Tuple[Predicate, ...] = ()

    def __iter__(self):
        return iter(self.predicates)

    @property
    def is_empty(self) -> bool:
        return not self.predicates

    def excluding(self, dimension: FilterDimension, key: Optional[str] = None) -> "PredicateSet":
        """Copy without the predicates of ``dimension`` (only ``key`` when given)."""
        return PredicateSet(
            tuple(
                p
                for p in self.predicates
                if not (p.dimension == dimension and (key is None or p.key == key))
            )
        )

    def with_predicates(self, *extra: Predicate) -> "PredicateSet":
        return PredicateSet(self.predicates + tuple(extra))

    def of_dimension(self, dimension: FilterDimension) -> Tuple[Predicate, ...]:
        return tuple(p for p in self.predicates if p.dimension == dimension)

    def has(self, dimension: FilterDimension, key: Optional[str] = None) -> bool:
        return any(
            p.dimension == dimension and (key is None or p.key == key)
            for p in self.predicates
        )

    def specification_keys(self) -> Tuple[str, ...]:
        keys: List[str] = []
        for p in self.of_dimension(FilterDimension.SPECIFICATION):
            if p.key not in keys:
                keys.append(p.key)
        return tuple(keys)

    def describe(self) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for p in self.predicates:
            counts[p.dimension.value] = counts.get(p.dimension.value, 0) + 1
        return counts


class SortField(str, enum.Enum):
    PRICE = "price"
    NAME = "name"
    CREATED_AT = "created_at"


@dataclass(frozen=True)
class SortSpec:
    """Primary sort key; backends always append ``id ASC`` as the tie-break."""

    field: SortField = SortField.NAME
    descending: bool = False


def resolve_sort(sort_by: SortOption, sort_order: SortOrder) -> SortSpec:
    # RELEVANCE has no ranking engine behind it and always means NAME ascending.
    if sort_by == SortOption.RELEVANCE:
        return SortSpec(SortField.NAME, descending=False)
    descending = sort_order == SortOrder.DESC
    if sort_by == SortOption.PRICE:
        return SortSpec(SortField.PRICE, descending)
    if sort_by == SortOption.NEWEST:
        return SortSpec(SortField.CREATED_AT, descending)
    return SortSpec(SortField.NAME, descending)
