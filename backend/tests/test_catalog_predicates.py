from decimal import Decimal

from storefront.schemas.search import SortOption, SortOrder, SpecificationOperator
from storefront.services.catalog.predicates import (
    FilterDimension,
    MembershipPredicate,
    PredicateSet,
    RangePredicate,
    SortField,
    SortSpec,
    SpecificationPredicate,
    TextPredicate,
    resolve_sort,
)
from storefront.services.catalog.values import StringValue


def _ram(value: str) -> SpecificationPredicate:
    return SpecificationPredicate("ram_size", SpecificationOperator.CONTAINS, value, value=StringValue(value))


def _predicates() -> PredicateSet:
    return PredicateSet(
        (
            TextPredicate("laptop"),
            MembershipPredicate(FilterDimension.BRAND, ("dell",)),
            RangePredicate(lower=Decimal("100")),
            RangePredicate(upper=Decimal("1000")),
            _ram("16"),
            SpecificationPredicate(
                "processor",
                SpecificationOperator.CONTAINS,
                "i7",
                value=StringValue("i7"),
            ),
        )
    )


def test_excluding_dimension_removes_every_predicate_of_it() -> None:
    reduced = _predicates().excluding(FilterDimension.PRICE)

    assert not reduced.has(FilterDimension.PRICE)
    assert reduced.has(FilterDimension.BRAND)
    assert len(reduced.predicates) == 4


def test_excluding_specification_key_keeps_other_attributes() -> None:
    reduced = _predicates().excluding(FilterDimension.SPECIFICATION, "ram_size")

    assert reduced.specification_keys() == ("processor",)
    assert reduced.has(FilterDimension.TEXT)


def test_excluding_returns_new_set_without_touching_original() -> None:
    original = _predicates()
    original.excluding(FilterDimension.BRAND)

    assert original.has(FilterDimension.BRAND)


def test_describe_counts_predicates_per_dimension() -> None:
    assert _predicates().describe() == {
        "text": 1,
        "brand": 1,
        "price": 2,
        "specification": 2,
    }


def test_uncoercible_specification_matches_nothing() -> None:
    predicate = SpecificationPredicate("ram_size", SpecificationOperator.EQUALS, "lots")
    assert predicate.matches_nothing


def test_relevance_always_sorts_by_name_ascending() -> None:
    assert resolve_sort(SortOption.RELEVANCE, SortOrder.DESC) == SortSpec(SortField.NAME, False)
    assert resolve_sort(SortOption.RELEVANCE, SortOrder.ASC) == SortSpec(SortField.NAME, False)


def test_explicit_sort_honours_order() -> None:
    assert resolve_sort(SortOption.PRICE, SortOrder.DESC) == SortSpec(SortField.PRICE, True)
    assert resolve_sort(SortOption.NEWEST, SortOrder.ASC) == SortSpec(SortField.CREATED_AT, False)
    assert resolve_sort(SortOption.NAME, SortOrder.DESC) == SortSpec(SortField.NAME, True)
