from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Tuple

from storefront.models.product_attribute import AttributeDataType
from storefront.schemas.search import SearchRequest, SpecificationOperator
from storefront.services.catalog.predicates import (
    FilterDimension,
    MembershipPredicate,
    Predicate,
    PredicateSet,
    RangePredicate,
    SpecificationPredicate,
    StockPredicate,
    TextPredicate,
)
from storefront.services.catalog.values import (
    NumericValue,
    StringValue,
    coerce_value,
    normalize_attribute_name,
    parse_decimal,
    parse_range,
)

_COMPARISON_OPERATORS = {
    SpecificationOperator.GREATER_THAN,
    SpecificationOperator.LESS_THAN,
    SpecificationOperator.RANGE,
}


class FilterCompiler:
    """Translate a SearchRequest into an immutable PredicateSet. Pure; no I/O."""

    @staticmethod
    def requested_attribute_names(request: SearchRequest) -> List[str]:
        names: List[str] = []
        for raw_name, _value, _operator in FilterCompiler._specification_items(request):
            name = normalize_attribute_name(raw_name)
            if name and name not in names:
                names.append(name)
        return names

    @staticmethod
    def _specification_items(
        request: SearchRequest,
    ) -> Iterable[Tuple[Any, Any, Optional[SpecificationOperator]]]:
        for name, value in (request.specifications or {}).items():
            yield name, value, None
        for item in request.specification_filters or []:
            yield item.attribute_name, item.value, item.operator

    @staticmethod
    def _dedupe_casefold(values: Iterable[Any]) -> Tuple[str, ...]:
        seen: set[str] = set()
        out: List[str] = []
        for value in values:
            text = str(value or "").strip().lower()
            if not text or text in seen:
                continue
            seen.add(text)
            out.append(text)
        return tuple(out)

    @staticmethod
    def _dedupe_ids(values: Iterable[Any]) -> Tuple[int, ...]:
        out: List[int] = []
        for value in values:
            if value is None:
                continue
            item = int(value)
            if item not in out:
                out.append(item)
        return tuple(out)

    @staticmethod
    def default_operator(data_type: Optional[AttributeDataType]) -> SpecificationOperator:
        if data_type in (AttributeDataType.NUMERIC, AttributeDataType.BOOLEAN):
            return SpecificationOperator.EQUALS
        return SpecificationOperator.CONTAINS

    @classmethod
    def compile_specification(
        cls,
        attribute_name: Any,
        raw_value: Any,
        operator: Optional[SpecificationOperator],
        data_type: Optional[AttributeDataType],
    ) -> Optional[SpecificationPredicate]:
        name = normalize_attribute_name(attribute_name)
        raw_text = str(raw_value if raw_value is not None else "").strip()
        if not name or not raw_text:
            return None
        op = operator or cls.default_operator(data_type)

        if op in _COMPARISON_OPERATORS:
            # Ordered comparisons only make sense on numeric attributes.
            numeric_ok = data_type in (AttributeDataType.NUMERIC, None)
            if op == SpecificationOperator.RANGE:
                bounds = parse_range(raw_text) if numeric_ok else None
                return SpecificationPredicate(name, op, raw_text, data_type, bounds=bounds)
            number = parse_decimal(raw_text) if numeric_ok else None
            value = NumericValue(number) if number is not None else None
            return SpecificationPredicate(name, op, raw_text, data_type, value=value)

        if data_type == AttributeDataType.BOOLEAN:
            op = SpecificationOperator.EQUALS
        if data_type == AttributeDataType.NUMERIC and op == SpecificationOperator.CONTAINS:
            return SpecificationPredicate(name, op, raw_text, data_type, value=StringValue(raw_text))
        if data_type is None:
            # Unknown attribute: generic text match; it finds no rows for names not in the schema.
            return SpecificationPredicate(name, op, raw_text, None, value=StringValue(raw_text))
        return SpecificationPredicate(name, op, raw_text, data_type, value=coerce_value(raw_text, data_type))

    def compile(
        self,
        request: SearchRequest,
        attribute_types: Optional[Mapping[str, AttributeDataType]] = None,
    ) -> PredicateSet:
        types = {normalize_attribute_name(k): v for k, v in (attribute_types or {}).items()}
        predicates: List[Predicate] = []

        query = (request.query or "").strip()
        if query:
            predicates.append(TextPredicate(query.lower()))

        category_ids = self._dedupe_ids(request.category_ids or [])
        if category_ids:
            predicates.append(MembershipPredicate(FilterDimension.CATEGORY, category_ids))

        brands = self._dedupe_casefold(request.brands or [])
        if brands:
            predicates.append(MembershipPredicate(FilterDimension.BRAND, brands))

        if request.min_price is not None:
            predicates.append(RangePredicate(lower=request.min_price))
        if request.max_price is not None:
            predicates.append(RangePredicate(upper=request.max_price))

        if request.in_stock:
            predicates.append(StockPredicate())

        for raw_name, raw_value, operator in self._specification_items(request):
            name = normalize_attribute_name(raw_name)
            predicate = self.compile_specification(name, raw_value, operator, types.get(name))
            if predicate is not None and predicate not in predicates:
                predicates.append(predicate)

        return PredicateSet(tuple(predicates))


filter_compiler = FilterCompiler()
