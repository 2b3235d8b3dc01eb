from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple, Union

from storefront.models.product_attribute import AttributeDataType


@dataclass(frozen=True)
class StringValue:
    text: str

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class NumericValue:
    number: Decimal

    def render(self) -> str:
        return format_decimal(self.number)


@dataclass(frozen=True)
class BoolValue:
    flag: bool

    def render(self) -> str:
        return "true" if self.flag else "false"


SpecValue = Union[StringValue, NumericValue, BoolValue]

_TRUE_TOKENS = {"true", "yes", "y", "1", "on"}
_FALSE_TOKENS = {"false", "no", "n", "0", "off"}
_NAME_SEPARATORS = re.compile(r"[\s\-]+")
_RANGE_SEPARATORS = ("..", ",")


def normalize_attribute_name(name: Any) -> str:
    """'  RAM Size ' -> 'ram_size'."""
    return _NAME_SEPARATORS.sub("_", str(name or "").strip().lower())


def format_decimal(value: Decimal) -> str:
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


def parse_decimal(raw: Any) -> Optional[Decimal]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        number = raw
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
    if not number.is_finite():
        return None
    return number


def parse_bool(raw: Any) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    text = str(raw if raw is not None else "").strip().lower()
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS:
        return False
    return None


def parse_range(raw: Any) -> Optional[Tuple[Decimal, Decimal]]:
    text = str(raw or "").strip()
    for separator in _RANGE_SEPARATORS:
        if separator not in text:
            continue
        low_raw, _, high_raw = text.partition(separator)
        low = parse_decimal(low_raw)
        high = parse_decimal(high_raw)
        if low is None or high is None:
            return None
        return (low, high) if low <= high else (high, low)
    return None


def coerce_value(raw: Any, data_type: Optional[AttributeDataType]) -> Optional[SpecValue]:
    """Coerce a raw filter or stored value to the attribute's declared type.

    Returns None when the value is empty or does not fit the type; callers
    decide whether that is an error (writes) or a non-match (filters).
    """
    if raw is None:
        return None
    if data_type == AttributeDataType.NUMERIC:
        number = parse_decimal(raw)
        return NumericValue(number) if number is not None else None
    if data_type == AttributeDataType.BOOLEAN:
        flag = parse_bool(raw)
        return BoolValue(flag) if flag is not None else None
    text = str(raw).strip()
    return StringValue(text) if text else None


def value_from_columns(
    value_string: Optional[str],
    value_numeric: Optional[Decimal],
    value_boolean: Optional[bool],
) -> Optional[SpecValue]:
    if value_string is not None:
        return StringValue(value_string)
    if value_numeric is not None:
        return NumericValue(Decimal(str(value_numeric)))
    if value_boolean is not None:
        return BoolValue(bool(value_boolean))
    return None


def value_to_columns(value: SpecValue) -> Dict[str, Any]:
    return {
        "value_string": value.text if isinstance(value, StringValue) else None,
        "value_numeric": value.number if isinstance(value, NumericValue) else None,
        "value_boolean": value.flag if isinstance(value, BoolValue) else None,
    }


def to_data_type(raw: Any) -> Optional[AttributeDataType]:
    try:
        return AttributeDataType(str(raw or "").strip().upper())
    except ValueError:
        return None
