from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InvalidSpecificationValueException
from storefront.models.product_attribute import AttributeDataType, AttributeDefinition, ProductSpecification
from storefront.schemas.product import ProductSpecificationSchema
from storefront.services.catalog.backends.sql import specification_to_schema
from storefront.services.catalog.values import (
    coerce_value,
    normalize_attribute_name,
    to_data_type,
    value_to_columns,
)


class EAVService:
    """Helpers for reading and writing typed product specifications."""

    @staticmethod
    def _default_display_name(name: str) -> str:
        return name.replace("_", " ").title()

    @staticmethod
    def _infer_data_type(value: Any) -> AttributeDataType:
        if isinstance(value, bool):
            return AttributeDataType.BOOLEAN
        if isinstance(value, (int, float, Decimal)):
            return AttributeDataType.NUMERIC
        return AttributeDataType.STRING

    @staticmethod
    def _is_empty(value: Any) -> bool:
        return value is None or (isinstance(value, str) and value.strip() == "")

    async def get_definitions_by_name(
        self,
        db: AsyncSession,
        names: Sequence[str],
    ) -> Dict[str, AttributeDefinition]:
        cleaned = [normalize_attribute_name(n) for n in names if normalize_attribute_name(n)]
        if not cleaned:
            return {}
        stmt = select(AttributeDefinition).where(AttributeDefinition.name.in_(cleaned))
        result = await db.execute(stmt)
        rows = result.scalars().all()
        return {row.name: row for row in rows}

    async def ensure_definitions(
        self,
        db: AsyncSession,
        names: Iterable[str],
        *,
        display_names: Optional[Mapping[str, str]] = None,
        data_types: Optional[Mapping[str, AttributeDataType]] = None,
    ) -> Dict[str, AttributeDefinition]:
        normalized = list(dict.fromkeys(normalize_attribute_name(n) for n in names if normalize_attribute_name(n)))
        existing = await self.get_definitions_by_name(db, normalized)
        missing = [n for n in normalized if n not in existing]
        if missing:
            for name in missing:
                display_name = (display_names or {}).get(name) or self._default_display_name(name)
                data_type = (data_types or {}).get(name) or AttributeDataType.STRING
                db.add(
                    AttributeDefinition(
                        name=name,
                        display_name=display_name,
                        data_type=AttributeDataType(data_type).value,
                    )
                )
            await db.flush()
            existing = await self.get_definitions_by_name(db, normalized)
        return existing

    async def replace_product_specifications(
        self,
        db: AsyncSession,
        *,
        product_id: int,
        values: Mapping[str, Any],
        display_names: Optional[Mapping[str, str]] = None,
    ) -> List[ProductSpecification]:
        """Replace every specification row of a product; empty values are dropped.

        Unknown attribute names get a definition typed from the Python value.
        Raises InvalidSpecificationValueException when a value does not fit
        its attribute's declared type.
        """
        provided: Dict[str, Any] = {}
        for raw_name, raw_value in (values or {}).items():
            name = normalize_attribute_name(raw_name)
            if name and not self._is_empty(raw_value):
                provided[name] = raw_value

        definitions = await self.ensure_definitions(
            db,
            provided.keys(),
            display_names=display_names,
            data_types={name: self._infer_data_type(raw) for name, raw in provided.items()},
        )

        rows: List[ProductSpecification] = []
        for name, raw_value in provided.items():
            definition = definitions[name]
            data_type = to_data_type(definition.data_type) or AttributeDataType.STRING
            value = coerce_value(raw_value, data_type)
            if value is None:
                raise InvalidSpecificationValueException(name, raw_value, data_type.value)
            rows.append(
                ProductSpecification(
                    product_id=product_id,
                    attribute_id=definition.id,
                    **value_to_columns(value),
                )
            )

        await db.execute(delete(ProductSpecification).where(ProductSpecification.product_id == product_id))
        if rows:
            db.add_all(rows)
        await db.flush()
        return rows

    async def get_product_specifications(
        self,
        db: AsyncSession,
        product_ids: Sequence[int],
    ) -> Dict[int, List[ProductSpecificationSchema]]:
        if not product_ids:
            return {}
        stmt = (
            select(ProductSpecification, AttributeDefinition)
            .join(AttributeDefinition, ProductSpecification.attribute_id == AttributeDefinition.id)
            .where(ProductSpecification.product_id.in_(list(product_ids)))
            .order_by(AttributeDefinition.sort_order, AttributeDefinition.name)
        )
        result = await db.execute(stmt)
        payload: Dict[int, List[ProductSpecificationSchema]] = {}
        for spec, definition in result.all():
            payload.setdefault(spec.product_id, []).append(specification_to_schema(spec, definition))
        return payload


eav_service = EAVService()
