from decimal import Decimal

import pytest
from sqlalchemy import select

from storefront.core.config import settings
from storefront.models.product import Product
from storefront.models.product_attribute import AttributeDataType
from storefront.schemas.search import SearchRequest, SortOption, SortOrder, SpecificationFilter, SpecificationOperator
from storefront.services.catalog.backends import SqlCatalogBackend
from storefront.services.catalog.facet_aggregator import PRICE_BUCKETS
from storefront.services.catalog.predicates import (
    FilterDimension,
    PredicateSet,
    SortField,
    SortSpec,
    SpecificationPredicate,
    TextPredicate,
)
from storefront.services.catalog.search_service import CatalogSearchService

from conftest import PRODUCTS

PARITY_REQUESTS = [
    SearchRequest(),
    SearchRequest(brands=["dell"], specifications={"ram_size": "16"}),
    SearchRequest(query="LAPTOP", in_stock=True),
    SearchRequest(min_price=Decimal("500"), max_price=Decimal("2000"), sort_by=SortOption.PRICE),
    SearchRequest(specifications={"processor": "intel", "touchscreen": "yes"}),
    SearchRequest(category_ids=[1], sort_by=SortOption.NEWEST, sort_order=SortOrder.ASC),
    SearchRequest(
        specification_filters=[
            SpecificationFilter(attribute_name="ram_size", value="8..16", operator=SpecificationOperator.RANGE),
        ]
    ),
    SearchRequest(specifications={"ram_size": "not-a-number"}),
]


async def _add_products(session_factory, *rows) -> None:
    base = {key: value for key, value in PRODUCTS[0].items() if key != "specs"}
    async with session_factory() as db:
        for fields in rows:
            db.add(Product(images=[], **{**base, "sku": f"LAP-{fields['id']}", **fields}))
        await db.commit()


@pytest.fixture
def sql_backend(seeded_session_factory) -> SqlCatalogBackend:
    return SqlCatalogBackend(seeded_session_factory)


@pytest.mark.asyncio
async def test_count_excludes_inactive_products(sql_backend) -> None:
    assert await sql_backend.count_matching(PredicateSet()) == 4


@pytest.mark.asyncio
async def test_text_search_escapes_like_wildcards(sql_backend) -> None:
    assert await sql_backend.count_matching(PredicateSet((TextPredicate("%"),))) == 0
    assert await sql_backend.count_matching(PredicateSet((TextPredicate("xps"),))) == 1


@pytest.mark.asyncio
async def test_fetch_page_orders_and_joins_category(sql_backend) -> None:
    items = await sql_backend.fetch_page(PredicateSet(), SortSpec(SortField.NAME), offset=0, limit=10)

    assert [item.id for item in items] == [2, 5, 4, 1]
    assert items[0].category_name == "Laptops"


@pytest.mark.asyncio
async def test_brand_grouping_is_case_insensitive(sql_backend) -> None:
    rows = await sql_backend.group_count(PredicateSet(), FilterDimension.BRAND)

    assert [(row.label, row.count) for row in rows] == [("Dell", 2), ("HP", 1), ("Lenovo", 1)]


@pytest.mark.asyncio
async def test_price_buckets_come_from_one_grouped_query(sql_backend) -> None:
    counts = await sql_backend.price_bucket_counts(PredicateSet(), PRICE_BUCKETS)

    assert counts == [0, 1, 1, 1, 1]


@pytest.mark.asyncio
async def test_attribute_types_and_filterable_attributes(sql_backend) -> None:
    types = await sql_backend.attribute_types(["ram_size", "touchscreen", "missing"])
    attributes = await sql_backend.filterable_attributes()

    assert types == {"ram_size": AttributeDataType.NUMERIC, "touchscreen": AttributeDataType.BOOLEAN}
    assert [a.name for a in attributes] == ["ram_size", "processor", "touchscreen"]


@pytest.mark.asyncio
async def test_specifications_of_many_groups_by_product(sql_backend) -> None:
    specs = await sql_backend.specifications_of_many([1, 4])

    assert set(specs) == {1}
    assert [s.attribute_name for s in specs[1]] == ["ram_size", "processor", "touchscreen", "internal_code"]
    assert specs[1][0].value_numeric == Decimal("16")


@pytest.mark.asyncio
async def test_get_product_returns_none_for_unknown_id(sql_backend) -> None:
    assert await sql_backend.get_product(999) is None
    product = await sql_backend.get_product(3)
    assert product is not None and product.is_active is False


@pytest.mark.asyncio
async def test_cross_row_specification_and(sql_backend) -> None:
    service = CatalogSearchService(sql_backend)

    response = await service.search(SearchRequest(specifications={"ram_size": "16", "processor": "i7"}))

    assert [p.id for p in response.products.content] == [1]


@pytest.mark.asyncio
@pytest.mark.parametrize("request_index", range(len(PARITY_REQUESTS)))
async def test_sql_backend_matches_in_memory_backend(sql_backend, memory_backend, request_index) -> None:
    request = PARITY_REQUESTS[request_index]

    from_sql = await CatalogSearchService(sql_backend).search(request, page=0, size=10)
    from_memory = await CatalogSearchService(memory_backend).search(request, page=0, size=10)

    assert [p.id for p in from_sql.products.content] == [p.id for p in from_memory.products.content]
    assert from_sql.products.total_elements == from_memory.products.total_elements
    assert from_sql.facets.model_dump() == from_memory.facets.model_dump()


@pytest.mark.asyncio
async def test_sql_autocomplete_and_similar(sql_backend) -> None:
    service = CatalogSearchService(sql_backend)

    assert await service.autocomplete("De", 10) == ["Dell"]
    assert [p.id for p in await service.more_like_this(1, 10)] == [5, 2]


@pytest.mark.asyncio
async def test_brand_bucket_with_padded_stored_brand_selects_its_products(seeded_session_factory) -> None:
    await _add_products(seeded_session_factory, {"id": 6, "name": "Aspire 5", "brand": " Acer "})
    service = CatalogSearchService(SqlCatalogBackend(seeded_session_factory))

    unfiltered = await service.search(SearchRequest())
    acer = next(b for b in unfiltered.facets.brands if b.brand.strip() == "Acer")
    selected = await service.search(SearchRequest(brands=[acer.brand]))

    assert acer.count == 1
    assert [p.id for p in selected.products.content] == [6]


@pytest.mark.asyncio
async def test_sql_autocomplete_skips_products_matching_only_by_description(
    seeded_session_factory, monkeypatch
) -> None:
    monkeypatch.setattr(settings, "SEARCH_AUTOCOMPLETE_CANDIDATE_MULTIPLIER", 1)
    await _add_products(
        seeded_session_factory,
        {"id": 6, "name": "Alpha", "brand": "Acme", "description": "Desk-friendly"},
        {"id": 7, "name": "Beta", "brand": "Acme", "description": "Desktop replacement"},
        {"id": 8, "name": "Zed Desk", "brand": "Acme", "description": "Standing"},
    )
    service = CatalogSearchService(SqlCatalogBackend(seeded_session_factory))

    assert await service.autocomplete("desk", 1) == ["Zed Desk"]


def test_specification_condition_compares_attribute_name_column_directly() -> None:
    predicate = SpecificationPredicate(
        attribute_name="ram_size",
        operator=SpecificationOperator.RANGE,
        raw_value="8..16",
        data_type=AttributeDataType.NUMERIC,
        bounds=(Decimal("8"), Decimal("16")),
    )

    rendered = str(select(Product.id).where(SqlCatalogBackend._specification_condition(predicate)))

    assert "lower(" not in rendered
    assert "attribute_definitions_1.name = " in rendered
