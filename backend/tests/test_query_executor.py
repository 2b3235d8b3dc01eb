import asyncio

import pytest

from storefront.services.catalog.predicates import (
    FilterDimension,
    MembershipPredicate,
    PredicateSet,
    SortField,
    SortSpec,
    StockPredicate,
)
from storefront.services.catalog.query_executor import QueryExecutor

NAME_ASC = SortSpec(SortField.NAME, descending=False)


@pytest.mark.asyncio
async def test_count_and_page_come_from_the_same_predicates(memory_backend) -> None:
    executor = QueryExecutor(memory_backend)
    predicates = PredicateSet((MembershipPredicate(FilterDimension.BRAND, ("dell",)),))

    page = await executor.execute(predicates, NAME_ASC, page=0, size=10)

    assert page.total == len(page.items) == 2
    assert [item.id for item in page.items] == [4, 1]


@pytest.mark.asyncio
async def test_inactive_products_never_match(memory_backend) -> None:
    executor = QueryExecutor(memory_backend)

    page = await executor.execute(PredicateSet(), NAME_ASC, page=0, size=10)

    assert 3 not in {item.id for item in page.items}
    assert page.total == 4


@pytest.mark.asyncio
@pytest.mark.parametrize("parallel", [True, False])
async def test_pages_partition_the_result_set(memory_backend, parallel) -> None:
    executor = QueryExecutor(memory_backend, parallel=parallel)

    seen = []
    for page_number in range(3):
        page = await executor.execute(PredicateSet(), NAME_ASC, page=page_number, size=2)
        assert page.total == 4
        seen.extend(item.id for item in page.items)

    assert sorted(seen) == [1, 2, 4, 5]
    assert len(seen) == len(set(seen))


@pytest.mark.asyncio
async def test_page_past_the_end_is_empty_with_correct_total(memory_backend) -> None:
    executor = QueryExecutor(memory_backend)

    page = await executor.execute(PredicateSet(), NAME_ASC, page=7, size=2)

    assert page.items == []
    assert page.total == 4
    assert page.total_pages == 2


@pytest.mark.asyncio
async def test_page_size_and_number_are_clamped(memory_backend) -> None:
    executor = QueryExecutor(memory_backend, max_page_size=3)

    page = await executor.execute(PredicateSet(), NAME_ASC, page=-2, size=50)

    assert page.page == 0
    assert page.size == 3
    assert len(page.items) == 3


@pytest.mark.asyncio
async def test_sort_by_price_descending_with_id_tie_break(memory_backend) -> None:
    executor = QueryExecutor(memory_backend)
    sort = SortSpec(SortField.PRICE, descending=True)

    page = await executor.execute(PredicateSet((StockPredicate(),)), sort, page=0, size=10)

    assert [item.id for item in page.items] == [5, 1, 4]


@pytest.mark.asyncio
async def test_sort_newest_first(memory_backend) -> None:
    executor = QueryExecutor(memory_backend)

    page = await executor.execute(PredicateSet(), SortSpec(SortField.CREATED_AT, True), page=0, size=10)

    assert [item.id for item in page.items] == [5, 4, 2, 1]


class _FailingCountBackend:
    def __init__(self):
        self.page_finished = False

    async def count_matching(self, predicates):
        raise RuntimeError("count failed")

    async def fetch_page(self, predicates, sort, offset, limit):
        await asyncio.sleep(0.01)
        self.page_finished = True
        return []


@pytest.mark.asyncio
async def test_parallel_failure_is_raised_after_sibling_query_finishes() -> None:
    backend = _FailingCountBackend()

    with pytest.raises(RuntimeError, match="count failed"):
        await QueryExecutor(backend, parallel=True).execute(PredicateSet(), NAME_ASC, 0, 10)

    assert backend.page_finished is True
