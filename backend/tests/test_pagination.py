import pytest

from storefront.utils.pagination import compute_total_pages, normalize_pagination, page_fields


@pytest.mark.parametrize(
    "total,size,expected",
    [(0, 20, 0), (1, 20, 1), (20, 20, 1), (21, 20, 2), (5, 0, 5)],
)
def test_compute_total_pages(total, size, expected) -> None:
    assert compute_total_pages(total, size) == expected


def test_normalize_pagination_is_zero_indexed_and_clamped() -> None:
    assert normalize_pagination(page=2, page_size=10, max_page_size=100) == (2, 10, 20)
    assert normalize_pagination(page=-1, page_size=0, max_page_size=100) == (0, 1, 0)
    assert normalize_pagination(page=1, page_size=500, max_page_size=100) == (1, 100, 100)


def test_normalize_pagination_keeps_pages_past_the_end() -> None:
    assert normalize_pagination(page=50, page_size=10, max_page_size=100) == (50, 10, 500)


def test_page_fields_flags() -> None:
    only = page_fields(page=0, size=10, total_items=1)
    empty = page_fields(page=0, size=10, total_items=0)
    beyond = page_fields(page=4, size=10, total_items=15)

    assert only["first"] and only["last"] and only["total_pages"] == 1
    assert empty["first"] and empty["last"] and empty["total_pages"] == 0
    assert not beyond["first"] and beyond["last"] and beyond["total_elements"] == 15
