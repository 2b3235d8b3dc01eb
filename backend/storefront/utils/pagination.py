import math
from typing import Any, Dict, Tuple


def compute_total_pages(total_items: int, page_size: int) -> int:
    safe_total = max(0, int(total_items))
    safe_page_size = max(1, int(page_size))
    return math.ceil(safe_total / safe_page_size)


def clamp_page_size(page_size: int, max_page_size: int) -> int:
    return max(1, min(int(page_size), max(1, int(max_page_size))))


def normalize_pagination(page: int, page_size: int, max_page_size: int) -> Tuple[int, int, int]:
    """0-indexed page and clamped size -> (page, size, offset). Pages past the end are kept."""
    safe_size = clamp_page_size(page_size, max_page_size)
    safe_page = max(0, int(page))
    return safe_page, safe_size, safe_page * safe_size


def page_fields(page: int, size: int, total_items: int) -> Dict[str, Any]:
    """Page metadata for a PageResponse; a page past the end is reported as last."""
    total_pages = compute_total_pages(total_items, size)
    return {
        "number": page,
        "size": size,
        "total_elements": total_items,
        "total_pages": total_pages,
        "first": page == 0,
        "last": page >= total_pages - 1,
    }
