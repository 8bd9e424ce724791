import math
from decimal import Decimal


def paginate(items, page, limit):
    """Slice an already sorted list; returns (page_items, pagination)."""
    total_count = len(items)
    total_pages = math.ceil(total_count / limit) if limit else 0
    start = (page - 1) * limit
    return items[start:start + limit], {
        'currentPage': page,
        'totalPages': total_pages,
        'totalCount': total_count,
        'limit': limit,
        'hasNextPage': page < total_pages,
        'hasPreviousPage': page > 1,
    }


def _sort_key(value):
    # missing values sort first, numbers compare numerically, everything else as text
    if value is None:
        return (0, 0.0, '')
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return (1, float(value), '')
    return (2, 0.0, str(value))


def sort_items(items, sort_by, sort_order):
    # internal ids are random, so 'id' orders by creation time instead
    field = 'createdAt' if sort_by == 'id' else sort_by
    return sorted(
        items,
        key=lambda it: _sort_key(it.get(field)),
        reverse=(sort_order == 'DESC'),
    )
