"""
Offset/limit pagination over sorted result lists.
"""

from typing import Sequence, TypeVar

from workspace_sandbox.exceptions import InvalidInputError

T = TypeVar("T")


def normalize_limit(limit: int, default: int, maximum: int, field: str = "limit") -> int:
    """
    Apply the default for a zero limit and reject out of range values.

    Raises:
        InvalidInputError: If ``limit`` is negative or above ``maximum``
    """
    if limit < 0:
        raise InvalidInputError(f"{field} must not be negative", field=field)
    if limit == 0:
        return default
    if limit > maximum:
        raise InvalidInputError(
            f"{field} {limit} exceeds maximum of {maximum}", field=field
        )
    return limit


def paginate(items: Sequence[T], offset: int, limit: int) -> tuple[list[T], int, bool]:
    """
    Slice a page out of ``items``.

    Args:
        items: Already sorted items
        offset: Index of the first item to return
        limit: Page size

    Returns:
        Tuple of (page, total_count, has_more)

    Raises:
        InvalidInputError: If ``offset`` is negative
    """
    if offset < 0:
        raise InvalidInputError("offset must not be negative", field="offset")
    total = len(items)
    if offset >= total:
        return [], total, False
    end = min(offset + limit, total)
    return list(items[offset:end]), total, end < total
