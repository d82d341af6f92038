"""
Pagination helpers for tool providers.

Large result sets (alerts, silences, alert groups) are returned to the model in
bounded windows so a single tool result cannot blow the context budget. The
model walks the full set by repeating the call with a larger offset.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from mcp_chat.errors import InvalidCount, InvalidOffset

T = TypeVar("T")


class PaginationResult(BaseModel):
    """Metadata describing one page of a result set."""

    total: int
    offset: int
    count: int
    requested_count: int
    has_more: bool


class PaginatedResponse(BaseModel):
    """A page of items plus its pagination metadata."""

    data: list[Any] = Field(default_factory=list)
    pagination: PaginationResult


def validate_pagination_params(count: int, offset: int, max_count: int) -> tuple[int, int]:
    """
    Validate pagination parameters.

    Args:
        count: Requested page size
        offset: Number of items to skip
        max_count: Largest page size the tool allows

    Returns:
        tuple: (count, offset) unchanged when valid

    Raises:
        InvalidCount: If count is below 1 or above max_count
        InvalidOffset: If offset is negative
    """
    if count < 1:
        raise InvalidCount(f"count parameter ({count}) must be at least 1")
    if count > max_count:
        raise InvalidCount(
            f"count parameter ({count}) exceeds maximum allowed value ({max_count}). "
            f"Please use count <= {max_count} and paginate through results "
            "using the offset parameter"
        )
    if offset < 0:
        raise InvalidOffset(f"offset parameter ({offset}) must be non-negative (>= 0)")
    return count, offset


def paginate_results(items: Sequence[T], count: int, offset: int) -> PaginatedResponse:
    """Slice items into one page and describe where that page sits."""
    total = len(items)

    if offset >= total:
        return PaginatedResponse(
            data=[],
            pagination=PaginationResult(
                total=total,
                offset=offset,
                count=0,
                requested_count=count,
                has_more=False,
            ),
        )

    end_index = min(offset + count, total)
    page = list(items[offset:end_index])

    return PaginatedResponse(
        data=page,
        pagination=PaginationResult(
            total=total,
            offset=offset,
            count=len(page),
            requested_count=count,
            has_more=offset + count < total,
        ),
    )
