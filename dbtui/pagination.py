"""Page math over already-materialized query results."""

from __future__ import annotations

from .models import QueryResult

DEFAULT_PAGE_SIZE = 50


def page_slice(result: QueryResult, page: int, page_size: int = DEFAULT_PAGE_SIZE) -> tuple[tuple[str, ...], ...]:
    """Return the rows shown on ``page`` (zero-based); empty past the end."""

    if page < 0 or page_size <= 0:
        return ()
    start = page * page_size
    if start >= len(result.rows):
        return ()
    return result.rows[start : min(start + page_size, len(result.rows))]


def total_pages(result: QueryResult, page_size: int = DEFAULT_PAGE_SIZE) -> int:
    """Number of pages implied by the true row total, not the capped fetch."""

    if page_size <= 0:
        return 0
    total = result.total_count if result.total_count is not None else len(result.rows)
    if total <= 0:
        return 0
    return (total + page_size - 1) // page_size


__all__ = ["DEFAULT_PAGE_SIZE", "page_slice", "total_pages"]
