"""Shared pager for paginated remote list endpoints."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")

# Pages are numbered from 1 on the remote API
FIRST_PAGE = 1
DEFAULT_ITEMS_PER_PAGE = 500

# Hard stop against a remote that never reports an empty page
MAX_PAGES = 1000


@dataclass
class Page(Generic[T]):
    """One page of results plus the remote total count."""

    results: list[T] = field(default_factory=list)
    total_count: int = 0


class PagingError(Exception):
    """Raised when a paged listing does not terminate."""

    pass


async def list_all(fetch_page: Callable[[int], Awaitable[Page[T]]]) -> list[T]:
    """Drive a page fetcher to completion and flatten its results.

    Fetching stops on an empty page or once the collected count reaches the
    reported total. Errors from the fetcher propagate unchanged.

    Args:
        fetch_page: Coroutine function returning the page for a page number.

    Returns:
        All results in remote order.

    Raises:
        PagingError: If more than MAX_PAGES pages are returned.
    """
    results: list[T] = []
    page_num = FIRST_PAGE
    while True:
        if page_num - FIRST_PAGE >= MAX_PAGES:
            raise PagingError(f"listing did not terminate after {MAX_PAGES} pages")
        page = await fetch_page(page_num)
        results.extend(page.results)
        if not page.results or len(results) >= page.total_count:
            return results
        page_num += 1
