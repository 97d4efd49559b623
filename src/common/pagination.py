"""
Page walking for page/limit style APIs.

Holded list endpoints take ``page`` (1-based) and ``limit`` and return a
bare JSON array; a page shorter than ``limit`` is the last one.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class PaginationPolicy(str, Enum):
    """What to do when a page fetch fails mid-walk."""

    BEST_EFFORT = "best_effort"  # keep what was gathered, log the failure
    FAIL_FAST = "fail_fast"  # propagate the failure


PageFetcher = Callable[[int, int], list[Any]]


def fetch_all_pages(
    page_fetcher: PageFetcher,
    page_size: int,
    policy: PaginationPolicy | str = PaginationPolicy.BEST_EFFORT,
    max_pages: int | None = None,
    label: str = "items",
) -> list[Any]:
    """
    Call ``page_fetcher(page, page_size)`` from page 1 until the data runs out.

    The walk stops on an empty page or on a page with fewer than
    ``page_size`` items. With ``BEST_EFFORT`` a failing page ends the walk
    and the items gathered so far are returned, which may silently truncate
    the result; ``FAIL_FAST`` re-raises instead.

    Args:
        page_fetcher: Callable returning the items of one page
        page_size: Requested page size, also the end-of-data threshold
        policy: Failure policy
        max_pages: Optional safety bound on the number of pages
        label: Name used in log lines

    Returns:
        Flat list of all fetched items
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    policy = PaginationPolicy(policy)
    results: list[Any] = []
    page = 1

    while max_pages is None or page <= max_pages:
        try:
            items = page_fetcher(page, page_size)
        except Exception as e:
            if policy is PaginationPolicy.FAIL_FAST:
                logger.error(f"Error fetching {label} page {page}: {e}")
                raise
            logger.warning(
                f"Error fetching {label} page {page}, keeping {len(results)} items gathered so far: {e}"
            )
            break

        if not items:
            break

        results.extend(items)
        logger.debug(f"Retrieved {label} page {page} with {len(items)} items")

        if len(items) < page_size:
            break
        page += 1
    else:
        logger.warning(f"Stopped {label} walk at max_pages={max_pages}")

    logger.info(f"Retrieved total of {len(results)} {label}")
    return results
