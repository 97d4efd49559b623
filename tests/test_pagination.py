"""
Tests for the page walker.
"""

from unittest.mock import Mock

import pytest

from src.adapters.holded import HoldedNetworkError
from src.common.pagination import PaginationPolicy, fetch_all_pages

PAGE_SIZE = 5


def paged(total, page_size=PAGE_SIZE):
    items = [{"id": f"p{i}"} for i in range(total)]

    def fetcher(page, limit):
        start = (page - 1) * limit
        return items[start : start + limit]

    return Mock(side_effect=fetcher)


class TestFetchAllPages:
    """Walk termination and result completeness."""

    @pytest.mark.parametrize(
        "total,expected_calls",
        [
            (0, 1),
            (1, 1),
            (PAGE_SIZE, 2),
            (PAGE_SIZE + 1, 2),
            (2 * PAGE_SIZE, 3),
        ],
    )
    def test_returns_every_item(self, total, expected_calls):
        fetcher = paged(total)

        results = fetch_all_pages(fetcher, PAGE_SIZE)

        assert len(results) == total
        assert len({item["id"] for item in results}) == total
        # A full last page needs one more (empty) request to detect the end
        assert fetcher.call_count == expected_calls

    def test_pages_are_one_based(self):
        fetcher = paged(PAGE_SIZE + 1)

        fetch_all_pages(fetcher, PAGE_SIZE)

        assert [call.args for call in fetcher.call_args_list] == [(1, PAGE_SIZE), (2, PAGE_SIZE)]

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            fetch_all_pages(paged(3), 0)

    def test_max_pages_bounds_the_walk(self, caplog):
        fetcher = paged(10 * PAGE_SIZE)

        results = fetch_all_pages(fetcher, PAGE_SIZE, max_pages=2)

        assert len(results) == 2 * PAGE_SIZE
        assert fetcher.call_count == 2
        assert "max_pages=2" in caplog.text


class TestFailurePolicies:
    """What happens when a page fails mid-walk."""

    @staticmethod
    def failing_on_page_two():
        def fetcher(page, limit):
            if page == 2:
                raise HoldedNetworkError("Request failed: timed out")
            return [{"id": f"{page}-{i}"} for i in range(limit)]

        return fetcher

    def test_best_effort_keeps_gathered_items(self, caplog):
        results = fetch_all_pages(
            self.failing_on_page_two(), PAGE_SIZE, policy=PaginationPolicy.BEST_EFFORT
        )

        assert len(results) == PAGE_SIZE
        assert "page 2" in caplog.text

    def test_fail_fast_reraises(self):
        with pytest.raises(HoldedNetworkError):
            fetch_all_pages(self.failing_on_page_two(), PAGE_SIZE, policy="fail_fast")

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            fetch_all_pages(paged(1), PAGE_SIZE, policy="sometimes")
