"""
Test suite for stock reservation.

Tests cover all-or-nothing reservation with compensation, merging of lines
naming the same item, untracked items and best-effort release.
"""

import uuid
from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from src.services.orders.errors import InsufficientStockError
from src.services.orders.inventory import InventoryAdjuster


@dataclass
class Line:
    menu_item_id: uuid.UUID
    quantity: int


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def repository() -> MagicMock:
    repository = MagicMock()
    repository.get = AsyncMock()
    repository.decrement_stock_if_available = AsyncMock(return_value=True)
    repository.increment_stock = AsyncMock()
    return repository


@pytest.fixture
def adjuster(repository) -> InventoryAdjuster:
    return InventoryAdjuster(repository)


def _serve(repository, *items):
    catalog = {item.id: item for item in items}
    repository.get.side_effect = lambda menu_item_id: catalog.get(menu_item_id)


# ============================================================================
# Reservation Tests
# ============================================================================


class TestReserve:
    """Stock reservation."""

    @pytest.mark.asyncio
    async def test_reserves_every_tracked_line(self, adjuster, repository, make_menu_item):
        pho = make_menu_item(stock=10)
        tea = make_menu_item(stock=5)
        _serve(repository, pho, tea)

        await adjuster.reserve([Line(pho.id, 2), Line(tea.id, 1)])

        repository.decrement_stock_if_available.assert_has_awaits(
            [call(pho.id, 2), call(tea.id, 1)]
        )
        repository.increment_stock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lines_of_same_item_are_merged(self, adjuster, repository, make_menu_item):
        pho = make_menu_item(stock=10)
        _serve(repository, pho)

        await adjuster.reserve([Line(pho.id, 2), Line(pho.id, 3)])

        repository.decrement_stock_if_available.assert_awaited_once_with(pho.id, 5)

    @pytest.mark.asyncio
    async def test_untracked_items_are_skipped(self, adjuster, repository, make_menu_item):
        untracked = make_menu_item(stock=None)
        _serve(repository, untracked)

        await adjuster.reserve([Line(untracked.id, 100)])

        repository.decrement_stock_if_available.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_restores_earlier_lines(self, adjuster, repository, make_menu_item):
        first = make_menu_item(name="First", stock=10)
        second = make_menu_item(name="Second", stock=10)
        third = make_menu_item(name="Third", stock=1)
        _serve(repository, first, second, third)
        repository.decrement_stock_if_available.side_effect = [True, True, False]

        with pytest.raises(InsufficientStockError) as exc_info:
            await adjuster.reserve(
                [Line(first.id, 1), Line(second.id, 2), Line(third.id, 5)]
            )

        assert exc_info.value.context["menu_item_id"] == third.id
        assert repository.increment_stock.await_args_list == [
            call(second.id, 2),
            call(first.id, 1),
        ]

    @pytest.mark.asyncio
    async def test_first_line_failure_restores_nothing(self, adjuster, repository, make_menu_item):
        item = make_menu_item(stock=0)
        _serve(repository, item)
        repository.decrement_stock_if_available.return_value = False

        with pytest.raises(InsufficientStockError):
            await adjuster.reserve([Line(item.id, 1)])

        repository.increment_stock.assert_not_awaited()


# ============================================================================
# Release Tests
# ============================================================================


class TestRelease:
    """Stock release on cancellation."""

    @pytest.mark.asyncio
    async def test_release_increments_merged_quantities(self, adjuster, repository):
        a, b = uuid.uuid4(), uuid.uuid4()

        await adjuster.release([Line(a, 1), Line(b, 2), Line(a, 3)])

        assert repository.increment_stock.await_args_list == [call(a, 4), call(b, 2)]

    @pytest.mark.asyncio
    async def test_release_continues_after_error(self, adjuster, repository):
        a, b = uuid.uuid4(), uuid.uuid4()
        repository.increment_stock.side_effect = [RuntimeError("boom"), None]

        await adjuster.release([Line(a, 1), Line(b, 1)])

        assert repository.increment_stock.await_count == 2
