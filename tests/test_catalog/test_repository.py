"""
Test suite for the catalog repositories.

The session is mocked, so these tests inspect the SQL each method issues:
the conditional stock decrement, the rating aggregate update, the voucher
validity window and the usage count that ignores cancelled orders.
"""

import re
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession

from src.services.catalog.repository import (
    MenuItemRepository,
    PaymentMethodRepository,
    VoucherRepository,
)
from src.services.orders.enums import OrderStatus


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def session() -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.execute = AsyncMock(return_value=_result(None))
    session.get = AsyncMock(return_value=None)
    return session


def _result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    return result


def _compiled(session: AsyncMock):
    stmt = session.execute.await_args.args[0]
    compiled = stmt.compile(dialect=postgresql.dialect())
    return str(compiled), compiled.params


def _bound(sql: str, params: dict, pattern: str):
    """Value bound to the ``BIND`` placeholder of ``pattern``."""
    match = re.search(pattern.replace("BIND", r"%\((\w+)\)s"), sql)
    assert match is not None, f"{pattern!r} not found in {sql}"
    return params[match.group(1)]


# ============================================================================
# Stock Tests
# ============================================================================


class TestStock:
    """Atomic stock adjustment."""

    @pytest.mark.asyncio
    async def test_decrement_is_conditional_on_remaining_stock(self, session):
        session.execute.return_value = _result(7)
        menu_item_id = uuid.uuid4()

        applied = await MenuItemRepository(session).decrement_stock_if_available(menu_item_id, 3)

        sql, params = _compiled(session)
        assert applied is True
        assert sql.startswith("UPDATE menu_items SET")
        assert "menu_items.stock IS NOT NULL" in sql
        assert _bound(sql, params, r"menu_items\.stock >= BIND") == 3
        assert _bound(sql, params, r"stock=\(?menu_items\.stock - BIND") == 3
        assert "RETURNING menu_items.stock" in sql

    @pytest.mark.asyncio
    async def test_decrement_without_matching_row_is_refused(self, session):
        applied = await MenuItemRepository(session).decrement_stock_if_available(uuid.uuid4(), 50)

        assert applied is False

    @pytest.mark.asyncio
    async def test_increment_skips_untracked_stock(self, session):
        await MenuItemRepository(session).increment_stock(uuid.uuid4(), 2)

        sql, params = _compiled(session)
        assert "menu_items.stock IS NOT NULL" in sql
        assert _bound(sql, params, r"stock=\(?menu_items\.stock \+ BIND") == 2


# ============================================================================
# Rating Aggregate Tests
# ============================================================================


class TestApplyRating:
    """Running rating sum, count and star."""

    @pytest.mark.asyncio
    async def test_folds_rating_into_sum_count_and_star(self, session):
        session.execute.return_value = _result(4)

        star = await MenuItemRepository(session).apply_rating(uuid.uuid4(), 4)

        sql, params = _compiled(session)
        assert star == 4
        assert _bound(sql, params, r"rating_sum=\(?menu_items\.rating_sum \+ BIND") == 4
        assert _bound(sql, params, r"rating_count=\(?menu_items\.rating_count \+ BIND") == 1
        assert _bound(sql, params, r"CAST\(\(?menu_items\.rating_sum \+ BIND") == 4
        assert _bound(sql, params, r"/ \(?menu_items\.rating_count \+ BIND") == 1
        assert "round(" in sql
        assert "RETURNING menu_items.star" in sql

    @pytest.mark.asyncio
    async def test_missing_item_returns_none(self, session):
        assert await MenuItemRepository(session).apply_rating(uuid.uuid4(), 5) is None


# ============================================================================
# Voucher Tests
# ============================================================================


class TestVouchers:
    """Voucher lookup and usage."""

    @pytest.mark.asyncio
    async def test_active_lookup_requires_now_inside_window(self, session, now, make_voucher):
        voucher = make_voucher()
        session.execute.return_value = _result(voucher)

        found = await VoucherRepository(session).find_active_by_code("SAVE10", now)

        sql, params = _compiled(session)
        assert found is voucher
        assert _bound(sql, params, r"vouchers\.code = BIND") == "SAVE10"
        assert _bound(sql, params, r'vouchers\."?start"? <= BIND') == now
        assert _bound(sql, params, r'vouchers\."?end"? >= BIND') == now

    @pytest.mark.asyncio
    async def test_usage_count_ignores_cancelled_orders(self, session):
        session.execute.return_value = _result(4)
        voucher_id = uuid.uuid4()

        used = await VoucherRepository(session).count_active_usage(voucher_id)

        sql, params = _compiled(session)
        assert used == 4
        assert sql.startswith("SELECT count(orders.id)")
        assert _bound(sql, params, r"orders\.voucher_id = BIND") == voucher_id
        assert _bound(sql, params, r"orders\.status != BIND") == OrderStatus.CANCELLED


class TestPaymentMethods:
    """Payment method lookup."""

    @pytest.mark.asyncio
    async def test_get_by_id(self, session, make_payment_method):
        method = make_payment_method()
        session.get.return_value = method

        assert await PaymentMethodRepository(session).get(method.id) is method
