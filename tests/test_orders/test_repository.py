"""
Test suite for OrderRepository.

Tests cover the owner lookup behind order id allocation, duplicate insert
handling inside a savepoint, gateway transaction correlation and the
conditional review write.
"""

import re
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models.order import PaymentTransaction
from src.services.orders.errors import DuplicateOrderError
from src.services.orders.repository import OrderRepository


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def session() -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.execute = AsyncMock(return_value=_result(None))
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock(return_value=_Savepoint())
    return session


@pytest.fixture
def repository(session) -> OrderRepository:
    return OrderRepository(session)


class _Savepoint:
    """Async context manager standing in for ``begin_nested()``."""

    def __init__(self):
        self.rolled_back = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.rolled_back = exc_type is not None
        return False


def _result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _sql(session: AsyncMock) -> str:
    stmt = session.execute.await_args.args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


# ============================================================================
# Order Id Tests
# ============================================================================


class TestOrderIds:
    """External order id lookups and inserts."""

    @pytest.mark.asyncio
    async def test_find_owner(self, repository, session):
        owner_id = uuid.uuid4()
        session.execute.return_value = _result(owner_id)

        assert await repository.find_owner("J20250101093015") == owner_id
        sql = _sql(session)
        assert sql.startswith("SELECT orders.user_id")
        assert re.search(r"orders\.order_id = %\(\w+\)s", sql)

    @pytest.mark.asyncio
    async def test_add_flushes_inside_savepoint(self, repository, session, user, make_order):
        order = make_order(user)

        await repository.add(order)

        session.begin_nested.assert_called_once()
        session.add.assert_called_once_with(order)
        session.flush.assert_awaited_once()
        session.refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_insert_rolls_back_savepoint(self, repository, session, user, make_order):
        order = make_order(user)
        savepoint = _Savepoint()
        session.begin_nested.return_value = savepoint
        session.flush.side_effect = IntegrityError("INSERT", {}, Exception("uq_orders_order_id"))

        with pytest.raises(DuplicateOrderError) as exc_info:
            await repository.add(order)

        assert savepoint.rolled_back
        assert exc_info.value.context["order_id"] == order.order_id
        session.refresh.assert_not_awaited()


# ============================================================================
# Gateway Transaction Tests
# ============================================================================


class TestTransactions:
    """Gateway transactions recorded per order."""

    @pytest.mark.asyncio
    async def test_lookup_goes_through_every_issued_transaction(self, repository, session):
        await repository.get_by_app_trans_id("250101_000001")

        sql = _sql(session)
        assert "JOIN payment_transactions ON payment_transactions.order_pk = orders.id" in sql
        assert re.search(r"payment_transactions\.app_trans_id = %\(\w+\)s", sql)

    @pytest.mark.asyncio
    async def test_add_transaction(self, repository, session, user, make_order):
        order = make_order(user)

        transaction = await repository.add_transaction(
            order, "250101_000001", 130000, "https://pay.test/order/abc"
        )

        assert isinstance(transaction, PaymentTransaction)
        assert transaction.order_pk == order.id
        assert transaction.app_trans_id == "250101_000001"
        assert transaction.amount == 130000
        session.add.assert_called_once_with(transaction)
        session.flush.assert_awaited_once()


# ============================================================================
# Review Tests
# ============================================================================


class TestRecordReview:
    """Conditional review write."""

    @pytest.mark.asyncio
    async def test_stores_review_on_unrated_line(self, repository, session, user, make_order, now):
        order = make_order(user)
        line = order.items[0]
        session.execute.return_value = _result(line.id)

        stored = await repository.record_review(line, 5, "Great broth", now)

        sql = _sql(session)
        assert stored is True
        assert sql.startswith("UPDATE order_items SET")
        assert "order_items.rating IS NULL" in sql
        assert "RETURNING order_items.id" in sql
        assert line.rating == 5
        assert line.comment == "Great broth"
        assert line.reviewed_at == now

    @pytest.mark.asyncio
    async def test_already_rated_line_is_left_alone(self, repository, session, user, make_order, now):
        order = make_order(user)
        line = order.items[0]

        stored = await repository.record_review(line, 1, None, now)

        assert stored is False
        assert line.rating is None
