"""
Order data access repository.

This module implements the OrderRepository class providing async methods for
persisting orders with their line items and gateway transactions, looking
them up by external id or gateway correlation id, listing a customer's
orders and querying reviews.
Writes flush inside the request transaction; unique and version conflicts
are translated into domain errors here so services never see SQLAlchemy
exceptions for expected races.
"""

import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from src.core.logging import get_logger
from src.database.models.catalog import MenuItem
from src.database.models.order import Order, OrderItem, PaymentTransaction
from src.database.models.user import User
from src.services.orders.enums import OrderStatus
from src.services.orders.errors import (
    ConcurrentModificationError,
    DuplicateOrderError,
)

logger = get_logger(__name__)


class OrderRepository:
    """
    Repository for order data access operations.

    Order rows load their items, menu items, voucher, payment method and
    owner eagerly (``selectin``), so returned orders are safe to serialise
    after the session is closed.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def find_owner(self, order_id: str) -> Optional[uuid.UUID]:
        """Id of the user holding this external order id, or None if it is free."""
        stmt = select(Order.user_id).where(Order.order_id == order_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, order: Order) -> Order:
        """
        Persist a new order with its items.

        The insert runs in a savepoint so a lost race on the external id
        leaves the request transaction usable and the order transient.

        Args:
            order: Transient order with ``items`` populated

        Returns:
            The flushed order

        Raises:
            DuplicateOrderError: If the external order id is already taken
        """
        try:
            async with self.session.begin_nested():
                self.session.add(order)
                await self.session.flush()
        except IntegrityError as e:
            logger.warning(
                "Order insert rejected by unique constraint",
                order_id=order.order_id,
                error=str(e.orig) if e.orig is not None else str(e),
            )
            raise DuplicateOrderError(
                "An order was already submitted a moment ago, please wait "
                "before ordering again",
                order_id=order.order_id,
            ) from e

        await self.session.refresh(order, ["items", "voucher", "payment_method", "user"])

        logger.info(
            "Order persisted",
            order_id=order.order_id,
            item_count=len(order.items),
        )
        return order

    async def save(self, order: Order) -> Order:
        """
        Flush changes to an existing order.

        Raises:
            ConcurrentModificationError: If the row version changed since the
                order was loaded
        """
        try:
            await self.session.flush()
        except StaleDataError as e:
            logger.warning(
                "Order modified concurrently",
                order_id=order.order_id,
            )
            raise ConcurrentModificationError(
                "The order was modified by another request, please retry",
                order_id=order.order_id,
            ) from e
        return order

    async def record_review(
        self,
        line: OrderItem,
        rating: int,
        comment: Optional[str],
        reviewed_at: datetime,
    ) -> bool:
        """
        Store a review on an order line that has none yet.

        The write is a single ``UPDATE ... WHERE rating IS NULL``, so of two
        concurrent reviews of the same line exactly one is stored.

        Returns:
            True if the review was stored, False if the line already had one
        """
        stmt = (
            update(OrderItem)
            .where(OrderItem.id == line.id, OrderItem.rating.is_(None))
            .values(rating=rating, comment=comment, reviewed_at=reviewed_at)
            .returning(OrderItem.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is None:
            return False

        set_committed_value(line, "rating", rating)
        set_committed_value(line, "comment", comment)
        set_committed_value(line, "reviewed_at", reviewed_at)
        return True

    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        """
        Get order by its external identifier.

        Args:
            order_id: Externally visible order id

        Returns:
            Order if found, None otherwise
        """
        stmt = select(Order).where(Order.order_id == order_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_app_trans_id(self, app_trans_id: str) -> Optional[Order]:
        """
        Get the order a gateway transaction was opened for.

        Any transaction ever issued for the order matches, not only the
        latest one.
        """
        stmt = (
            select(Order)
            .join(PaymentTransaction, PaymentTransaction.order_pk == Order.id)
            .where(PaymentTransaction.app_trans_id == app_trans_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_transaction(
        self,
        order: Order,
        app_trans_id: str,
        amount: int,
        order_url: Optional[str],
    ) -> PaymentTransaction:
        """Record a gateway transaction opened for ``order``."""
        transaction = PaymentTransaction(
            order_pk=order.id,
            app_trans_id=app_trans_id,
            amount=amount,
            order_url=order_url,
        )
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """
        List a user's orders, newest first.

        Args:
            user_id: Order owner
            status: Optional status filter
            skip: Number of orders to skip
            limit: Maximum number of orders to return

        Returns:
            Tuple of (orders, total count matching the filter)
        """
        filters = [Order.user_id == user_id]
        if status is not None:
            filters.append(Order.status == status)

        count_stmt = select(func.count(Order.id)).where(*filters)
        total = int((await self.session.execute(count_stmt)).scalar_one())

        stmt = (
            select(Order)
            .where(*filters)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all(), total

    async def list_menu_reviews(self, menu_item_id: uuid.UUID) -> list[dict[str, Any]]:
        """
        Reviews left on a menu item, newest first.

        Returns:
            List of dicts with order_id, reviewer, rating, comment, size and
            reviewed_at
        """
        stmt = (
            select(OrderItem, Order.order_id, User.full_name)
            .join(Order, OrderItem.order_pk == Order.id)
            .join(User, Order.user_id == User.id)
            .where(
                OrderItem.menu_item_id == menu_item_id,
                OrderItem.rating.is_not(None),
            )
            .order_by(OrderItem.reviewed_at.desc())
        )
        result = await self.session.execute(stmt)

        return [
            {
                "order_id": order_id,
                "menu_item_id": item.menu_item_id,
                "reviewer": full_name,
                "rating": item.rating,
                "comment": item.comment,
                "size": item.size,
                "reviewed_at": item.reviewed_at,
            }
            for item, order_id, full_name in result.all()
        ]

    async def list_reviews(self, skip: int = 0, limit: int = 50) -> tuple[list[dict[str, Any]], int]:
        """
        Every review across all menu items, newest first.

        Returns:
            Tuple of (reviews, total review count)
        """
        count_stmt = select(func.count(OrderItem.id)).where(OrderItem.rating.is_not(None))
        total = int((await self.session.execute(count_stmt)).scalar_one())

        stmt = (
            select(OrderItem, Order.order_id, User.full_name, MenuItem.name)
            .join(Order, OrderItem.order_pk == Order.id)
            .join(User, Order.user_id == User.id)
            .join(MenuItem, OrderItem.menu_item_id == MenuItem.id)
            .where(OrderItem.rating.is_not(None))
            .order_by(OrderItem.reviewed_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)

        reviews = [
            {
                "order_id": order_id,
                "menu_item_id": item.menu_item_id,
                "menu_item_name": menu_item_name,
                "reviewer": full_name,
                "rating": item.rating,
                "comment": item.comment,
                "size": item.size,
                "reviewed_at": item.reviewed_at,
            }
            for item, order_id, full_name, menu_item_name in result.all()
        ]
        return reviews, total
