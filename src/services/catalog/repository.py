"""
Catalog data access for order placement.

This module implements read access to menu items, vouchers and payment
methods, plus the two writes ordering performs on the catalog: atomic stock
adjustment and the running rating aggregate. Stock decrements are a single
conditional UPDATE so concurrent orders can never drive tracked stock below
zero.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import Numeric, cast, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.database.models.catalog import MenuItem
from src.database.models.order import Order
from src.database.models.payment_method import PaymentMethod
from src.database.models.voucher import Voucher
from src.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class MenuItemRepository:
    """Repository for menu item lookups and stock/rating updates."""

    def __init__(self, session: AsyncSession):
        """
        Initialize menu item repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def get(self, menu_item_id: uuid.UUID) -> Optional[MenuItem]:
        """Get a menu item by id, or None."""
        return await self.session.get(MenuItem, menu_item_id)

    async def get_many(self, menu_item_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, MenuItem]:
        """
        Load several menu items in one query.

        Args:
            menu_item_ids: Ids to load, duplicates allowed

        Returns:
            Mapping of id to menu item for every id that exists
        """
        if not menu_item_ids:
            return {}

        stmt = select(MenuItem).where(MenuItem.id.in_(set(menu_item_ids)))
        result = await self.session.execute(stmt)
        return {item.id: item for item in result.scalars().all()}

    async def decrement_stock_if_available(
        self,
        menu_item_id: uuid.UUID,
        quantity: int,
    ) -> bool:
        """
        Atomically take ``quantity`` units from tracked stock.

        Args:
            menu_item_id: Menu item to decrement
            quantity: Units to take

        Returns:
            True if the row had at least ``quantity`` units and was
            decremented, False otherwise (including untracked stock)
        """
        stmt = (
            update(MenuItem)
            .where(
                MenuItem.id == menu_item_id,
                MenuItem.stock.is_not(None),
                MenuItem.stock >= quantity,
            )
            .values(stock=MenuItem.stock - quantity)
            .returning(MenuItem.stock)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        remaining = result.scalar_one_or_none()

        logger.debug(
            "Stock decrement attempted",
            menu_item_id=str(menu_item_id),
            quantity=quantity,
            applied=remaining is not None,
            remaining=remaining,
        )
        return remaining is not None

    async def increment_stock(self, menu_item_id: uuid.UUID, quantity: int) -> None:
        """Give ``quantity`` units back to tracked stock."""
        stmt = (
            update(MenuItem)
            .where(MenuItem.id == menu_item_id, MenuItem.stock.is_not(None))
            .values(stock=MenuItem.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def apply_rating(self, menu_item_id: uuid.UUID, rating: int) -> Optional[Decimal]:
        """
        Fold one accepted rating into the item's aggregate.

        Sum, count and star are updated in one statement so concurrent
        reviews of the same item are serialised by the row lock.

        Args:
            menu_item_id: Rated menu item
            rating: Rating value 1-5

        Returns:
            New star value, or None if the item no longer exists
        """
        stmt = (
            update(MenuItem)
            .where(MenuItem.id == menu_item_id)
            .values(
                rating_sum=MenuItem.rating_sum + rating,
                rating_count=MenuItem.rating_count + 1,
                star=func.round(
                    cast(MenuItem.rating_sum + rating, Numeric)
                    / (MenuItem.rating_count + 1),
                    1,
                ),
            )
            .returning(MenuItem.star)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class VoucherRepository:
    """Repository for voucher lookups and usage counts."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_active_by_code(self, code: str, now: datetime) -> Optional[Voucher]:
        """
        Find a voucher whose validity window contains ``now``.

        Args:
            code: Voucher code, compared exactly
            now: Reference time

        Returns:
            Voucher if it exists and is valid at ``now``, None otherwise
        """
        stmt = select(Voucher).where(
            Voucher.code == code,
            Voucher.start <= now,
            Voucher.end >= now,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_active_usage(self, voucher_id: uuid.UUID) -> int:
        """Count orders referencing the voucher that are not cancelled."""
        stmt = select(func.count(Order.id)).where(
            Order.voucher_id == voucher_id,
            Order.status != OrderStatus.CANCELLED,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())


class PaymentMethodRepository:
    """Repository for payment method lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, payment_method_id: uuid.UUID) -> Optional[PaymentMethod]:
        return await self.session.get(PaymentMethod, payment_method_id)
