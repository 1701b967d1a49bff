"""
Reviews attached to completed order lines.

A customer may rate each line of an order once the order has reached
SUCCESS. Every accepted rating is folded into the menu item's running
rating sum and count, and the item's star value is the mean of all accepted
ratings rounded to one decimal.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.database.models.order import OrderItem
from src.database.models.user import User
from src.services.catalog.repository import MenuItemRepository
from src.services.orders.enums import OrderStatus
from src.services.orders.errors import (
    AlreadyReviewedError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from src.services.orders.repository import OrderRepository

logger = get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewService:
    """
    Review attachment and listing.

    Attributes:
        orders: Order repository
        menu_items: Menu item repository
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.orders = OrderRepository(session)
        self.menu_items = MenuItemRepository(session)
        self.clock = clock

    async def attach_review(
        self,
        order_id: str,
        menu_item_id: uuid.UUID,
        rating: int,
        user: User,
        comment: Optional[str] = None,
        size: Optional[str] = None,
    ) -> OrderItem:
        """
        Rate one line of a completed order.

        Args:
            order_id: External order id
            menu_item_id: Menu item of the line being reviewed
            rating: Rating from 1 to 5
            user: Acting customer
            comment: Optional review text
            size: Variant label, to pick between lines of the same item

        Returns:
            The reviewed order line

        Raises:
            InvalidInputError: If the rating is out of range
            NotFoundError: If the order or the line does not exist
            ForbiddenError: If the order belongs to another user
            InvalidStateError: If the order is not SUCCESS
            AlreadyReviewedError: If the line was already rated
        """
        if not MIN_RATING <= rating <= MAX_RATING:
            raise InvalidInputError(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}",
                rating=rating,
            )

        order = await self.orders.get_by_order_id(order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=order_id)

        if order.user_id != user.id:
            raise ForbiddenError(
                "You can only review your own orders",
                order_id=order_id,
            )

        if order.status != OrderStatus.SUCCESS:
            raise InvalidStateError(
                "Only completed orders can be reviewed",
                order_id=order_id,
                status=OrderStatus(order.status).value,
            )

        line = next(
            (
                item
                for item in order.items
                if item.menu_item_id == menu_item_id
                and (size is None or item.size == size)
            ),
            None,
        )
        if line is None:
            raise NotFoundError(
                "This item is not part of the order",
                order_id=order_id,
                menu_item_id=menu_item_id,
            )

        if line.is_reviewed or not await self.orders.record_review(
            line, rating, comment, self.clock()
        ):
            raise AlreadyReviewedError(
                "This item has already been reviewed",
                order_id=order_id,
                menu_item_id=menu_item_id,
            )

        star = await self.menu_items.apply_rating(menu_item_id, rating)

        logger.info(
            "Review attached",
            order_id=order_id,
            menu_item_id=str(menu_item_id),
            rating=rating,
            star=str(star) if star is not None else None,
        )
        return line

    async def list_menu_reviews(self, menu_item_id: uuid.UUID) -> list[dict[str, Any]]:
        """Public reviews of a menu item, newest first."""
        return await self.orders.list_menu_reviews(menu_item_id)

    async def list_all_reviews(
        self,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[list[dict[str, Any]], int]:
        """Every review, newest first, for administrators."""
        return await self.orders.list_reviews(skip=skip, limit=limit)
