"""
Stock reservation for order lines.

Reservation is all-or-nothing: each tracked line is taken with an atomic
conditional decrement, and if any line cannot be covered the decrements
already applied in the same call are given back before the error is raised.
All of this happens inside the request's database transaction, so a failure
later in order creation rolls the decrements back as well.
"""

import uuid
from collections import OrderedDict
from typing import Iterable, Protocol

from src.core.logging import get_logger
from src.services.catalog.repository import MenuItemRepository
from src.services.orders.errors import InsufficientStockError

logger = get_logger(__name__)


class StockLine(Protocol):
    """Anything with a menu item id and a quantity (priced lines, order items)."""

    menu_item_id: uuid.UUID
    quantity: int


def _merge(lines: Iterable[StockLine]) -> "OrderedDict[uuid.UUID, int]":
    merged: OrderedDict[uuid.UUID, int] = OrderedDict()
    for line in lines:
        merged[line.menu_item_id] = merged.get(line.menu_item_id, 0) + line.quantity
    return merged


class InventoryAdjuster:
    """Reserves and releases menu item stock for order lines."""

    def __init__(self, menu_items: MenuItemRepository):
        self.menu_items = menu_items

    async def reserve(self, lines: Iterable[StockLine]) -> None:
        """
        Take stock for every line, or for none of them.

        Items with untracked stock are skipped. Lines naming the same item
        are reserved together.

        Args:
            lines: Lines to reserve

        Raises:
            InsufficientStockError: If any tracked item cannot cover its
                quantity; earlier decrements of this call are restored first
        """
        applied: list[tuple[uuid.UUID, int]] = []

        for menu_item_id, quantity in _merge(lines).items():
            item = await self.menu_items.get(menu_item_id)
            if item is None or not item.tracks_stock:
                continue

            taken = await self.menu_items.decrement_stock_if_available(
                menu_item_id, quantity
            )
            if not taken:
                await self._compensate(applied)
                raise InsufficientStockError(
                    f"Not enough stock for {item.name}",
                    menu_item_id=menu_item_id,
                    requested=quantity,
                )
            applied.append((menu_item_id, quantity))

        logger.info(
            "Stock reserved",
            reserved_items=len(applied),
        )

    async def release(self, lines: Iterable[StockLine]) -> None:
        """
        Give the stock of every line back.

        Best-effort: a failure on one item is logged and the remaining items
        are still released.
        """
        for menu_item_id, quantity in _merge(lines).items():
            try:
                await self.menu_items.increment_stock(menu_item_id, quantity)
            except Exception as e:
                logger.error(
                    "Failed to release stock",
                    menu_item_id=str(menu_item_id),
                    quantity=quantity,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def _compensate(self, applied: list[tuple[uuid.UUID, int]]) -> None:
        for menu_item_id, quantity in reversed(applied):
            try:
                await self.menu_items.increment_stock(menu_item_id, quantity)
            except Exception as e:
                logger.error(
                    "Failed to restore stock after partial reservation",
                    menu_item_id=str(menu_item_id),
                    quantity=quantity,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        if applied:
            logger.warning(
                "Partial reservation rolled back",
                restored_items=len(applied),
            )
