"""
Order pricing over the menu catalog.

This module implements the PricingEngine that turns an immutable
PricingRequest (line items plus an optional voucher code) into a
PricingResult: per-line unit prices, the subtotal, the shipping tier, the
voucher discount and the total. Pricing only reads from the catalog; stock
is checked here but reserved later by the inventory adjuster.

All amounts are Decimals quantized to two places with ROUND_HALF_UP.
"""

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from src.core.config import Settings
from src.core.logging import get_logger
from src.database.models.catalog import MenuItem
from src.database.models.voucher import Voucher
from src.services.catalog.repository import MenuItemRepository, VoucherRepository
from src.services.orders.errors import (
    InsufficientStockError,
    InvalidInputError,
    InvalidVoucherError,
    NotFoundError,
    VoucherLimitReachedError,
    VoucherThresholdNotMetError,
)

logger = get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(amount: Decimal) -> Decimal:
    """Round an amount to two places, half up."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineRequest:
    """One requested order line."""

    menu_item_id: uuid.UUID
    quantity: int
    size: Optional[str] = None


@dataclass(frozen=True)
class PricingRequest:
    """Validated order contents handed to the pricing engine."""

    lines: tuple[LineRequest, ...]
    voucher_code: Optional[str] = None


@dataclass(frozen=True)
class PricedLine:
    """A requested line with its resolved unit price."""

    menu_item_id: uuid.UUID
    name: str
    quantity: int
    unit_price: Decimal
    size: Optional[str] = None
    tracks_stock: bool = False

    @property
    def line_total(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)


@dataclass(frozen=True)
class PricingResult:
    """Priced order."""

    subtotal: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal
    lines: tuple[PricedLine, ...]
    voucher: Optional[Voucher] = field(default=None, compare=False)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


@dataclass(frozen=True)
class ShippingTiers:
    """
    Three-tier shipping fee keyed on the total item count.

    ``count > second_threshold`` ships free, ``count > first_threshold`` pays
    the reduced fee and anything smaller pays the base fee.
    """

    first_threshold: int = 3
    second_threshold: int = 6
    base_fee: Decimal = Decimal("30000")
    reduced_fee: Decimal = Decimal("15000")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShippingTiers":
        return cls(
            first_threshold=settings.shipping_first_threshold,
            second_threshold=settings.shipping_second_threshold,
            base_fee=settings.shipping_base_fee,
            reduced_fee=settings.shipping_reduced_fee,
        )

    def fee_for(self, item_count: int) -> Decimal:
        """
        Shipping fee for an order of ``item_count`` units.

        Args:
            item_count: Total units across all lines

        Returns:
            Shipping fee, non-increasing in ``item_count``
        """
        if item_count > self.second_threshold:
            return ZERO
        if item_count > self.first_threshold:
            return quantize(min(self.reduced_fee, self.base_fee))
        return quantize(self.base_fee)


class VoucherEvaluator:
    """
    Voucher validation and discount calculation.

    A voucher applies when it exists and its validity window contains the
    pricing time, the subtotal reaches its minimum price and fewer than
    ``limit`` non-cancelled orders already use it.
    """

    def __init__(self, voucher_repository: VoucherRepository):
        self.voucher_repository = voucher_repository

    async def resolve(
        self,
        code: str,
        subtotal: Decimal,
        now: datetime,
    ) -> tuple[Voucher, Decimal]:
        """
        Validate a voucher code against a subtotal.

        Args:
            code: Voucher code supplied by the customer
            subtotal: Order subtotal
            now: Pricing time

        Returns:
            Tuple of the voucher and the discount it grants

        Raises:
            InvalidVoucherError: If the code is unknown or outside its window
            VoucherThresholdNotMetError: If subtotal is below the minimum price
            VoucherLimitReachedError: If the usage limit has been reached
        """
        voucher = await self.voucher_repository.find_active_by_code(code, now)
        if voucher is None:
            raise InvalidVoucherError(
                "Voucher does not exist or has expired",
                voucher_code=code,
            )

        min_price = Decimal(voucher.min_price or 0)
        if subtotal < min_price:
            raise VoucherThresholdNotMetError(
                f"Order subtotal must be at least {quantize(min_price)} "
                "to use this voucher",
                voucher_code=code,
                subtotal=subtotal,
                min_price=min_price,
            )

        used = await self.voucher_repository.count_active_usage(voucher.id)
        if used >= voucher.limit:
            raise VoucherLimitReachedError(
                "Voucher usage limit reached",
                voucher_code=code,
                used=used,
                limit=voucher.limit,
            )

        return voucher, self.discount_for(voucher, subtotal)

    @staticmethod
    def discount_for(voucher: Voucher, subtotal: Decimal) -> Decimal:
        """
        Discount a voucher grants on ``subtotal``.

        The percentage discount is bounded by the voucher cap, when set, and
        by the subtotal itself, and is never negative.
        """
        discount = subtotal * Decimal(voucher.discount_percent) / Decimal(100)
        if voucher.max_discount is not None:
            discount = min(discount, Decimal(voucher.max_discount))
        discount = max(min(discount, subtotal), ZERO)
        return quantize(discount)


class PricingEngine:
    """
    Prices an order against the catalog.

    Attributes:
        menu_items: Menu item repository
        vouchers: Voucher evaluator
        shipping: Shipping tier policy
    """

    def __init__(
        self,
        menu_items: MenuItemRepository,
        vouchers: VoucherEvaluator,
        shipping: ShippingTiers,
    ):
        self.menu_items = menu_items
        self.vouchers = vouchers
        self.shipping = shipping

    @staticmethod
    def resolve_unit_price(item: MenuItem, size: Optional[str]) -> Decimal:
        """
        Unit price of a menu item for an optional size.

        Raises:
            InvalidInputError: If the size is not a declared variant, or no
                size is given and the item has no base price
        """
        if size:
            price = item.variant_price(size)
            if price is None:
                raise InvalidInputError(
                    f"Size '{size}' is not available for {item.name}",
                    menu_item_id=item.id,
                    size=size,
                )
            return quantize(price)

        if item.price is None:
            raise InvalidInputError(
                f"{item.name} has no base price, a size must be chosen",
                menu_item_id=item.id,
            )
        return quantize(item.price)

    async def price(self, request: PricingRequest, now: datetime) -> PricingResult:
        """
        Price an order.

        Args:
            request: Requested lines and optional voucher code
            now: Pricing time, used for the voucher window

        Returns:
            PricingResult with total = subtotal - discount + shipping_cost

        Raises:
            InvalidInputError: On empty orders, bad quantities or sizes
            NotFoundError: If a menu item does not exist
            InsufficientStockError: If tracked stock cannot cover the order
            InvalidVoucherError: See VoucherEvaluator.resolve
            VoucherThresholdNotMetError: See VoucherEvaluator.resolve
            VoucherLimitReachedError: See VoucherEvaluator.resolve
        """
        if not request.lines:
            raise InvalidInputError("Order must contain at least one item")

        for line in request.lines:
            if line.quantity < 1:
                raise InvalidInputError(
                    "Quantity must be at least 1",
                    menu_item_id=line.menu_item_id,
                    quantity=line.quantity,
                )

        catalog = await self.menu_items.get_many(
            [line.menu_item_id for line in request.lines]
        )

        requested: Counter = Counter()
        priced: list[PricedLine] = []
        for line in request.lines:
            item = catalog.get(line.menu_item_id)
            if item is None:
                raise NotFoundError(
                    "Menu item not found",
                    menu_item_id=line.menu_item_id,
                )

            priced.append(
                PricedLine(
                    menu_item_id=item.id,
                    name=item.name,
                    quantity=line.quantity,
                    unit_price=self.resolve_unit_price(item, line.size),
                    size=line.size or None,
                    tracks_stock=item.tracks_stock,
                )
            )
            requested[item.id] += line.quantity

        for menu_item_id, quantity in requested.items():
            item = catalog[menu_item_id]
            if item.tracks_stock and item.stock < quantity:
                raise InsufficientStockError(
                    f"Not enough stock for {item.name}",
                    menu_item_id=menu_item_id,
                    requested=quantity,
                    available=item.stock,
                )

        subtotal = quantize(sum((line.line_total for line in priced), ZERO))
        item_count = sum(line.quantity for line in priced)
        shipping_cost = self.shipping.fee_for(item_count)

        voucher: Optional[Voucher] = None
        discount = ZERO
        if request.voucher_code:
            voucher, discount = await self.vouchers.resolve(
                request.voucher_code, subtotal, now
            )

        total = quantize(subtotal - discount + shipping_cost)

        logger.debug(
            "Order priced",
            line_count=len(priced),
            item_count=item_count,
            subtotal=str(subtotal),
            shipping_cost=str(shipping_cost),
            discount=str(discount),
            total=str(total),
            voucher_code=request.voucher_code,
        )

        return PricingResult(
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            discount=discount,
            total=total,
            lines=tuple(priced),
            voucher=voucher,
        )
