"""
Order service orchestrating placement, cancellation and admin updates.

This module implements the OrderService class that runs the order workflow
inside one request transaction: price the order, reserve stock, persist it
and, for online payment methods, open the gateway transaction. It also
applies owner cancellations and administrative status changes through the
state machine, releasing stock and scheduling the completion email when a
transition calls for it.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import Settings, get_settings
from src.core.logging import get_logger, log_performance
from src.database.models.order import Order, OrderItem
from src.database.models.user import User
from src.services.catalog.repository import (
    MenuItemRepository,
    PaymentMethodRepository,
    VoucherRepository,
)
from src.services.notifications.service import NotificationService
from src.services.orders.enums import (
    OrderStatus,
    PaymentMethodType,
    PaymentStatus,
)
from src.services.orders.errors import (
    DuplicateOrderError,
    ForbiddenError,
    GatewayRejectedError,
    GatewayUnavailableError,
    InvalidInputError,
    NotFoundError,
    OrderServiceError,
)
from src.services.orders.inventory import InventoryAdjuster
from src.services.orders.order_number import generate_order_id
from src.services.orders.pricing_engine import (
    PricingEngine,
    PricingRequest,
    ShippingTiers,
    VoucherEvaluator,
)
from src.services.orders.repository import OrderRepository
from src.services.orders.state_machine import OrderStateMachine, Transition
from src.services.payments.service import PaymentService

logger = get_logger(__name__)

MAX_ORDER_ID_SUFFIX = 20


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ShippingDetails:
    """Where and to whom the order is delivered."""

    receiver_name: str
    receiver_phone: str
    shipping_address: str


@dataclass(frozen=True)
class PlaceOrderCommand:
    """Validated order placement request."""

    pricing: PricingRequest
    payment_method_id: uuid.UUID
    shipping: ShippingDetails


@dataclass
class PlacedOrder:
    """
    A persisted order and, for online payments, where to pay it.

    ``payment_error`` holds the gateway failure when the order was kept but
    the payment could not be opened.
    """

    order: Order
    payment_url: Optional[str] = None
    payment_error: Optional[OrderServiceError] = None


class OrderService:
    """
    Order service orchestrating the order lifecycle.

    Attributes:
        orders: Order repository
        pricing: Pricing engine
        inventory: Stock adjuster
        state_machine: Order state machine
        payments: Payment service used for online payment methods
        notifications: Notification service for completion emails
        schedule_task: Defers the completion email until after commit
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        payment_service: Optional[PaymentService] = None,
        notification_service: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = _utcnow,
        schedule_task: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize order service.

        Args:
            session: Async database session of the current request
            settings: Application settings (defaults to cached settings)
            payment_service: PaymentService for online payment methods
            notification_service: Notification service (default is built
                from settings)
            clock: Returns the current time
            schedule_task: Runs ``func(*args)`` once the request has
                committed (``BackgroundTasks.add_task``); when omitted the
                confirmation email is awaited inline
        """
        settings = settings or get_settings()

        menu_items = MenuItemRepository(session)
        self.orders = OrderRepository(session)
        self.payment_methods = PaymentMethodRepository(session)
        self.pricing = PricingEngine(
            menu_items=menu_items,
            vouchers=VoucherEvaluator(VoucherRepository(session)),
            shipping=ShippingTiers.from_settings(settings),
        )
        self.inventory = InventoryAdjuster(menu_items)
        self.state_machine = OrderStateMachine(
            cancel_window=timedelta(minutes=settings.order_cancel_window_minutes)
        )
        self.payments = payment_service
        self.notifications = notification_service or NotificationService()
        self.clock = clock
        self.schedule_task = schedule_task

    async def _allocate_order_id(self, user: User, now: datetime) -> str:
        """
        Pick the external id for a new order.

        The id is ``generate_order_id`` unless another customer already holds
        it for the same second, in which case ``-2``, ``-3`` ... is appended.

        Raises:
            DuplicateOrderError: If this customer already ordered this second
        """
        base = generate_order_id(user.email, now)
        candidate = base
        for suffix in range(2, MAX_ORDER_ID_SUFFIX + 1):
            owner_id = await self.orders.find_owner(candidate)
            if owner_id is None:
                return candidate
            if owner_id == user.id:
                break
            candidate = f"{base}-{suffix}"

        raise DuplicateOrderError(
            "An order was already submitted a moment ago, please wait "
            "before ordering again",
            order_id=candidate,
        )

    async def place_order(self, user: User, command: PlaceOrderCommand) -> PlacedOrder:
        """
        Price, reserve and persist a new order.

        For a ZaloPay payment method the gateway transaction is opened right
        away. A gateway failure does not undo the order; it is returned
        without a payment URL and with the failure in ``payment_error`` so
        the customer can retry payment later.

        Args:
            user: Customer placing the order
            command: Validated order contents

        Returns:
            PlacedOrder with the persisted order and optional payment URL

        Raises:
            NotFoundError: If the payment method or a menu item is unknown
            InvalidInputError: If the payment method is inactive or a line is
                invalid
            DuplicateOrderError: If the customer already ordered this second
            InsufficientStockError: If stock cannot cover the order
            InvalidVoucherError: If the voucher is unknown or expired
            VoucherThresholdNotMetError: If the subtotal is too small
            VoucherLimitReachedError: If the voucher is used up
        """
        payment_method = await self.payment_methods.get(command.payment_method_id)
        if payment_method is None:
            raise NotFoundError(
                "Payment method not found",
                payment_method_id=command.payment_method_id,
            )
        if not payment_method.is_active:
            raise InvalidInputError(
                "Payment method is not available",
                payment_method_id=command.payment_method_id,
            )

        now = self.clock()
        order_id = await self._allocate_order_id(user, now)

        with log_performance(logger, "place_order", order_id=order_id):
            priced = await self.pricing.price(command.pricing, now)
            await self.inventory.reserve(priced.lines)

            order = Order(
                order_id=order_id,
                user_id=user.id,
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                shipping_cost=priced.shipping_cost,
                discount=priced.discount,
                total=priced.total,
                voucher_id=priced.voucher.id if priced.voucher is not None else None,
                payment_method_id=payment_method.id,
                receiver_name=command.shipping.receiver_name,
                receiver_phone=command.shipping.receiver_phone,
                shipping_address=command.shipping.shipping_address,
                items=[
                    OrderItem(
                        position=position,
                        menu_item_id=line.menu_item_id,
                        quantity=line.quantity,
                        price=line.unit_price,
                        size=line.size,
                    )
                    for position, line in enumerate(priced.lines)
                ],
            )
            try:
                order = await self.orders.add(order)
            except DuplicateOrderError:
                # Another customer inserted the same id after the check
                order.order_id = await self._allocate_order_id(user, now)
                order = await self.orders.add(order)

        logger.info(
            "Order placed",
            order_id=order.order_id,
            total=str(order.total),
            voucher_code=command.pricing.voucher_code,
            payment_method=payment_method.type.value,
        )

        placed = PlacedOrder(order=order)
        if payment_method.type == PaymentMethodType.ZALOPAY and self.payments is not None:
            try:
                payment = await self.payments.initiate(order, user)
                placed.payment_url = payment.get("order_url")
            except (GatewayUnavailableError, GatewayRejectedError) as e:
                logger.warning(
                    "Order placed but payment could not be initiated",
                    order_id=order.order_id,
                    error_code=e.code,
                )
                placed.payment_error = e

        return placed

    async def _load(self, order_id: str) -> Order:
        order = await self.orders.get_by_order_id(order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=order_id)
        return order

    async def get_order(self, order_id: str, user: User) -> Order:
        """
        Get an order visible to the user.

        Raises:
            NotFoundError: If the order does not exist
            ForbiddenError: If the user neither owns it nor is an admin
        """
        order = await self._load(order_id)
        if order.user_id != user.id and not user.is_admin:
            raise ForbiddenError(
                "You do not have access to this order",
                order_id=order_id,
            )
        return order

    async def list_orders(
        self,
        user: User,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """List the user's own orders, newest first."""
        return await self.orders.list_for_user(
            user.id,
            status=status,
            skip=skip,
            limit=limit,
        )

    async def cancel_order(self, order_id: str, user: User) -> Order:
        """
        Cancel a pending order on behalf of its owner.

        Raises:
            NotFoundError: If the order does not exist
            ForbiddenError: If the user does not own the order
            InvalidTransitionError: If the order is not pending
            WindowExpiredError: If the cancellation window has elapsed
            ConcurrentModificationError: If the order changed meanwhile
        """
        order = await self._load(order_id)
        if order.user_id != user.id:
            raise ForbiddenError(
                "You can only cancel your own orders",
                order_id=order_id,
            )

        transition = self.state_machine.cancel_by_owner(order, self.clock())
        await self._apply(order, transition, actor="owner")
        return order

    async def update_status(
        self,
        order_id: str,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> Order:
        """
        Administrative status and payment status update.

        Raises:
            InvalidInputError: If neither status nor payment status is given
            NotFoundError: If the order does not exist
            InvalidTransitionError: If a completed or cancelled order would
                change status
            ConcurrentModificationError: If the order changed meanwhile
        """
        if status is None and payment_status is None:
            raise InvalidInputError("Nothing to update, give status or payment_status")

        order = await self._load(order_id)
        transition = self.state_machine.admin_update(
            order,
            status=status,
            payment_status=payment_status,
        )
        await self._apply(order, transition, actor="admin")
        return order

    async def _apply(self, order: Order, transition: Transition, actor: str) -> None:
        if not transition.changed:
            return

        transition.apply(order)
        await self.orders.save(order)

        if transition.release_stock:
            await self.inventory.release(order.items)

        logger.info(
            "Order status changed",
            order_id=order.order_id,
            actor=actor,
            from_status=transition.from_status.value,
            to_status=transition.to_status.value,
            from_payment_status=transition.from_payment_status.value,
            to_payment_status=transition.to_payment_status.value,
            stock_released=transition.release_stock,
        )

        if not transition.notify_owner:
            return

        if self.schedule_task is not None:
            self.schedule_task(self.notifications.send_order_confirmation, order, order.user)
        else:
            await self.notifications.send_order_confirmation(order, order.user)
