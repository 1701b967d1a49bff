"""Order state machine with transition guards.

This module implements the OrderStateMachine that decides every status
change an order can go through. It never touches the database: each method
validates the requested change against the order's current statuses and
returns a Transition describing the new statuses and the side effects the
caller must run (stock release, confirmation email).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from src.core.logging import get_logger
from src.database.models.order import Order
from src.services.orders.enums import OrderStatus, PaymentStatus
from src.services.orders.errors import InvalidTransitionError, WindowExpiredError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Transition:
    """Outcome of a state machine decision.

    Attributes:
        from_status: Status before the transition
        to_status: Status after the transition
        from_payment_status: Payment status before the transition
        to_payment_status: Payment status after the transition
        release_stock: Whether reserved stock must be given back
        notify_owner: Whether the confirmation email must be sent
    """

    from_status: OrderStatus
    to_status: OrderStatus
    from_payment_status: PaymentStatus
    to_payment_status: PaymentStatus
    release_stock: bool = False
    notify_owner: bool = False

    @property
    def changed(self) -> bool:
        return (
            self.from_status != self.to_status
            or self.from_payment_status != self.to_payment_status
        )

    def apply(self, order: Order) -> None:
        """Write the new statuses onto the order."""
        order.status = self.to_status
        order.payment_status = self.to_payment_status


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderStateMachine:
    """State machine for order and payment status.

    Args:
        cancel_window: How long after creation the owner may cancel a
            pending order; None or a zero delta removes the bound
    """

    def __init__(self, cancel_window: Optional[timedelta] = None):
        self.cancel_window = cancel_window if cancel_window else None

    def _transition(
        self,
        order: Order,
        to_status: OrderStatus,
        to_payment_status: PaymentStatus,
    ) -> Transition:
        from_status = OrderStatus(order.status)
        from_payment_status = PaymentStatus(order.payment_status)

        entering_cancelled = (
            to_status == OrderStatus.CANCELLED
            and from_status != OrderStatus.CANCELLED
        )
        entering_success = (
            to_status == OrderStatus.SUCCESS
            and from_status != OrderStatus.SUCCESS
        )

        return Transition(
            from_status=from_status,
            to_status=to_status,
            from_payment_status=from_payment_status,
            to_payment_status=to_payment_status,
            release_stock=entering_cancelled,
            notify_owner=entering_success
            and to_payment_status == PaymentStatus.SUCCESS,
        )

    def cancel_by_owner(self, order: Order, now: datetime) -> Transition:
        """Customer cancellation.

        Args:
            order: Order to cancel, already checked for ownership
            now: Request time

        Returns:
            Transition to CANCELLED / FAILED with stock release

        Raises:
            InvalidTransitionError: If the order is not PENDING
            WindowExpiredError: If the cancellation window has elapsed
        """
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(
                "Only pending orders can be cancelled",
                order_id=order.order_id,
                status=OrderStatus(order.status).value,
            )

        if self.cancel_window is not None:
            elapsed = _as_utc(now) - _as_utc(order.created_at)
            if elapsed > self.cancel_window:
                raise WindowExpiredError(
                    "Orders can only be cancelled within "
                    f"{int(self.cancel_window.total_seconds() // 60)} minutes "
                    "of being placed",
                    order_id=order.order_id,
                    elapsed_seconds=int(elapsed.total_seconds()),
                )

        return self._transition(order, OrderStatus.CANCELLED, PaymentStatus.FAILED)

    def payment_succeeded(self, order: Order) -> Transition:
        """Gateway confirmed the payment.

        Moves an open order to PROCESSING with payment SUCCESS. Orders that
        are already SUCCESS or CANCELLED are left unchanged; the returned
        transition then reports ``changed == False``.
        """
        if not OrderStatus(order.status).is_open():
            logger.warning(
                "Payment confirmation for closed order ignored",
                order_id=order.order_id,
                status=OrderStatus(order.status).value,
            )
            return self._transition(
                order,
                OrderStatus(order.status),
                PaymentStatus(order.payment_status),
            )

        return self._transition(order, OrderStatus.PROCESSING, PaymentStatus.SUCCESS)

    def payment_failed(self, order: Order) -> Transition:
        """Gateway reported the payment as failed.

        Cancels an open order without checking the cancellation window.
        Closed orders are left unchanged.
        """
        if not OrderStatus(order.status).is_open():
            logger.warning(
                "Payment failure for closed order ignored",
                order_id=order.order_id,
                status=OrderStatus(order.status).value,
            )
            return self._transition(
                order,
                OrderStatus(order.status),
                PaymentStatus(order.payment_status),
            )

        return self._transition(order, OrderStatus.CANCELLED, PaymentStatus.FAILED)

    def admin_update(
        self,
        order: Order,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
    ) -> Transition:
        """Administrative status change.

        Args:
            order: Order to update
            status: New status, or None to keep the current one
            payment_status: New payment status, or None to keep it

        Returns:
            Transition; entering CANCELLED releases stock, entering SUCCESS
            with payment SUCCESS notifies the owner

        Raises:
            InvalidTransitionError: If a CANCELLED or SUCCESS order would
                move to another status
        """
        current = OrderStatus(order.status)
        target_status = status or current
        target_payment = payment_status or PaymentStatus(order.payment_status)

        if current.is_terminal() and target_status != current:
            raise InvalidTransitionError(
                f"A {current.value} order cannot be changed to {target_status.value}",
                order_id=order.order_id,
                status=current.value,
                requested_status=target_status.value,
            )

        return self._transition(order, target_status, target_payment)
