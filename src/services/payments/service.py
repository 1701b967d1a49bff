"""
Payment service for online gateway settlement.

This module implements the PaymentService class that ties the gateway
client to the order lifecycle: initiating a gateway payment for a pending
order, applying authenticated provider callbacks and polling the provider
for failed payments. Callback handling never raises; it answers with the
provider's return codes (1 accepted, 0 retry, -1 rejected) so the provider's
retry contract is driven by the body, not the HTTP status.
"""

import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.database.models.order import Order
from src.database.models.user import User
from src.services.catalog.repository import MenuItemRepository
from src.services.orders.enums import OrderStatus, PaymentStatus
from src.services.orders.errors import (
    ForbiddenError,
    GatewayRejectedError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from src.services.orders.inventory import InventoryAdjuster
from src.services.orders.repository import OrderRepository
from src.services.orders.state_machine import OrderStateMachine
from src.services.payments.gateway_client import SUCCESS_RETURN_CODE, ZaloPayClient

logger = get_logger(__name__)

CALLBACK_ACCEPTED = 1
CALLBACK_RETRY = 0
CALLBACK_REJECTED = -1


class PaymentService:
    """
    Payment service orchestrating gateway calls and order transitions.

    Attributes:
        orders: Order repository
        gateway: Payment gateway client
        state_machine: Order state machine
        inventory: Stock adjuster used when a failed payment cancels an order
    """

    def __init__(
        self,
        session: AsyncSession,
        gateway: ZaloPayClient,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        """
        Initialize payment service.

        Args:
            session: Async database session of the current request
            gateway: Configured gateway client
            state_machine: Optional state machine (default has no window)
        """
        self.session = session
        self.orders = OrderRepository(session)
        self.gateway = gateway
        self.state_machine = state_machine or OrderStateMachine()
        self.inventory = InventoryAdjuster(MenuItemRepository(session))

    @staticmethod
    def _gateway_items(order: Order) -> list[dict[str, Any]]:
        return [
            {
                "menu_item_id": str(item.menu_item_id),
                "name": item.menu_item.name if item.menu_item is not None else None,
                "size": item.size,
                "quantity": item.quantity,
                "price": str(item.price),
            }
            for item in order.items
        ]

    async def initiate_for_order_id(self, order_id: str, user: User) -> dict[str, Any]:
        """
        Initiate a gateway payment for an order identified by its external id.

        Raises:
            NotFoundError: If the order does not exist
            See initiate for the remaining errors
        """
        order = await self.orders.get_by_order_id(order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=order_id)
        return await self.initiate(order, user)

    async def initiate(self, order: Order, user: User) -> dict[str, Any]:
        """
        Create a gateway transaction for a pending order.

        Initiating again opens a new transaction; the earlier ones stay
        recorded so a callback for any of them still settles the order.

        Args:
            order: Order to pay for
            user: Acting customer, must own the order

        Returns:
            Dictionary with order_id, app_trans_id and the provider's
            order_url the customer is redirected to

        Raises:
            ForbiddenError: If the user does not own the order
            InvalidStateError: If the order or its payment is not pending
            GatewayUnavailableError: If the provider cannot be reached
            GatewayRejectedError: If the provider refuses the transaction
        """
        if order.user_id != user.id:
            raise ForbiddenError(
                "You can only pay for your own orders",
                order_id=order.order_id,
            )

        if (
            order.status != OrderStatus.PENDING
            or order.payment_status != PaymentStatus.PENDING
        ):
            raise InvalidStateError(
                "Only pending, unpaid orders can be paid online",
                order_id=order.order_id,
                status=OrderStatus(order.status).value,
                payment_status=PaymentStatus(order.payment_status).value,
            )

        app_trans_id = self.gateway.new_app_trans_id()
        amount = int(Decimal(order.total).to_integral_value(rounding=ROUND_HALF_UP))

        payload = self.gateway.build_create_payload(
            app_trans_id=app_trans_id,
            app_user=str(order.user_id),
            amount=amount,
            items=self._gateway_items(order),
            description=f"Payment for order #{order.order_id}",
        )

        logger.info(
            "Initiating gateway payment",
            order_id=order.order_id,
            app_trans_id=app_trans_id,
            amount=amount,
        )

        response = await self.gateway.create_order(payload)

        if response.get("return_code") != SUCCESS_RETURN_CODE:
            logger.warning(
                "Gateway rejected payment",
                order_id=order.order_id,
                app_trans_id=app_trans_id,
                return_code=response.get("return_code"),
                sub_return_code=response.get("sub_return_code"),
            )
            raise GatewayRejectedError(
                "The payment provider declined the request, please retry or "
                "choose another payment method",
                order_id=order.order_id,
                return_code=response.get("return_code"),
            )

        superseded = order.app_trans_id
        await self.orders.add_transaction(order, app_trans_id, amount, response.get("order_url"))
        order.app_trans_id = app_trans_id
        await self.orders.save(order)

        logger.info(
            "Gateway payment initiated",
            order_id=order.order_id,
            app_trans_id=app_trans_id,
            superseded_app_trans_id=superseded,
        )

        return {
            "order_id": order.order_id,
            "app_trans_id": app_trans_id,
            "order_url": response.get("order_url"),
            "return_code": response.get("return_code"),
            "return_message": response.get("return_message"),
        }

    async def handle_callback(self, data: Optional[str], mac: Optional[str]) -> dict[str, Any]:
        """
        Apply a provider callback.

        Args:
            data: JSON string sent by the provider
            mac: Hex HMAC of ``data`` under key2

        Returns:
            ``{"return_code": 1, "return_message": "success"}`` when applied,
            ``-1`` when the mac does not verify (nothing is changed) and
            ``0`` with the error message when processing failed
        """
        if not self.gateway.verify_callback(data or "", mac or ""):
            logger.warning("Gateway callback rejected, mac mismatch")
            return {
                "return_code": CALLBACK_REJECTED,
                "return_message": "mac not equal",
            }

        try:
            await self._apply_payment_success(data or "")
        except Exception as e:
            await self.session.rollback()
            logger.error(
                "Gateway callback processing failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return {"return_code": CALLBACK_RETRY, "return_message": str(e)}

        return {"return_code": CALLBACK_ACCEPTED, "return_message": "success"}

    async def _apply_payment_success(self, data: str) -> None:
        try:
            payload = json.loads(data)
        except ValueError as e:
            raise InvalidInputError("Callback data is not valid JSON") from e

        app_trans_id = payload.get("app_trans_id") if isinstance(payload, dict) else None
        if not app_trans_id:
            raise InvalidInputError("Callback data has no app_trans_id")

        order = await self.orders.get_by_app_trans_id(app_trans_id)
        if order is None:
            raise NotFoundError(
                f"No order for transaction {app_trans_id}",
                app_trans_id=app_trans_id,
            )

        transition = self.state_machine.payment_succeeded(order)
        if not transition.changed:
            return

        transition.apply(order)
        await self.orders.save(order)

        logger.info(
            "Payment confirmed by gateway",
            order_id=order.order_id,
            app_trans_id=app_trans_id,
            status=transition.to_status.value,
        )

    async def check_status(self, app_trans_id: str) -> dict[str, Any]:
        """
        Poll the provider for a transaction and cancel the order on failure.

        Only a failure of the order's current transaction cancels it; an
        older, superseded transaction failing leaves the order open.

        Args:
            app_trans_id: Gateway correlation id

        Returns:
            Raw provider response

        Raises:
            GatewayUnavailableError: If the provider cannot be reached
        """
        response = await self.gateway.query_order(app_trans_id)
        return_code = response.get("return_code")

        if return_code not in self.gateway.config.failure_codes:
            return response

        order = await self.orders.get_by_app_trans_id(app_trans_id)
        if order is None:
            logger.warning(
                "Gateway reported failure for unknown transaction",
                app_trans_id=app_trans_id,
                return_code=return_code,
            )
            return response

        if order.app_trans_id != app_trans_id:
            logger.info(
                "Superseded gateway transaction failed, order kept",
                order_id=order.order_id,
                app_trans_id=app_trans_id,
                current_app_trans_id=order.app_trans_id,
            )
            return response

        transition = self.state_machine.payment_failed(order)
        if transition.changed:
            transition.apply(order)
            await self.orders.save(order)
            if transition.release_stock:
                await self.inventory.release(order.items)

            logger.info(
                "Order cancelled after failed payment",
                order_id=order.order_id,
                app_trans_id=app_trans_id,
                return_code=return_code,
            )

        return response
