"""
Notification service for order emails.

This module provides the NotificationService that renders and sends the
order confirmation email when an order is completed. Delivery is
fire-and-forget from the caller's point of view: every failure is logged
and swallowed so a broken mail setup can never fail an order transition.
"""

import asyncio
from typing import Any, Optional

from src.core.config import get_settings
from src.core.logging import get_logger
from src.database.models.order import Order
from src.database.models.user import User
from src.services.notifications.aws_clients import SESClient, SESClientError
from src.services.notifications.templates import TemplateEngine, TemplateEngineError

logger = get_logger(__name__)

ORDER_CONFIRMATION_TEMPLATE = "order_confirmation"


def build_order_context(order: Order, user: User) -> dict[str, Any]:
    """
    Snapshot of an order for the confirmation templates.

    Args:
        order: Completed order with items loaded
        user: Order owner

    Returns:
        Template context with order, line and address fields
    """
    items = [
        {
            "name": item.menu_item.name if item.menu_item is not None else str(item.menu_item_id),
            "size": item.size,
            "quantity": item.quantity,
            "unit_price": item.price,
            "line_total": item.line_total,
        }
        for item in order.items
    ]

    return {
        "customer_name": user.full_name,
        "order_id": order.order_id,
        "created_at": order.created_at,
        "items": items,
        "subtotal": order.subtotal,
        "shipping_cost": order.shipping_cost,
        "discount": order.discount,
        "total": order.total,
        "receiver_name": order.receiver_name,
        "receiver_phone": order.receiver_phone,
        "shipping_address": order.shipping_address,
    }


class NotificationService:
    """
    Order notification dispatch.

    Args:
        ses_client: SES client (created on first send when omitted)
        template_engine: Template engine (defaults to the package templates)
        enabled: Whether emails are sent at all (defaults to settings)
    """

    def __init__(
        self,
        ses_client: Optional[SESClient] = None,
        template_engine: Optional[TemplateEngine] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        self._ses_client = ses_client
        self.template_engine = template_engine or TemplateEngine()
        self.enabled = get_settings().notifications_enabled if enabled is None else enabled

    @property
    def ses_client(self) -> SESClient:
        if self._ses_client is None:
            self._ses_client = SESClient()
        return self._ses_client

    async def send_order_confirmation(self, order: Order, user: User) -> bool:
        """
        Email the order owner that their order is complete.

        Args:
            order: Completed order
            user: Order owner

        Returns:
            True if the email was handed to SES, False if disabled or failed
        """
        if not self.enabled:
            logger.debug(
                "Notifications disabled, confirmation not sent",
                order_id=order.order_id,
            )
            return False

        try:
            rendered = self.template_engine.render_email(
                ORDER_CONFIRMATION_TEMPLATE,
                build_order_context(order, user),
            )
            result = await asyncio.to_thread(
                self.ses_client.send_email,
                to_addresses=[user.email],
                subject=rendered["subject"],
                body_text=rendered.get("text_body") or rendered["subject"],
                body_html=rendered["html_body"],
            )
        except (TemplateEngineError, SESClientError) as e:
            logger.error(
                "Order confirmation email failed",
                order_id=order.order_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        except Exception as e:
            logger.error(
                "Unexpected error sending order confirmation",
                order_id=order.order_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return False

        logger.info(
            "Order confirmation email sent",
            order_id=order.order_id,
            message_id=result.get("message_id"),
        )
        return True
