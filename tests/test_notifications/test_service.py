"""
Test suite for the order notification service.

Tests cover the template context built from an order, rendering of the
packaged confirmation templates and the fire-and-forget delivery contract.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from src.services.notifications.aws_clients import SESClientError
from src.services.notifications.service import NotificationService, build_order_context
from src.services.notifications.templates import (
    TemplateEngine,
    TemplateNotFoundError,
    format_currency,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def ses_client() -> MagicMock:
    client = MagicMock()
    client.send_email.return_value = {"message_id": "msg-123", "status": "sent"}
    return client


@pytest.fixture
def completed_order(make_order, make_menu_item, user):
    tea = make_menu_item(name="Milk Tea", price=None)
    order = make_order(
        user,
        lines=[(make_menu_item(), 2, "50000"), (tea, 1, "35000")],
        discount="10000",
    )
    order.items[1].size = "L"
    return order


# ============================================================================
# Context and Template Tests
# ============================================================================


class TestOrderContext:
    """build_order_context and the packaged templates."""

    def test_context(self, completed_order, user):
        context = build_order_context(completed_order, user)

        assert context["customer_name"] == "John Nguyen"
        assert context["order_id"] == "J20250101093015"
        assert context["subtotal"] == Decimal("135000")
        assert context["total"] == Decimal("155000")
        assert context["items"][1] == {
            "name": "Milk Tea",
            "size": "L",
            "quantity": 1,
            "unit_price": Decimal("35000"),
            "line_total": Decimal("35000"),
        }

    def test_render_confirmation(self, completed_order, user):
        rendered = TemplateEngine().render_email(
            "order_confirmation",
            build_order_context(completed_order, user),
        )

        assert rendered["subject"] == "Your order J20250101093015 is complete"
        assert "Milk Tea (L) x1" in rendered["text_body"]
        assert "Total: 155,000 VND" in rendered["text_body"]
        assert "Discount: -10,000 VND" in rendered["text_body"]
        assert "John Nguyen" in rendered["html_body"]

    def test_missing_template(self):
        with pytest.raises(TemplateNotFoundError):
            TemplateEngine().render_email("no_such_template", {})

    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("130000"), "130,000 VND"),
            (Decimal("1500.5"), "1,500.50 VND"),
            (None, ""),
        ],
    )
    def test_format_currency(self, value, expected):
        assert format_currency(value) == expected


# ============================================================================
# Delivery Tests
# ============================================================================


class TestSendOrderConfirmation:
    """NotificationService.send_order_confirmation."""

    @pytest.mark.asyncio
    async def test_sends_email(self, ses_client, completed_order, user):
        service = NotificationService(ses_client=ses_client, enabled=True)

        assert await service.send_order_confirmation(completed_order, user) is True

        kwargs = ses_client.send_email.call_args.kwargs
        assert kwargs["to_addresses"] == ["john@example.com"]
        assert kwargs["subject"] == "Your order J20250101093015 is complete"
        assert "Milk Tea" in kwargs["body_html"]

    @pytest.mark.asyncio
    async def test_disabled(self, ses_client, completed_order, user):
        service = NotificationService(ses_client=ses_client, enabled=False)

        assert await service.send_order_confirmation(completed_order, user) is False
        ses_client.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self, ses_client, completed_order, user):
        service = NotificationService(ses_client=ses_client)

        assert service.enabled is False
        assert await service.send_order_confirmation(completed_order, user) is False

    @pytest.mark.asyncio
    async def test_delivery_failure_is_swallowed(self, ses_client, completed_order, user):
        ses_client.send_email.side_effect = SESClientError("SES error: rejected")
        service = NotificationService(ses_client=ses_client, enabled=True)

        assert await service.send_order_confirmation(completed_order, user) is False

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_swallowed(self, ses_client, completed_order, user):
        ses_client.send_email.side_effect = RuntimeError("boom")
        service = NotificationService(ses_client=ses_client, enabled=True)

        assert await service.send_order_confirmation(completed_order, user) is False

    @pytest.mark.asyncio
    async def test_template_failure_is_swallowed(self, ses_client, completed_order, user, tmp_path):
        service = NotificationService(
            ses_client=ses_client,
            template_engine=TemplateEngine(template_dir=str(tmp_path)),
            enabled=True,
        )

        assert await service.send_order_confirmation(completed_order, user) is False
        ses_client.send_email.assert_not_called()
