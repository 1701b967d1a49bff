"""
Order management Pydantic schemas for API request/response validation.

This module defines the schemas for order placement, status updates and
reviews. Requests are validated once here and converted into the immutable
commands the order services consume; responses are built from ORM rows.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from src.database.models.order import Order, OrderItem
from src.services.orders.enums import OrderStatus, PaymentMethodType, PaymentStatus
from src.services.orders.pricing_engine import LineRequest, PricingRequest
from src.services.orders.service import PlacedOrder, PlaceOrderCommand, ShippingDetails

PHONE_PATTERN = re.compile(r"^[+]?[(]?[0-9]{3}[)]?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}$")


class OrderItemRequest(BaseModel):
    """Single line of an order placement request."""

    menu_item_id: UUID = Field(..., description="Menu item to order")
    quantity: int = Field(
        ...,
        ge=1,
        le=100,
        description="Units to order",
    )
    size: Optional[str] = Field(
        None,
        max_length=50,
        description="Size variant label; base price is used when omitted",
    )

    @field_validator("size")
    @classmethod
    def blank_size_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty size as no size."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class OrderCreateRequest(BaseModel):
    """Request schema for placing an order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    items: list[OrderItemRequest] = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Order lines",
    )
    voucher_code: Optional[str] = Field(
        None,
        max_length=50,
        description="Optional voucher code",
    )
    payment_method_id: UUID = Field(..., description="Chosen payment method")
    receiver_name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Shipping receiver name",
    )
    receiver_phone: str = Field(
        ...,
        min_length=7,
        max_length=32,
        description="Shipping receiver phone number",
    )
    shipping_address: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Shipping address",
    )

    @field_validator("receiver_phone")
    @classmethod
    def validate_phone_format(cls, v: str) -> str:
        """Validate phone number format."""
        if not PHONE_PATTERN.match(v):
            raise ValueError("Invalid phone number")
        return v

    @field_validator("voucher_code")
    @classmethod
    def blank_voucher_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def to_command(self) -> PlaceOrderCommand:
        """Convert the validated request into an order placement command."""
        return PlaceOrderCommand(
            pricing=PricingRequest(
                lines=tuple(
                    LineRequest(
                        menu_item_id=item.menu_item_id,
                        quantity=item.quantity,
                        size=item.size,
                    )
                    for item in self.items
                ),
                voucher_code=self.voucher_code,
            ),
            payment_method_id=self.payment_method_id,
            shipping=ShippingDetails(
                receiver_name=self.receiver_name,
                receiver_phone=self.receiver_phone,
                shipping_address=self.shipping_address,
            ),
        )


class OrderStatusUpdate(BaseModel):
    """Administrative status change."""

    status: Optional[OrderStatus] = Field(None, description="New order status")
    payment_status: Optional[PaymentStatus] = Field(
        None,
        description="New payment status",
    )

    @model_validator(mode="after")
    def require_one_field(self) -> "OrderStatusUpdate":
        """At least one of status or payment_status must be given."""
        if self.status is None and self.payment_status is None:
            raise ValueError("Provide status, payment_status or both")
        return self


class ReviewCreateRequest(BaseModel):
    """Review of one line of a completed order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    order_id: str = Field(..., min_length=1, max_length=32, description="Order id")
    menu_item_id: UUID = Field(..., description="Reviewed menu item")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, max_length=2000, description="Review text")
    size: Optional[str] = Field(
        None,
        max_length=50,
        description="Size of the reviewed line when the item was ordered in several sizes",
    )


class OrderItemResponse(BaseModel):
    """Order line in responses."""

    menu_item_id: UUID
    name: Optional[str] = None
    quantity: int
    price: Decimal
    size: Optional[str] = None
    line_total: Decimal
    rating: Optional[int] = None
    comment: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, item: OrderItem) -> "OrderItemResponse":
        return cls(
            menu_item_id=item.menu_item_id,
            name=item.menu_item.name if item.menu_item is not None else None,
            quantity=item.quantity,
            price=item.price,
            size=item.size,
            line_total=item.line_total,
            rating=item.rating,
            comment=item.comment,
            reviewed_at=item.reviewed_at,
        )


class OrderResponse(BaseModel):
    """Order details."""

    order_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    items: list[OrderItemResponse]
    subtotal: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal
    voucher_code: Optional[str] = None
    payment_method: Optional[str] = None
    payment_method_type: Optional[PaymentMethodType] = None
    app_trans_id: Optional[str] = None
    receiver_name: str
    receiver_phone: str
    shipping_address: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, order: Order) -> "OrderResponse":
        return cls(**cls._fields_from(order))

    @staticmethod
    def _fields_from(order: Order) -> dict:
        return {
            "order_id": order.order_id,
            "status": order.status,
            "payment_status": order.payment_status,
            "items": [OrderItemResponse.from_model(item) for item in order.items],
            "subtotal": order.subtotal,
            "shipping_cost": order.shipping_cost,
            "discount": order.discount,
            "total": order.total,
            "voucher_code": order.voucher.code if order.voucher is not None else None,
            "payment_method": (
                order.payment_method.name if order.payment_method is not None else None
            ),
            "payment_method_type": (
                order.payment_method.type if order.payment_method is not None else None
            ),
            "app_trans_id": order.app_trans_id,
            "receiver_name": order.receiver_name,
            "receiver_phone": order.receiver_phone,
            "shipping_address": order.shipping_address,
            "created_at": order.created_at,
            "updated_at": order.updated_at,
        }


class PaymentErrorResponse(BaseModel):
    """Why the online payment could not be opened at placement."""

    code: str = Field(..., description="GATEWAY_UNAVAILABLE or GATEWAY_REJECTED")
    message: str


class OrderCreateResponse(OrderResponse):
    """Placed order plus the gateway URL when paying online."""

    payment_url: Optional[str] = Field(
        None,
        description="Where to send the customer to pay; null for cash on "
        "delivery or when the gateway could not be reached",
    )
    payment_error: Optional[PaymentErrorResponse] = Field(
        None,
        description="Set when the order was kept but the gateway failed; "
        "retry with POST /payments/zalopay",
    )

    @classmethod
    def from_placed(cls, placed: PlacedOrder) -> "OrderCreateResponse":
        payment_error = None
        if placed.payment_error is not None:
            payment_error = PaymentErrorResponse(
                code=placed.payment_error.code,
                message=placed.payment_error.message,
            )
        return cls(
            **cls._fields_from(placed.order),
            payment_url=placed.payment_url,
            payment_error=payment_error,
        )


class OrderListResponse(BaseModel):
    """Paginated list of the caller's orders."""

    items: list[OrderResponse]
    total: int
    skip: int
    limit: int


class ReviewResponse(BaseModel):
    """A review attached to an order line."""

    order_id: str
    menu_item_id: UUID
    menu_item_name: Optional[str] = None
    reviewer: Optional[str] = None
    rating: int
    comment: Optional[str] = None
    size: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @classmethod
    def from_line(cls, order_id: str, item: OrderItem, reviewer: Optional[str]) -> "ReviewResponse":
        return cls(
            order_id=order_id,
            menu_item_id=item.menu_item_id,
            menu_item_name=item.menu_item.name if item.menu_item is not None else None,
            reviewer=reviewer,
            rating=item.rating,
            comment=item.comment,
            size=item.size,
            reviewed_at=item.reviewed_at,
        )


class ReviewListResponse(BaseModel):
    """Paginated list of reviews."""

    items: list[ReviewResponse]
    total: int
    skip: int = 0
    limit: int = 0
