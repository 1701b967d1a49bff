"""
Order and order item models for placement and settlement.

An order snapshots the unit price of every line at creation, stores the
shipping fee, voucher discount and total it was charged, and carries the
gateway correlation id once an online payment has been initiated; every
gateway transaction opened for it is kept in ``payment_transactions``. Status
writes are guarded by an optimistic ``version`` column so concurrent
transitions (customer cancel, gateway callback, admin update) cannot silently
overwrite each other.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import BaseModel
from src.services.orders.enums import OrderStatus, PaymentStatus, enum_values

if TYPE_CHECKING:
    from src.database.models.catalog import MenuItem
    from src.database.models.payment_method import PaymentMethod
    from src.database.models.user import User
    from src.database.models.voucher import Voucher


class Order(BaseModel):
    """
    Customer order.

    Attributes:
        id: Storage key (UUID)
        order_id: Externally visible identifier, unique
        user_id: Owner of the order
        status: Lifecycle status
        payment_status: Payment status, orthogonal to ``status``
        shipping_cost: Shipping fee charged
        discount: Voucher discount applied
        total: Amount charged (subtotal - discount + shipping_cost)
        voucher_id: Voucher applied at creation, if any
        payment_method_id: Chosen payment method
        app_trans_id: Latest gateway correlation id, set once payment is
            initiated
        receiver_name: Shipping receiver
        receiver_phone: Shipping phone number
        shipping_address: Shipping address
        version: Optimistic concurrency token
        items: Line items ordered by position
    """

    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
        comment="Externally visible order identifier",
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="User who placed the order",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", values_callable=enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status", values_callable=enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
        comment="Current payment status",
    )

    shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Shipping fee",
    )

    discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Voucher discount",
    )

    total: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Amount charged",
    )

    voucher_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("vouchers.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Applied voucher",
    )

    payment_method_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("payment_methods.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Chosen payment method",
    )

    app_trans_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
        comment="Payment gateway correlation id",
    )

    receiver_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Shipping receiver name",
    )

    receiver_phone: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Shipping receiver phone",
    )

    shipping_address: Mapped[str] = mapped_column(
        String(1000),
        nullable=False,
        comment="Shipping address",
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Optimistic concurrency token",
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="orders",
        lazy="selectin",
    )

    voucher: Mapped[Optional["Voucher"]] = relationship(
        "Voucher",
        lazy="selectin",
    )

    payment_method: Mapped["PaymentMethod"] = relationship(
        "PaymentMethod",
        lazy="selectin",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    __table_args__ = (
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_voucher_status", "voucher_id", "status"),
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
        CheckConstraint("discount >= 0", name="ck_orders_discount_non_negative"),
        CheckConstraint(
            "shipping_cost >= 0",
            name="ck_orders_shipping_cost_non_negative",
        ),
    )

    @property
    def subtotal(self) -> Decimal:
        """Sum of unit price times quantity over every line."""
        return sum(
            (item.line_total for item in self.items),
            Decimal("0.00"),
        )

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def __repr__(self) -> str:
        return (
            f"<Order(order_id={self.order_id}, status={self.status}, "
            f"payment_status={self.payment_status}, total={self.total})>"
        )


class OrderItem(BaseModel):
    """
    Order line with its unit price snapshot and optional review.

    Attributes:
        order_pk: Parent order storage key
        menu_item_id: Ordered menu item
        position: Zero-based position in the submitted order
        quantity: Units ordered (>= 1)
        price: Unit price at creation
        size: Variant label, if one was chosen
        rating: Review rating 1-5, null until reviewed
        comment: Review comment
        reviewed_at: When the review was attached
    """

    __tablename__ = "order_items"

    order_pk: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Parent order",
    )

    menu_item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("menu_items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Ordered menu item",
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Line position within the order",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Units ordered",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Unit price snapshot",
    )

    size: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Size variant label",
    )

    rating: Mapped[Optional[int]] = mapped_column(
        SmallInteger,
        nullable=True,
        comment="Review rating",
    )

    comment: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Review comment",
    )

    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the review was attached",
    )

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="items",
    )

    menu_item: Mapped["MenuItem"] = relationship(
        "MenuItem",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_order_items_menu_reviewed", "menu_item_id", "reviewed_at"),
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_order_items_rating_range",
        ),
    )

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @property
    def is_reviewed(self) -> bool:
        return self.rating is not None

    def __repr__(self) -> str:
        return (
            f"<OrderItem(menu_item_id={self.menu_item_id}, "
            f"quantity={self.quantity}, price={self.price})>"
        )


class PaymentTransaction(BaseModel):
    """
    Gateway transaction opened for an order.

    Each initiation gets its own row, so a callback for an earlier payment
    page the customer still completes is matched to its order. The order's
    ``app_trans_id`` holds the most recent one.

    Attributes:
        order_pk: Order being paid
        app_trans_id: Gateway correlation id
        amount: Integer amount sent to the gateway
        order_url: Payment page returned by the gateway
    """

    __tablename__ = "payment_transactions"

    order_pk: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Order being paid",
    )

    app_trans_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="Payment gateway correlation id",
    )

    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Amount sent to the gateway",
    )

    order_url: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
        comment="Gateway payment page",
    )

    def __repr__(self) -> str:
        return f"<PaymentTransaction(app_trans_id={self.app_trans_id}, amount={self.amount})>"
