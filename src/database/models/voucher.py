"""
Voucher model referenced by orders.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseModel


class Voucher(BaseModel):
    """
    Percentage discount code with a validity window and usage quota.

    Attributes:
        code: Code typed by the customer, unique
        name: Display name
        discount_percent: Percentage of the subtotal taken off
        max_discount: Optional cap on the discount amount
        min_price: Minimum subtotal for the voucher to apply
        start: Start of the validity window (inclusive)
        end: End of the validity window (inclusive)
        limit: Maximum number of non-cancelled orders using the voucher
    """

    __tablename__ = "vouchers"

    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Voucher code",
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Voucher display name",
    )

    discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=False,
        comment="Discount percentage of the subtotal",
    )

    max_discount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
        comment="Upper bound of the discount amount",
    )

    min_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0"),
        comment="Minimum order subtotal",
    )

    start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Validity window start",
    )

    end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Validity window end",
    )

    limit: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Maximum number of non-cancelled orders",
    )

    __table_args__ = (
        Index("ix_vouchers_window", "start", "end"),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_vouchers_discount_percent_range",
        ),
        CheckConstraint('"limit" >= 0', name="ck_vouchers_limit_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Voucher(code={self.code}, percent={self.discount_percent})>"
