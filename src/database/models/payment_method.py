"""
Payment method model referenced by orders.
"""

from typing import Optional

from sqlalchemy import Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseModel
from src.services.orders.enums import PaymentMethodType, enum_values


class PaymentMethod(BaseModel):
    """
    Payment option offered at checkout.

    Attributes:
        name: Display name
        type: COD or ZALOPAY; ZALOPAY orders are sent to the payment gateway
        description: Optional text shown to the customer
        status: ``active`` or ``inactive``
    """

    __tablename__ = "payment_methods"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Payment method name",
    )

    type: Mapped[PaymentMethodType] = mapped_column(
        SQLEnum(
            PaymentMethodType,
            name="payment_method_type",
            values_callable=enum_values,
        ),
        nullable=False,
        default=PaymentMethodType.COD,
        comment="Payment method type",
    )

    description: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Payment method description",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="active",
        comment="active or inactive",
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<PaymentMethod(name={self.name}, type={self.type})>"
