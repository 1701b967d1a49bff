"""Order status and payment status enums for the order lifecycle.

Order status and payment status are orthogonal. Status moves forward only:

- PENDING -> PROCESSING (gateway payment confirmed, or admin)
- PENDING -> CANCELLED (owner within the cancellation window, admin, or a
  failed gateway poll)
- PROCESSING -> SUCCESS (admin), CANCELLED (admin or failed gateway poll)
- SUCCESS -> (terminal state)
- CANCELLED -> (terminal state)
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if status is a terminal state (SUCCESS or CANCELLED)."""
        return self in {OrderStatus.SUCCESS, OrderStatus.CANCELLED}

    def is_open(self) -> bool:
        """Check if the order can still be settled by the payment gateway."""
        return self in {OrderStatus.PENDING, OrderStatus.PROCESSING}


class PaymentStatus(str, Enum):
    """Payment status tracked alongside the order status."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PaymentMethodType(str, Enum):
    """How an order is paid for."""

    COD = "cod"
    ZALOPAY = "zalopay"


def enum_values(enum_cls: type[Enum]) -> list[str]:
    """Database values for an enum column (its ``value``s, not member names)."""
    return [member.value for member in enum_cls]
