"""
User model referenced by orders.

Accounts are created and authenticated by the identity service; this table
only carries what order placement needs: the email (order id prefix and
confirmation emails), the display name and the role used for admin checks.
"""

import enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import BaseModel
from src.services.orders.enums import enum_values

if TYPE_CHECKING:
    from src.database.models.order import Order


class UserRole(str, enum.Enum):
    """User role enumeration for role-based access control."""

    USER = "user"
    ADMIN = "admin"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        """
        Convert string to UserRole enum.

        Raises:
            ValueError: If value is not a valid role
        """
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Invalid role: {value}")


class User(BaseModel):
    """
    Customer or administrator account.

    Attributes:
        id: Unique user identifier (UUID)
        email: Login email, unique
        full_name: Display name shown on reviews
        role: USER or ADMIN
        is_active: Inactive accounts are rejected at authentication
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="User email address",
    )

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="User display name",
    )

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(
            UserRole,
            name="user_role",
            values_callable=enum_values,
        ),
        nullable=False,
        default=UserRole.USER,
        comment="User role for access control",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the account may authenticate",
    )

    orders: Mapped[list["Order"]] = relationship(
        "Order",
        back_populates="user",
        lazy="raise",
    )

    @property
    def is_admin(self) -> bool:
        """Check if user has the admin role."""
        return self.role == UserRole.ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
