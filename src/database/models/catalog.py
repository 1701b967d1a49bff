"""
Menu item model referenced by order lines.

Menu items are managed by the catalog service. Ordering reads their price
and size variants, decrements tracked stock and maintains the running rating
aggregate fed by order reviews.
"""

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseModel


class MenuItem(BaseModel):
    """
    Orderable dish.

    Attributes:
        name: Display name
        price: Base price, used when the line names no size; may be null for
            items sold only by variant
        variants: List of ``{"size": str, "price": number}`` entries
        stock: Units available; null means stock is not tracked
        star: Aggregate rating rounded to one decimal
        rating_sum: Sum of every accepted rating
        rating_count: Number of accepted ratings
    """

    __tablename__ = "menu_items"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Menu item name",
    )

    price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
        comment="Base price when no size variant is chosen",
    )

    variants: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
        comment="Size variants as a list of {size, price}",
    )

    stock: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Available units, null when untracked",
    )

    star: Mapped[Decimal] = mapped_column(
        Numeric(precision=2, scale=1),
        nullable=False,
        default=Decimal("0"),
        server_default=text("0"),
        comment="Aggregate rating, one decimal",
    )

    rating_sum: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Sum of accepted ratings",
    )

    rating_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Number of accepted ratings",
    )

    __table_args__ = (
        CheckConstraint("stock IS NULL OR stock >= 0", name="ck_menu_items_stock_non_negative"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_menu_items_price_non_negative"),
    )

    def variant_price(self, size: str) -> Optional[Decimal]:
        """
        Look up the price of a size variant.

        Args:
            size: Variant label, compared exactly

        Returns:
            Variant price, or None if the item has no such size
        """
        for variant in self.variants or []:
            if variant.get("size") == size and variant.get("price") is not None:
                return Decimal(str(variant["price"]))
        return None

    @property
    def tracks_stock(self) -> bool:
        """Check if stock is tracked for this item."""
        return self.stock is not None

    def __repr__(self) -> str:
        return f"<MenuItem(id={self.id}, name={self.name}, stock={self.stock})>"
