"""
Database models package initialization.

This module exports all database models for SQLAlchemy and Alembic auto-generation.
Models are imported here to ensure they are registered with the Base metadata
for proper migration generation and relationship resolution.
"""

from src.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from src.database.models.catalog import MenuItem
from src.database.models.order import Order, OrderItem, PaymentTransaction
from src.database.models.payment_method import PaymentMethod
from src.database.models.user import User, UserRole
from src.database.models.voucher import Voucher

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "MenuItem",
    "Order",
    "OrderItem",
    "PaymentMethod",
    "PaymentTransaction",
    "User",
    "UserRole",
    "Voucher",
]
