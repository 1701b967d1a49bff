"""
Pytest configuration and shared test fixtures.

This module provides pytest configuration, fixtures, and test utilities for
the food ordering backend: environment defaults for the settings layer, a
test client for the FastAPI application and factories for transient ORM
objects (users, menu items, payment methods, vouchers and orders).
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_NOTIFICATIONS_ENABLED", "false")
os.environ.setdefault("APP_ZALOPAY_APP_ID", "2553")
os.environ.setdefault("APP_ZALOPAY_KEY1", "test-key1")
os.environ.setdefault("APP_ZALOPAY_KEY2", "test-key2")
os.environ.setdefault("APP_RATE_LIMIT_DEFAULT", "10000/minute")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Generator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.core.config import get_settings
from src.database.models import (
    MenuItem,
    Order,
    OrderItem,
    PaymentMethod,
    User,
    UserRole,
    Voucher,
)
from src.services.orders.enums import OrderStatus, PaymentMethodType, PaymentStatus

NOW = datetime(2025, 1, 1, 9, 30, 15, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Make every test read settings from the current environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now() -> datetime:
    """Fixed request time used across order tests."""
    return NOW


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """
    Create a synchronous test client for FastAPI application.

    Server errors are returned as responses so tests can assert on the
    500 body.

    Example:
        def test_health_endpoint(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    from src.main import app

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def mock_session() -> MagicMock:
    """Async SQLAlchemy session double."""
    session = MagicMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock(return_value=None)
    return session


# ============================================================================
# Model factories
# ============================================================================


@pytest.fixture
def make_user() -> Callable[..., User]:
    def _make(
        email: str = "john@example.com",
        full_name: str = "John Nguyen",
        role: UserRole = UserRole.USER,
        is_active: bool = True,
    ) -> User:
        return User(
            id=uuid.uuid4(),
            email=email,
            full_name=full_name,
            role=role,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user()


@pytest.fixture
def admin(make_user) -> User:
    return make_user(email="admin@example.com", full_name="Admin", role=UserRole.ADMIN)


@pytest.fixture
def make_menu_item() -> Callable[..., MenuItem]:
    def _make(
        name: str = "Pho Bo",
        price: Optional[str] = "50000",
        stock: Optional[int] = None,
        variants: Optional[list[dict[str, Any]]] = None,
    ) -> MenuItem:
        return MenuItem(
            id=uuid.uuid4(),
            name=name,
            price=Decimal(price) if price is not None else None,
            variants=variants or [],
            stock=stock,
            star=Decimal("0"),
            rating_sum=0,
            rating_count=0,
        )

    return _make


@pytest.fixture
def make_payment_method() -> Callable[..., PaymentMethod]:
    def _make(
        type: PaymentMethodType = PaymentMethodType.COD,
        status: str = "active",
    ) -> PaymentMethod:
        return PaymentMethod(
            id=uuid.uuid4(),
            name="ZaloPay" if type == PaymentMethodType.ZALOPAY else "Cash on delivery",
            type=type,
            status=status,
        )

    return _make


@pytest.fixture
def make_voucher() -> Callable[..., Voucher]:
    def _make(
        code: str = "SAVE10",
        discount_percent: str = "10",
        max_discount: Optional[str] = "50000",
        min_price: str = "100000",
        limit: int = 5,
    ) -> Voucher:
        return Voucher(
            id=uuid.uuid4(),
            code=code,
            name=f"{code} voucher",
            discount_percent=Decimal(discount_percent),
            max_discount=Decimal(max_discount) if max_discount is not None else None,
            min_price=Decimal(min_price),
            start=NOW - timedelta(days=1),
            end=NOW + timedelta(days=1),
            limit=limit,
        )

    return _make


@pytest.fixture
def make_order(make_menu_item, make_payment_method) -> Callable[..., Order]:
    """
    Build a transient order.

    ``lines`` is a list of ``(menu_item, quantity, unit_price)`` tuples; by
    default one line of two 50000 dishes.
    """

    def _make(
        user: User,
        lines: Optional[list[tuple[MenuItem, int, str]]] = None,
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        created_at: datetime = NOW,
        shipping_cost: str = "30000",
        discount: str = "0",
        order_id: str = "J20250101093015",
        app_trans_id: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> Order:
        if lines is None:
            lines = [(make_menu_item(), 2, "50000")]

        items = []
        for position, (menu_item, quantity, price) in enumerate(lines):
            item = OrderItem(
                id=uuid.uuid4(),
                menu_item_id=menu_item.id,
                position=position,
                quantity=quantity,
                price=Decimal(price),
            )
            item.menu_item = menu_item
            items.append(item)

        subtotal = sum((item.line_total for item in items), Decimal("0"))
        method = payment_method or make_payment_method()
        order = Order(
            id=uuid.uuid4(),
            order_id=order_id,
            user_id=user.id,
            status=status,
            payment_status=payment_status,
            shipping_cost=Decimal(shipping_cost),
            discount=Decimal(discount),
            total=subtotal - Decimal(discount) + Decimal(shipping_cost),
            payment_method_id=method.id,
            app_trans_id=app_trans_id,
            receiver_name="John Nguyen",
            receiver_phone="0901234567",
            shipping_address="12 Le Loi, District 1, Ho Chi Minh City",
            created_at=created_at,
            updated_at=created_at,
            items=items,
        )
        order.user = user
        order.payment_method = method
        order.voucher = None
        return order

    return _make
