"""Tests for human-readable order identifiers."""

from datetime import datetime, timezone

import pytest

from src.services.orders.errors import InvalidInputError
from src.services.orders.order_number import generate_order_id


class TestGenerateOrderId:
    """Order id format."""

    def test_format(self):
        now = datetime(2025, 1, 1, 9, 30, 15, tzinfo=timezone.utc)

        assert generate_order_id("john@example.com", now) == "J20250101093015"

    def test_first_character_is_upper_cased(self):
        now = datetime(2024, 12, 31, 23, 59, 59)

        assert generate_order_id("  alice@example.com", now) == "A20241231235959"

    def test_same_second_collides(self):
        now = datetime(2025, 3, 4, 5, 6, 7)

        assert generate_order_id("bob@example.com", now) == generate_order_id(
            "bob@example.com", now.replace(microsecond=999999)
        )

    @pytest.mark.parametrize("email", ["", "   ", None])
    def test_empty_email_rejected(self, email):
        with pytest.raises(InvalidInputError):
            generate_order_id(email, datetime(2025, 1, 1))
