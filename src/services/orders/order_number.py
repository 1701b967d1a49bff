"""Human-readable order identifiers."""

from datetime import datetime

from src.services.orders.errors import InvalidInputError


def generate_order_id(email: str, now: datetime) -> str:
    """
    Build the order identifier for a customer.

    The identifier is the first character of the email upper-cased followed
    by ``YYYYMMDD`` and ``HHMMSS`` of ``now``, e.g. ``J20250101093015``. Two
    submissions by the same customer within one second therefore collide,
    which the unique column turns into a duplicate-submission error.

    Args:
        email: Customer email address
        now: Creation time

    Returns:
        Order identifier string

    Raises:
        InvalidInputError: If the email is empty
    """
    email = (email or "").strip()
    if not email:
        raise InvalidInputError("Email is required to build an order id")

    return f"{email[0].upper()}{now:%Y%m%d}{now:%H%M%S}"
