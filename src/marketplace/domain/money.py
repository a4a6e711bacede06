"""Parsing of monetary input into positive ``Decimal`` prices."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from marketplace.domain.errors import ValidationError


def parse_price(value: object, field: str = "price") -> Decimal:
    """Convert *value* to a positive ``Decimal``.

    Floats are converted through ``str`` so ``80.1`` becomes ``Decimal("80.1")``
    rather than its binary expansion.

    Args:
        value: Raw input (``Decimal``, ``int``, ``str``, or ``float``).
        field: Field name used in the error message.

    Returns:
        The parsed price.

    Raises:
        ValidationError: If *value* is missing, not a finite number, or not
            strictly positive.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number") from None
    if not price.is_finite():
        raise ValidationError(f"{field} must be a number")
    if price <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return price
