"""Unit conversion helpers shared across the service.


- MINOR_UNITS_PER_MAJOR controls the currency granularity (kobo per naira).
- naira_to_minor / minor_to_naira convert between human NGN strings and integer kobo.
"""

from django.conf import settings
from decimal import Decimal, InvalidOperation, ROUND_DOWN

MINOR_UNITS_PER_MAJOR = getattr(settings, "MINOR_UNITS_PER_MAJOR", 100)


def naira_to_minor(amount_naira: str | Decimal | int) -> int:
    """
    Convert a human-readable NGN amount (e.g., "1500.50") to integer kobo.
    Raises ValueError for anything that is not a finite decimal.
    """
    try:
        amount = Decimal(str(amount_naira).strip())
    except InvalidOperation:
        raise ValueError(f"not an amount: {amount_naira!r}")
    if not amount.is_finite():
        raise ValueError(f"not an amount: {amount_naira!r}")
    return int((amount * Decimal(MINOR_UNITS_PER_MAJOR)).quantize(Decimal("1"), rounding=ROUND_DOWN))


def minor_to_naira(amount_minor: int) -> Decimal:
    """
    Convert integer kobo back to a 2-decimal NGN amount.
    """
    return (Decimal(amount_minor) / Decimal(MINOR_UNITS_PER_MAJOR)).quantize(Decimal("0.01"), rounding=ROUND_DOWN)


def format_naira(amount_minor: int) -> str:
    # Format only when returning as text
    return f"{minor_to_naira(amount_minor):.2f}"
