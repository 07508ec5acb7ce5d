# app/core/money.py

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# Single-currency market: two decimal places
MINOR_UNIT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize to the minor unit with round-half-up, the rounding PayPal expects."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid money amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")

    return amount.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    return f"{to_money(value):.2f}"
