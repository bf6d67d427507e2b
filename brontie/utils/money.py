"""Money helpers. Amounts are EUR decimals; Stripe wants integer cents."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal("0.01")


def to_decimal(amount: float | int | str | Decimal) -> Decimal:
    # str() first so 12.345 stays 12.345 instead of 12.3449999...
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def quantize_cents(amount: float | int | str | Decimal) -> Decimal:
    """Round to the cent, half-up."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def round_money(amount: float | int | str | Decimal) -> float:
    return float(quantize_cents(amount))


def to_minor_units(amount: float | int | str | Decimal) -> int:
    """
    Convert a EUR amount to integer cents for the Stripe API.

    Half-up at the cent boundary: 12.345 -> 1235, 0.005 -> 1.
    """
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sum_money(amounts: Iterable[float]) -> float:
    """Sum cent amounts without float drift."""
    total = Decimal("0")
    for amount in amounts:
        total += quantize_cents(amount)
    return float(total)
