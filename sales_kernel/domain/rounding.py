"""
Decimal rounding helpers shared by the sales engines.

All amounts are ``Decimal``. Monetary totals are rounded to
``DEFAULT_SCALE`` places with ROUND_HALF_UP; intermediate unit-price
conversions keep ``COMPUTATION_SCALING`` places.
"""

from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal

DEFAULT_SCALE = 2
COMPUTATION_SCALING = 20

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def quantum(places: int) -> Decimal:
    """Return the quantize exponent for ``places`` decimal places."""
    return Decimal(10) ** -places


def round_half_up(value: Decimal, places: int = DEFAULT_SCALE) -> Decimal:
    return value.quantize(quantum(places), rounding=ROUND_HALF_UP)


def round_half_even(value: Decimal, places: int = DEFAULT_SCALE) -> Decimal:
    return value.quantize(quantum(places), rounding=ROUND_HALF_EVEN)


def divide(numerator: Decimal, denominator: Decimal, places: int) -> Decimal:
    """Divide and round HALF_UP to ``places``.

    Division happens at a precision wide enough for COMPUTATION_SCALING, so
    the only rounding that matters is the final quantize.
    """
    return round_half_up(numerator / denominator, places)


def compute_rate(denominator: Decimal, numerator: Decimal) -> Decimal:
    """Percentage of ``numerator`` over ``denominator``.

    0 when the denominator is zero, else round(100 * num / den, 2, HALF_UP).
    """
    if denominator == 0:
        return ZERO
    return divide(numerator * HUNDRED, denominator, DEFAULT_SCALE)


def to_decimal(value: object) -> Decimal:
    """Coerce ints, strings and Decimals to Decimal. Floats are rejected."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError(f"Float amounts are not accepted: {value!r}")
    return Decimal(str(value))
