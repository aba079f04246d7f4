"""Money helpers - single currency, two decimal places"""

from decimal import Decimal, ROUND_HALF_UP

MINOR_UNIT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Quantize to the currency's minor unit using round-half-up"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)
