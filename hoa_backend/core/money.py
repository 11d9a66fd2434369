from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def quantize_money(val) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(val).quantize(CENT, rounding=ROUND_HALF_UP)
