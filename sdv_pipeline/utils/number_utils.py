from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float]


def round_half_up(value: Number, ndigits: int = 0) -> float:
    """
    Round halves away from zero.

    ``round()`` rounds halves to even, so 12.5 would become 12; percentages
    shown to users are expected to read 13.
    """
    quantum = Decimal(1).scaleb(-ndigits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if ndigits == 0 else float(rounded)


def percent(numerator: Number, denominator: Number, ndigits: int = 0) -> float:
    """``numerator / denominator * 100`` rounded, or 0 when the denominator is 0."""
    if not denominator:
        return 0
    return round_half_up(numerator / denominator * 100, ndigits)
