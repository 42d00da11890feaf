"""Rounding shared by the metrics and display formatters."""

import math
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value: float, digits: int = 0):
    """Round halves up (2.5 -> 3, 1.25 -> 1.3), unlike round() which rounds them to even.

    Returns an int for digits=0, otherwise a float.
    """
    if digits == 0:
        return int(math.floor(value + 0.5))
    step = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(step, rounding=ROUND_HALF_UP))
