"""Rounding helpers."""

import math


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, with halves going towards positive infinity.

    Python's built-in ``round`` rounds halves to even, which would make an
    average of 120.5 come out as 120.
    """
    return math.floor(value + 0.5)
