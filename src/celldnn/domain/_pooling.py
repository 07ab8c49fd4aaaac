"""
Pooling modes.
"""

from __future__ import annotations

from enum import Enum


class Pooling(Enum):
    """
    Reduction applied by a pooling cell over each window.

    MAX
        Maximum over mapped channels and in-bounds window positions; the
        position of the maximum is recorded for the backward pass.
    AVERAGE
        Mean over mapped channels and in-bounds window positions. Padded
        positions are excluded from the divisor in both directions.
    """

    MAX = "Max"
    AVERAGE = "Average"

    @classmethod
    def parse(cls, value: "Pooling | str") -> "Pooling":
        if isinstance(value, cls):
            return value
        for mode in cls:
            if str(value).lower() == mode.value.lower():
                return mode
        raise ValueError(f"Unknown pooling mode {value!r}")
