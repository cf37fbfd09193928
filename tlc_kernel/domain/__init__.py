"""
Pure domain layer.

Value helpers and the clock abstraction, with NO dependencies on the ORM,
the database or I/O.
"""

from tlc_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from tlc_kernel.domain.values import (
    CENT,
    MINUTES_PER_HOUR,
    ZERO,
    non_negative,
    non_negative_int,
    round_currency,
    round_ratio,
    to_decimal,
)

__all__ = [
    "CENT",
    "Clock",
    "DeterministicClock",
    "MINUTES_PER_HOUR",
    "SystemClock",
    "ZERO",
    "non_negative",
    "non_negative_int",
    "round_currency",
    "round_ratio",
    "to_decimal",
]
