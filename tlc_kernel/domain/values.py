"""
Values -- Decimal money helpers shared by every engine.

Responsibility:
    Converts caller-supplied amounts, minutes, miles and hours to Decimal,
    rejects anything non-numeric or negative before computation begins, and
    rounds currency amounts to cents with ROUND_HALF_UP.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic: floats and booleans are rejected, never coerced.
    - Currency amounts leave the engines rounded to 2 decimal places.

Failure modes:
    - InvalidInputError for non-numeric, non-finite, out-of-range or
      negative values.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from tlc_kernel.exceptions import InvalidInputError

ZERO = Decimal("0")
CENT = Decimal("0.01")
MINUTES_PER_HOUR = Decimal("60")

# Keeps every product of an input and a rate quantizable to cents within
# the default 28-digit context.
MAX_MAGNITUDE = Decimal("1e12")


def to_decimal(value: Any, field: str) -> Decimal:
    """
    Convert an int, numeric string or Decimal to a finite Decimal.

    Raises:
        InvalidInputError: for floats, booleans, None, non-numeric strings,
            NaN, infinities and magnitudes of MAX_MAGNITUDE or more.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(field, value, "must be numeric")
    if isinstance(value, float):
        raise InvalidInputError(field, value, "floats are not accepted; use Decimal or str")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidInputError(field, value, "must be numeric") from exc
    else:
        raise InvalidInputError(field, value, f"unsupported type {type(value).__name__}")

    if not result.is_finite():
        raise InvalidInputError(field, value, "must be finite")
    if result.copy_abs() >= MAX_MAGNITUDE:
        raise InvalidInputError(field, value, "out of range")
    return result


def non_negative(value: Any, field: str) -> Decimal:
    """Convert with to_decimal() and reject values below zero."""
    result = to_decimal(value, field)
    if result < ZERO:
        raise InvalidInputError(field, value, "must not be negative")
    return result


def non_negative_int(value: Any, field: str) -> int:
    """Validate a count (rides, hours threshold) as a non-negative int."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(field, value, "must be an integer")
    if value < 0:
        raise InvalidInputError(field, value, "must not be negative")
    return value


def round_currency(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_ratio(value: Decimal, places: int = 4) -> Decimal:
    """Round a ratio (utilization, percentages) for reporting."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
