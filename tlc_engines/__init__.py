"""
Pure calculation engines for minimum-pay compliance.

No I/O, no clock access, no shared mutable state.  Every public engine call
emits a TLC_ENGINE_TRACE log record.
"""

from tlc_engines.minimum_pay import (
    HourlyMinimumResult,
    PerRideMinimumResult,
    WeeklyMinimumResult,
    calculate_hourly_minimum,
    calculate_per_ride_minimum,
    calculate_weekly_minimum,
)

__all__ = [
    "HourlyMinimumResult",
    "PerRideMinimumResult",
    "WeeklyMinimumResult",
    "calculate_hourly_minimum",
    "calculate_per_ride_minimum",
    "calculate_weekly_minimum",
]
