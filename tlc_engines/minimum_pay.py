"""
tlc_engines.minimum_pay -- Per-ride, hourly and weekly minimum-pay guarantees.

Responsibility:
    Compute the shortfall between what a driver was paid and the regulatory
    floor at three granularities:

    * per ride:  floor = minutes x per_minute_rate + miles x per_mile_rate
    * per hour:  floor = online_minutes / 60 x hourly_minimum_rate
    * per week:  floor = online_hours x hourly_minimum_rate, netted against
      earnings plus the per-ride and hourly adjustments already paid

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock access.
    Imports only tlc_kernel value helpers and tlc_config schema.
    Consumed by DriverSessionStore, SettlementProcessor and the trip auditor.

Invariants enforced:
    - adjustment = max(0, floor - paid) >= 0; is_compliant iff adjustment == 0.
    - Zero online time short-circuits to zero floor and zero adjustment.
    - The weekly top-up is computed only for eligible drivers and never
      re-derives the per-ride/hourly sums it is given.
    - Currency outputs are rounded to cents, ROUND_HALF_UP.

Failure modes:
    - InvalidInputError for negative or non-numeric inputs, engaged time
      above online time, or a window that ends before it starts.  Nothing
      is computed when validation fails.

Audit relevance:
    Every call is traced via ``@traced_engine``; the fingerprint ties an
    adjustment back to its exact inputs.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from tlc_config.schema import RateConfig
from tlc_engines.tracer import traced_engine
from tlc_kernel.domain.values import (
    MINUTES_PER_HOUR,
    ZERO,
    non_negative,
    non_negative_int,
    round_currency,
    round_ratio,
)
from tlc_kernel.exceptions import InvalidInputError
from tlc_kernel.logging_config import get_logger

logger = get_logger("engines.minimum_pay")


@dataclass(frozen=True)
class PerRideMinimumResult:
    """Outcome of the per-ride floor check."""

    trip_time_minutes: Decimal
    trip_distance_miles: Decimal
    time_component: Decimal
    distance_component: Decimal
    minimum_pay: Decimal
    actual_pay: Decimal
    adjustment: Decimal
    is_compliant: bool


@dataclass(frozen=True)
class HourlyMinimumResult:
    """Outcome of the hourly floor check for one window."""

    driver_id: str
    window_start: datetime
    window_end: datetime
    total_online_minutes: Decimal
    engaged_minutes: Decimal
    waiting_minutes: Decimal
    utilization_rate: Decimal
    rides_completed: int
    required_floor: Decimal
    total_earnings: Decimal
    adjustment: Decimal
    is_compliant: bool


@dataclass(frozen=True)
class WeeklyMinimumResult:
    """Outcome of the weekly guarantee check."""

    driver_id: str
    week_start: date
    week_end: date
    total_online_hours: Decimal
    total_engaged_hours: Decimal
    utilization_rate: Decimal
    total_rides: int
    total_earnings: Decimal
    per_ride_adjustments: Decimal
    hourly_adjustments: Decimal
    is_eligible: bool
    eligibility_reason: str | None
    weekly_floor: Decimal
    already_covered: Decimal
    top_up: Decimal
    final_payout: Decimal


def _check_window(start, end, field: str) -> None:
    if end < start:
        raise InvalidInputError(field, f"{start}..{end}", "window ends before it starts")


# ---------------------------------------------------------------------------
# Per ride
# ---------------------------------------------------------------------------


@traced_engine(
    "minimum_pay.per_ride",
    "1.0",
    fingerprint_fields=("trip_time_minutes", "trip_distance_miles", "actual_driver_payout"),
)
def calculate_per_ride_minimum(
    *,
    trip_time_minutes: Decimal | int | str,
    trip_distance_miles: Decimal | int | str,
    actual_driver_payout: Decimal | int | str,
    config: RateConfig,
) -> PerRideMinimumResult:
    """
    Per-ride floor: minutes x per-minute rate + miles x per-mile rate.

    Zero-time and zero-distance rides are valid and simply produce a small
    (possibly zero) floor.

    Raises:
        InvalidInputError: negative or non-numeric input.
    """
    try:
        minutes = non_negative(trip_time_minutes, "trip_time_minutes")
        miles = non_negative(trip_distance_miles, "trip_distance_miles")
        payout = non_negative(actual_driver_payout, "actual_driver_payout")
    except InvalidInputError as exc:
        logger.warning("per_ride_minimum_rejected", extra={"field": exc.field, "reason": exc.reason})
        raise

    time_component = minutes * config.per_minute_rate
    distance_component = miles * config.per_mile_rate
    floor = round_currency(time_component + distance_component)
    actual = round_currency(payout)
    adjustment = max(ZERO, floor - actual)

    logger.debug(
        "per_ride_minimum_calculated",
        extra={
            "trip_time_minutes": str(minutes),
            "trip_distance_miles": str(miles),
            "minimum_pay": str(floor),
            "adjustment": str(adjustment),
        },
    )
    return PerRideMinimumResult(
        trip_time_minutes=minutes,
        trip_distance_miles=miles,
        time_component=round_currency(time_component),
        distance_component=round_currency(distance_component),
        minimum_pay=floor,
        actual_pay=actual,
        adjustment=adjustment,
        is_compliant=adjustment == ZERO,
    )


# ---------------------------------------------------------------------------
# Hourly
# ---------------------------------------------------------------------------


@traced_engine(
    "minimum_pay.hourly",
    "1.0",
    fingerprint_fields=(
        "driver_id",
        "window_start",
        "window_end",
        "total_online_minutes",
        "engaged_minutes",
        "total_earnings",
    ),
)
def calculate_hourly_minimum(
    *,
    driver_id: str,
    window_start: datetime,
    window_end: datetime,
    total_online_minutes: Decimal | int | str,
    engaged_minutes: Decimal | int | str,
    total_earnings: Decimal | int | str,
    rides_completed: int,
    config: RateConfig,
) -> HourlyMinimumResult:
    """
    Hourly floor for one window of online time.

    Utilization is engaged time over online time.  A window with zero online
    minutes returns a zero floor, zero utilization and zero adjustment.

    Raises:
        InvalidInputError: negative values, engaged minutes above online
            minutes, or window_end before window_start.
    """
    t0 = time.monotonic()
    try:
        _check_window(window_start, window_end, "hour_window")
        online = non_negative(total_online_minutes, "total_online_minutes")
        engaged = non_negative(engaged_minutes, "engaged_minutes")
        earnings = non_negative(total_earnings, "total_earnings")
        rides = non_negative_int(rides_completed, "rides_completed")
        if engaged > online:
            raise InvalidInputError(
                "engaged_minutes", engaged, f"exceeds total_online_minutes ({online})"
            )
    except InvalidInputError as exc:
        logger.warning(
            "hourly_minimum_rejected",
            extra={"driver_id": driver_id, "field": exc.field, "reason": exc.reason},
        )
        raise

    if online == ZERO:
        floor = ZERO
        utilization = ZERO
    else:
        floor = round_currency(online / MINUTES_PER_HOUR * config.hourly_minimum_rate)
        utilization = round_ratio(engaged / online)

    actual = round_currency(earnings)
    adjustment = max(ZERO, floor - actual)

    logger.info(
        "hourly_minimum_calculated",
        extra={
            "driver_id": driver_id,
            "total_online_minutes": str(online),
            "required_floor": str(floor),
            "adjustment": str(adjustment),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        },
    )
    return HourlyMinimumResult(
        driver_id=driver_id,
        window_start=window_start,
        window_end=window_end,
        total_online_minutes=online,
        engaged_minutes=engaged,
        waiting_minutes=online - engaged,
        utilization_rate=utilization,
        rides_completed=rides,
        required_floor=floor,
        total_earnings=actual,
        adjustment=adjustment,
        is_compliant=adjustment == ZERO,
    )


# ---------------------------------------------------------------------------
# Weekly
# ---------------------------------------------------------------------------


def weekly_ineligibility_reason(
    total_rides: int,
    total_online_hours: Decimal,
    config: RateConfig,
) -> str | None:
    """Why the weekly guarantee does not apply, or None when it does."""
    if total_rides < config.weekly_min_rides:
        return f"Minimum {config.weekly_min_rides} ride(s) required for weekly guarantee"
    if total_online_hours < config.weekly_min_online_hours:
        return (
            f"Minimum {config.weekly_min_online_hours} hour(s) online required "
            f"for weekly guarantee"
        )
    return None


@traced_engine(
    "minimum_pay.weekly",
    "1.0",
    fingerprint_fields=(
        "driver_id",
        "week_start",
        "week_end",
        "total_online_hours",
        "total_rides",
        "total_earnings",
        "per_ride_adjustments",
        "hourly_adjustments",
    ),
)
def calculate_weekly_minimum(
    *,
    driver_id: str,
    week_start: date,
    week_end: date,
    total_online_hours: Decimal | int | str,
    total_engaged_hours: Decimal | int | str,
    total_rides: int,
    total_earnings: Decimal | int | str,
    per_ride_adjustments: Decimal | int | str,
    hourly_adjustments: Decimal | int | str,
    config: RateConfig,
) -> WeeklyMinimumResult:
    """
    Weekly guarantee with eligibility gate.

    Ineligible drivers (too few rides or online hours) get a valid result
    with ``is_eligible=False``, a reason, and no top-up however large the
    shortfall.  Eligible drivers get
    ``top_up = max(0, hours x rate - (earnings + per_ride + hourly))``.

    The per-ride and hourly sums are trusted as supplied; they are what was
    already disbursed this week.

    Raises:
        InvalidInputError: negative values, engaged hours above online
            hours, or week_end before week_start.
    """
    try:
        _check_window(week_start, week_end, "week_window")
        online_hours = non_negative(total_online_hours, "total_online_hours")
        engaged_hours = non_negative(total_engaged_hours, "total_engaged_hours")
        rides = non_negative_int(total_rides, "total_rides")
        earnings = round_currency(non_negative(total_earnings, "total_earnings"))
        per_ride = round_currency(non_negative(per_ride_adjustments, "per_ride_adjustments"))
        hourly = round_currency(non_negative(hourly_adjustments, "hourly_adjustments"))
        if engaged_hours > online_hours:
            raise InvalidInputError(
                "total_engaged_hours", engaged_hours, f"exceeds total_online_hours ({online_hours})"
            )
    except InvalidInputError as exc:
        logger.warning(
            "weekly_minimum_rejected",
            extra={"driver_id": driver_id, "field": exc.field, "reason": exc.reason},
        )
        raise

    utilization = ZERO if online_hours == ZERO else round_ratio(engaged_hours / online_hours)
    already_covered = earnings + per_ride + hourly
    reason = weekly_ineligibility_reason(rides, online_hours, config)

    if reason is not None:
        weekly_floor = ZERO
        top_up = ZERO
    else:
        weekly_floor = round_currency(online_hours * config.hourly_minimum_rate)
        top_up = max(ZERO, weekly_floor - already_covered)

    logger.info(
        "weekly_minimum_calculated",
        extra={
            "driver_id": driver_id,
            "week_start": week_start,
            "is_eligible": reason is None,
            "weekly_floor": str(weekly_floor),
            "top_up": str(top_up),
        },
    )
    return WeeklyMinimumResult(
        driver_id=driver_id,
        week_start=week_start,
        week_end=week_end,
        total_online_hours=online_hours,
        total_engaged_hours=engaged_hours,
        utilization_rate=utilization,
        total_rides=rides,
        total_earnings=earnings,
        per_ride_adjustments=per_ride,
        hourly_adjustments=hourly,
        is_eligible=reason is None,
        eligibility_reason=reason,
        weekly_floor=weekly_floor,
        already_covered=already_covered,
        top_up=top_up,
        final_payout=already_covered + top_up,
    )
