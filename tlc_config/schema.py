"""
Rate configuration schema (``tlc_config.schema``).

Responsibility
--------------
Frozen dataclasses describing a regulatory rate set: minimum-pay rates,
weekly eligibility thresholds, the regulatory fee schedule and the audit
tolerances.  Pure data, no behavior beyond self-validation.

Invariants enforced
-------------------
* Every rate, fee amount and tolerance is a non-negative ``Decimal``.
* A fee schedule names each trip field at most once.
* Instances are frozen; a loaded config is never mutated.

Failure modes
-------------
* ``RateConfigError`` on negative, non-numeric or inconsistent values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from tlc_kernel.exceptions import RateConfigError

# Trip record attributes a fee may be declared in.
FEE_FIELDS: frozenset[str] = frozenset(
    {
        "avf_fee",
        "bcf_fee",
        "hvrf_fee",
        "state_surcharge",
        "congestion_fee",
        "airport_fee",
        "long_trip_surcharge",
        "out_of_town_return_fee",
        "cross_city_fee",
    }
)

# Finding categories a fee mismatch may be reported under.
FEE_FINDING_CATEGORIES: frozenset[str] = frozenset(
    {"tlc_fee_error", "airport_fee_error"}
)


class FeeKind(str, Enum):
    """How a fee amount is interpreted."""

    FLAT = "flat"  # dollars
    PERCENTAGE = "percentage"  # fraction of the fare subtotal


class FeeCondition(str, Enum):
    """When a fee applies to a trip."""

    ALWAYS = "always"
    CONGESTION_ZONE = "congestion_zone"
    AIRPORT = "airport"
    LONG_TRIP = "long_trip"
    OUT_OF_TOWN = "out_of_town"
    CROSS_BOROUGH = "cross_borough"


# Conditions decided by where the trip starts or ends.
ZONE_DEPENDENT_CONDITIONS: frozenset[FeeCondition] = frozenset(
    {
        FeeCondition.CONGESTION_ZONE,
        FeeCondition.AIRPORT,
        FeeCondition.OUT_OF_TOWN,
        FeeCondition.CROSS_BOROUGH,
    }
)


def _require_non_negative(name: str, value: Decimal) -> None:
    if not isinstance(value, Decimal):
        raise RateConfigError(f"{name} must be a Decimal, got {type(value).__name__}")
    if value < 0:
        raise RateConfigError(f"{name} must not be negative (got {value})")


@dataclass(frozen=True)
class FeeDefinition:
    """One regulatory fee or surcharge in the schedule."""

    name: str
    field: str
    kind: FeeKind
    amount: Decimal
    condition: FeeCondition = FeeCondition.ALWAYS
    finding_category: str = "tlc_fee_error"
    threshold_miles: Decimal | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.field not in FEE_FIELDS:
            raise RateConfigError(
                f"fee {self.name!r} declares unknown trip field {self.field!r}"
            )
        if self.finding_category not in FEE_FINDING_CATEGORIES:
            raise RateConfigError(
                f"fee {self.name!r} has unsupported finding category "
                f"{self.finding_category!r}"
            )
        _require_non_negative(f"fee {self.name} amount", self.amount)
        if self.condition == FeeCondition.LONG_TRIP:
            if self.threshold_miles is None:
                raise RateConfigError(f"long-trip fee {self.name!r} needs threshold_miles")
            _require_non_negative(f"fee {self.name} threshold_miles", self.threshold_miles)


@dataclass(frozen=True)
class AuditTolerances:
    """Thresholds the audit checkers compare against."""

    fare_variance: Decimal = Decimal("0.05")
    fare_critical_variance: Decimal = Decimal("1.00")
    fee_tolerance: Decimal = Decimal("0.01")
    pay_tolerance: Decimal = Decimal("0.01")
    distance_tolerance_percent: Decimal = Decimal("10")
    duration_variance_percent: Decimal = Decimal("15")
    duration_variance_minutes: Decimal = Decimal("5")
    min_speed_mph: Decimal = Decimal("0.5")
    max_speed_mph: Decimal = Decimal("120")
    max_detour_factor: Decimal = Decimal("3")
    max_plausible_toll: Decimal = Decimal("50.00")

    def __post_init__(self) -> None:
        for name in self.__dataclass_fields__:
            _require_non_negative(f"tolerance {name}", getattr(self, name))
        if self.min_speed_mph > self.max_speed_mph:
            raise RateConfigError("min_speed_mph exceeds max_speed_mph")
        if self.fare_critical_variance < self.fare_variance:
            raise RateConfigError("fare_critical_variance is below fare_variance")


@dataclass(frozen=True)
class RateConfig:
    """
    A complete regulatory rate set.

    Loaded once per process through ``tlc_config.get_active_rate_config()``
    (or built directly in tests) and passed to every engine call.
    """

    per_minute_rate: Decimal
    per_mile_rate: Decimal
    hourly_minimum_rate: Decimal
    weekly_min_rides: int
    weekly_min_online_hours: Decimal
    effective_date: date
    name: str = "custom"
    jurisdiction: str = ""
    currency: str = "USD"
    fees: tuple[FeeDefinition, ...] = ()
    tolerances: AuditTolerances = field(default_factory=AuditTolerances)
    checksum: str = ""

    def __post_init__(self) -> None:
        _require_non_negative("per_minute_rate", self.per_minute_rate)
        _require_non_negative("per_mile_rate", self.per_mile_rate)
        _require_non_negative("hourly_minimum_rate", self.hourly_minimum_rate)
        _require_non_negative("weekly_min_online_hours", self.weekly_min_online_hours)
        if isinstance(self.weekly_min_rides, bool) or not isinstance(self.weekly_min_rides, int):
            raise RateConfigError("weekly_min_rides must be an integer")
        if self.weekly_min_rides < 0:
            raise RateConfigError("weekly_min_rides must not be negative")

        seen: set[str] = set()
        for fee in self.fees:
            if fee.field in seen:
                raise RateConfigError(f"trip field {fee.field!r} is charged by more than one fee")
            seen.add(fee.field)

    def fee_for_field(self, field_name: str) -> FeeDefinition | None:
        """The fee declared in ``field_name``, if the schedule has one."""
        for fee in self.fees:
            if fee.field == field_name:
                return fee
        return None
