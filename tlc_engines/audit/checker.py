"""
TripAuditChecker -- Pure engine re-deriving what a trip record should say.

Runs a fixed battery of independent checks against one TripRecordReport:
record completeness, fare consistency, driver pay against the minimum-pay
floor, location accuracy, time/distance plausibility, the regulatory fee
schedule and tolls.  Each check returns a tuple of AuditFinding; the
orchestrator aggregates them into an AuditResult.

Architecture: tlc_engines -- pure calculation, zero I/O, zero DB access.
Zone lookup is an injected collaborator (default: NYC bounding boxes).

Invariants enforced:
    - Checks never mutate the trip and never raise on bad trip data; bad
      data is a finding.
    - A finding carries an expected value only when a deterministic correct
      value exists.
    - A clean record (every field computed from the RateConfig) produces
      no findings.
"""

from __future__ import annotations

from decimal import Decimal

from tlc_config.schema import (
    ZONE_DEPENDENT_CONDITIONS,
    FeeCondition,
    FeeDefinition,
    FeeKind,
    RateConfig,
)
from tlc_engines.audit.types import (
    AIRPORT_CATEGORIES,
    CROSS_STATE_CATEGORIES,
    AuditCategory,
    AuditFinding,
    AuditResult,
    AuditSeverity,
    TripCategory,
    TripLocation,
    TripRecordReport,
)
from tlc_engines.minimum_pay import calculate_per_ride_minimum
from tlc_engines.tracer import traced_engine
from tlc_engines.zones import (
    BoundingBoxZoneLookup,
    Borough,
    ZoneLookup,
    normalize_borough,
    straight_line_miles,
)
from tlc_kernel.domain.values import MINUTES_PER_HOUR, ZERO, round_currency
from tlc_kernel.logging_config import get_logger

logger = get_logger("engines.audit.checker")

_HUNDRED = Decimal("100")
_ONE_MILE = Decimal("1")


class TripAuditChecker:
    """Pure engine for per-trip audit checks.

    All methods receive a TripRecordReport and return tuples of
    AuditFinding.  No I/O, no database access.

    Usage:
        checker = TripAuditChecker(get_active_rate_config())
        result = checker.run_all_checks(trip)
        if result.overall_status == AuditSeverity.CRITICAL:
            ...
    """

    def __init__(self, config: RateConfig, zone_lookup: ZoneLookup | None = None):
        self._config = config
        self._tolerances = config.tolerances
        self._zones = zone_lookup or BoundingBoxZoneLookup()

    @property
    def config(self) -> RateConfig:
        return self._config

    # -----------------------------------------------------------------
    # Record completeness
    # -----------------------------------------------------------------

    @traced_engine("trip_audit", "1.0", fingerprint_fields=("trip",))
    def check_record_completeness(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        """Identity, timestamps and coordinates must all be present."""
        required = (
            "trip_id",
            "driver_id",
            "pickup_time",
            "dropoff_time",
            "pickup_location",
            "dropoff_location",
        )
        missing = tuple(name for name in required if not getattr(trip, name))
        if not missing:
            return ()
        return (
            AuditFinding(
                category=AuditCategory.MISSING_RECORD,
                severity=AuditSeverity.CRITICAL,
                message=f"Trip record is missing {', '.join(missing)}",
                details={"missing_fields": missing},
            ),
        )

    # -----------------------------------------------------------------
    # Fare consistency
    # -----------------------------------------------------------------

    @traced_engine("trip_audit", "1.0", fingerprint_fields=("trip",))
    def check_fare_consistency(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        """Declared final fare must equal the sum of its own components."""
        expected = round_currency(trip.component_total)
        actual = trip.final_fare
        variance = abs(expected - actual)
        if variance <= self._tolerances.fare_variance:
            return ()

        severity = (
            AuditSeverity.CRITICAL
            if variance > self._tolerances.fare_critical_variance
            else AuditSeverity.WARNING
        )
        return (
            AuditFinding(
                category=AuditCategory.FARE_MISMATCH,
                severity=severity,
                message=f"Final fare ${actual} does not match component sum ${expected}",
                field="final_fare",
                expected_value=expected,
                actual_value=actual,
                variance=variance,
            ),
        )

    # -----------------------------------------------------------------
    # Driver pay
    # -----------------------------------------------------------------

    @traced_engine("trip_audit", "1.0", fingerprint_fields=("trip",))
    def check_driver_pay(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        """
        Payout against the per-ride floor and its own composition.

        Also flags a recorded minimum-pay adjustment the floor does not
        require and a commission larger than the fare subtotal.
        """
        tol = self._tolerances.pay_tolerance
        payout = trip.driver_payout

        if payout < ZERO:
            return (
                AuditFinding(
                    category=AuditCategory.DRIVER_PAY_MISMATCH,
                    severity=AuditSeverity.CRITICAL,
                    message=f"Driver payout ${payout} is negative",
                    field="driver_payout",
                    actual_value=payout,
                ),
            )

        findings: list[AuditFinding] = []

        # Negative time or distance is reported by the time/distance check.
        if trip.trip_duration_minutes >= ZERO and trip.trip_distance_miles >= ZERO:
            floor = calculate_per_ride_minimum(
                trip_time_minutes=trip.trip_duration_minutes,
                trip_distance_miles=trip.trip_distance_miles,
                actual_driver_payout=payout,
                config=self._config,
            )
            shortfall = floor.minimum_pay - payout
            if shortfall > tol:
                owed = round_currency(shortfall)
                findings.append(
                    AuditFinding(
                        category=AuditCategory.UNDERPAID_DRIVER,
                        severity=AuditSeverity.CRITICAL,
                        message=(
                            f"Driver paid ${payout}, below the ${floor.minimum_pay} "
                            f"minimum; ${owed} owed"
                        ),
                        field="driver_payout",
                        expected_value=floor.minimum_pay,
                        actual_value=payout,
                        variance=owed,
                        details={"owed_amount": owed, "minimum_pay": floor.minimum_pay},
                    )
                )

            recorded = trip.min_pay_adjustment
            if recorded != ZERO:
                required = max(ZERO, floor.minimum_pay - (payout - recorded))
                gap = abs(recorded - required)
                if gap > tol:
                    findings.append(
                        AuditFinding(
                            category=AuditCategory.DRIVER_PAY_MISMATCH,
                            severity=AuditSeverity.WARNING,
                            message=(
                                f"Recorded minimum-pay adjustment ${recorded} differs from "
                                f"the ${round_currency(required)} the floor requires"
                            ),
                            field="min_pay_adjustment",
                            expected_value=round_currency(required),
                            actual_value=recorded,
                            variance=round_currency(gap),
                        )
                    )

        if trip.commission_amount > trip.fare_subtotal:
            findings.append(
                AuditFinding(
                    category=AuditCategory.DRIVER_PAY_MISMATCH,
                    severity=AuditSeverity.WARNING,
                    message=(
                        f"Commission ${trip.commission_amount} exceeds the fare subtotal "
                        f"${trip.fare_subtotal}; it may include regulatory fees"
                    ),
                    field="commission_amount",
                    actual_value=trip.commission_amount,
                    variance=trip.commission_amount - trip.fare_subtotal,
                )
            )

        composed = trip.fare_subtotal - trip.commission_amount + trip.min_pay_adjustment
        if abs(payout - composed) > tol:
            findings.append(
                AuditFinding(
                    category=AuditCategory.DRIVER_PAY_MISMATCH,
                    severity=AuditSeverity.WARNING,
                    message=(
                        f"Driver payout ${payout} does not equal subtotal less "
                        f"commission plus adjustment (${composed})"
                    ),
                    field="driver_payout",
                    expected_value=composed,
                    actual_value=payout,
                    variance=abs(payout - composed),
                )
            )

        earned = payout - trip.min_pay_adjustment
        if earned > trip.fare_subtotal + tol:
            findings.append(
                AuditFinding(
                    category=AuditCategory.SUSPICIOUS_EARNINGS,
                    severity=AuditSeverity.WARNING,
                    message=(
                        f"Driver earnings ${earned} exceed the fare subtotal "
                        f"${trip.fare_subtotal}"
                    ),
                    field="driver_payout",
                    actual_value=payout,
                    variance=earned - trip.fare_subtotal,
                )
            )

        return tuple(findings)

    # -----------------------------------------------------------------
    # Location accuracy
    # -----------------------------------------------------------------

    @traced_engine("trip_audit", "1.0", fingerprint_fields=("trip",))
    def check_location_accuracy(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        """Declared boroughs must match the boroughs the coordinates fall in."""
        if trip.pickup_location is None or trip.dropoff_location is None:
            return ()

        zone_fee_wrong = self._zone_dependent_fee_wrong(trip)
        severity = AuditSeverity.CRITICAL if zone_fee_wrong else AuditSeverity.WARNING

        findings: list[AuditFinding] = []
        for label, location in (
            ("pickup", trip.pickup_location),
            ("dropoff", trip.dropoff_location),
        ):
            derived = self._zones.borough_at(location.lat, location.lng)
            if normalize_borough(location.borough) == derived.value:
                continue
            findings.append(
                AuditFinding(
                    category=AuditCategory.ZONE_MISMATCH,
                    severity=severity,
                    message=(
                        f"{label.capitalize()} declared in {location.borough} but "
                        f"coordinates are in {derived.value}"
                    ),
                    field=f"{label}_location",
                    details={
                        "declared_borough": location.borough,
                        "derived_borough": derived.value,
                        "zone_fee_affected": zone_fee_wrong,
                    },
                )
            )
        return tuple(findings)

    def _zone_dependent_fee_wrong(self, trip: TripRecordReport) -> bool:
        for fee in self._config.fees:
            if fee.condition not in ZONE_DEPENDENT_CONDITIONS:
                continue
            expected = self.expected_fee(fee, trip)
            if expected is None:
                continue
            if abs(getattr(trip, fee.field) - expected) > self._tolerances.fee_tolerance:
                return True
        return False

    # -----------------------------------------------------------------
    # Time / distance integrity
    # -----------------------------------------------------------------

    @traced_engine("trip_audit", "1.0", fingerprint_fields=("trip",))
    def check_time_distance(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        """Heuristic plausibility of speed, route length and duration."""
        tol = self._tolerances
        miles = trip.trip_distance_miles
        minutes = trip.trip_duration_minutes

        def finding(message: str, severity=AuditSeverity.WARNING, **details) -> AuditFinding:
            return AuditFinding(
                category=AuditCategory.TIME_DISTANCE_ERROR,
                severity=severity,
                message=message,
                details=details or None,
            )

        if miles < ZERO or minutes < ZERO:
            return (
                finding(
                    f"Negative trip metrics: {miles} mi over {minutes} min",
                    AuditSeverity.CRITICAL,
                    distance_miles=miles,
                    duration_minutes=minutes,
                ),
            )

        findings: list[AuditFinding] = []

        if minutes == ZERO:
            if miles > ZERO:
                findings.append(finding(f"{miles} mi recorded with zero duration"))
        else:
            speed = (miles / (minutes / MINUTES_PER_HOUR)).quantize(Decimal("0.1"))
            if speed > tol.max_speed_mph:
                findings.append(
                    finding(f"Implied speed {speed} mph is implausibly fast", speed_mph=speed)
                )
            elif speed < tol.min_speed_mph:
                findings.append(
                    finding(f"Implied speed {speed} mph is too slow to be moving", speed_mph=speed)
                )

        if trip.pickup_location is not None and trip.dropoff_location is not None:
            straight = straight_line_miles(
                trip.pickup_location.lat,
                trip.pickup_location.lng,
                trip.dropoff_location.lat,
                trip.dropoff_location.lng,
            )
            shortest = straight * (_HUNDRED - tol.distance_tolerance_percent) / _HUNDRED
            if miles < shortest:
                findings.append(
                    finding(
                        f"Reported {miles} mi is shorter than the {straight} mi straight-line distance",
                        reported_miles=miles,
                        straight_line_miles=straight,
                    )
                )
            elif straight >= _ONE_MILE and miles > straight * tol.max_detour_factor:
                findings.append(
                    finding(
                        f"Reported {miles} mi is over {tol.max_detour_factor}x the "
                        f"{straight} mi straight-line distance",
                        reported_miles=miles,
                        straight_line_miles=straight,
                    )
                )

        if trip.pickup_time is not None and trip.dropoff_time is not None:
            if trip.dropoff_time < trip.pickup_time:
                findings.append(finding("Dropoff time is before pickup time"))
            else:
                elapsed = Decimal(
                    str((trip.dropoff_time - trip.pickup_time).total_seconds())
                ) / MINUTES_PER_HOUR
                gap = abs(minutes - elapsed)
                if (
                    gap > tol.duration_variance_minutes
                    and elapsed > ZERO
                    and gap / elapsed * _HUNDRED > tol.duration_variance_percent
                ):
                    findings.append(
                        finding(
                            f"Declared duration {minutes} min differs from timestamps "
                            f"({elapsed.quantize(Decimal('0.1'))} min)",
                            declared_minutes=minutes,
                            elapsed_minutes=elapsed.quantize(Decimal("0.1")),
                        )
                    )

        return tuple(findings)

    # -----------------------------------------------------------------
    # Regulatory fees
    # -----------------------------------------------------------------

    def fee_applies(self, fee: FeeDefinition, trip: TripRecordReport) -> bool | None:
        """
        Whether ``fee`` applies; None when it cannot be audited.

        None covers a missing location, a zone fee the coordinates rule
        out but the record's category or airport code entitles, and a
        cross-borough fee on a trip already charged a cross-state or
        airport fee.
        """
        condition = fee.condition
        if condition == FeeCondition.ALWAYS:
            return True
        if condition == FeeCondition.LONG_TRIP:
            return trip.trip_distance_miles > fee.threshold_miles

        pickup, dropoff = trip.pickup_location, trip.dropoff_location
        if pickup is None or dropoff is None:
            return None
        category = TripCategory.parse(trip.trip_category)
        start = self._zones.borough_at(pickup.lat, pickup.lng)
        end = self._zones.borough_at(dropoff.lat, dropoff.lng)

        if condition == FeeCondition.CROSS_BOROUGH:
            if (
                category in CROSS_STATE_CATEGORIES
                or trip.out_of_town_return_fee > ZERO
                or (category in AIRPORT_CATEGORIES and trip.airport_fee > ZERO)
            ):
                return None
            return Borough.OUT_OF_NYC not in (start, end) and start != end

        if condition == FeeCondition.CONGESTION_ZONE:
            applies = self._zones.in_congestion_zone(pickup.lat, pickup.lng) or (
                self._zones.in_congestion_zone(dropoff.lat, dropoff.lng)
            )
            entitled = category == TripCategory.MANHATTAN_CONGESTION
        elif condition == FeeCondition.AIRPORT:
            applies = self._airport_endpoint(pickup, dropoff) is not None
            entitled = category in AIRPORT_CATEGORIES or bool(trip.airport_code)
        elif condition == FeeCondition.OUT_OF_TOWN:
            applies = start != Borough.OUT_OF_NYC and end == Borough.OUT_OF_NYC
            entitled = category in CROSS_STATE_CATEGORIES or start == Borough.OUT_OF_NYC
        else:
            raise ValueError(f"Unhandled fee condition {condition!r}")

        if not applies and entitled:
            return None
        return applies

    def _airport_endpoint(self, pickup: TripLocation, dropoff: TripLocation) -> str | None:
        return self._zones.airport_at(pickup.lat, pickup.lng) or (
            self._zones.airport_at(dropoff.lat, dropoff.lng)
        )

    def expected_fee(self, fee: FeeDefinition, trip: TripRecordReport) -> Decimal | None:
        """The amount ``fee`` should have charged on ``trip``, or None if undecidable."""
        applies = self.fee_applies(fee, trip)
        if applies is None:
            return None
        if not applies:
            return ZERO
        if fee.kind == FeeKind.PERCENTAGE:
            return round_currency(trip.fare_subtotal * fee.amount)
        return fee.amount

    @traced_engine("trip_audit", "1.0", fingerprint_fields=("trip",))
    def check_regulatory_fees(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        """Each scheduled fee must be charged exactly when it applies."""
        findings: list[AuditFinding] = []
        for fee in self._config.fees:
            expected = self.expected_fee(fee, trip)
            if expected is None:
                continue
            actual = getattr(trip, fee.field)
            variance = abs(actual - expected)
            if variance <= self._tolerances.fee_tolerance:
                continue
            findings.append(
                AuditFinding(
                    category=AuditCategory(fee.finding_category),
                    severity=AuditSeverity.WARNING,
                    message=f"{fee.name} charged ${actual}, expected ${expected}",
                    field=fee.field,
                    expected_value=expected,
                    actual_value=actual,
                    variance=variance,
                    details={"fee": fee.name, "condition": fee.condition.value},
                )
            )

        pickup, dropoff = trip.pickup_location, trip.dropoff_location
        if (
            trip.airport_code
            and pickup is not None
            and dropoff is not None
            and self._airport_endpoint(pickup, dropoff) is None
        ):
            # No deterministic correction: the code or the coordinates may be wrong.
            findings.append(
                AuditFinding(
                    category=AuditCategory.AIRPORT_FEE_ERROR,
                    severity=AuditSeverity.INFO,
                    message=(
                        f"Airport code {trip.airport_code} recorded but neither pickup "
                        f"nor dropoff is at an airport"
                    ),
                    field="airport_code",
                    details={"airport_code": trip.airport_code},
                )
            )
        return tuple(findings)

    # -----------------------------------------------------------------
    # Tolls
    # -----------------------------------------------------------------

    @traced_engine("trip_audit", "1.0", fingerprint_fields=("trip",))
    def check_tolls(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        """Tolls must be non-negative and match the itemized crossings if given."""
        tolls = trip.tolls
        itemized = (
            sum(trip.toll_charges, ZERO) if trip.toll_charges is not None else None
        )

        if tolls < ZERO:
            return (
                AuditFinding(
                    category=AuditCategory.TOLL_MISMATCH,
                    severity=AuditSeverity.CRITICAL,
                    message=f"Toll amount ${tolls} is negative",
                    field="tolls",
                    expected_value=itemized,
                    actual_value=tolls,
                    variance=abs(tolls - itemized) if itemized is not None else None,
                ),
            )

        if itemized is not None:
            variance = abs(tolls - itemized)
            if variance > self._tolerances.fee_tolerance:
                return (
                    AuditFinding(
                        category=AuditCategory.TOLL_MISMATCH,
                        severity=AuditSeverity.WARNING,
                        message=f"Tolls charged ${tolls} but crossings total ${itemized}",
                        field="tolls",
                        expected_value=itemized,
                        actual_value=tolls,
                        variance=variance,
                    ),
                )
            return ()

        if tolls > self._tolerances.max_plausible_toll:
            return (
                AuditFinding(
                    category=AuditCategory.TOLL_MISMATCH,
                    severity=AuditSeverity.WARNING,
                    message=f"Unusually high toll amount ${tolls} with no itemized crossings",
                    field="tolls",
                    actual_value=tolls,
                ),
            )
        return ()

    # -----------------------------------------------------------------
    # Orchestrator
    # -----------------------------------------------------------------

    @traced_engine("trip_audit", "1.0", fingerprint_fields=("trip",))
    def run_all_checks(self, trip: TripRecordReport) -> AuditResult:
        """
        Run every applicable check and aggregate into an AuditResult.

        Location accuracy needs both endpoints and is left out of the run,
        and out of ``checks_performed``, when either is missing.  The other
        checks always run; each skips only the comparisons whose inputs
        are missing.
        """
        has_locations = trip.pickup_location is not None and trip.dropoff_location is not None
        checks = (
            ("record_completeness", self.check_record_completeness),
            ("fare_consistency", self.check_fare_consistency),
            ("driver_pay", self.check_driver_pay),
            *((("location_accuracy", self.check_location_accuracy),) if has_locations else ()),
            ("time_distance", self.check_time_distance),
            ("regulatory_fees", self.check_regulatory_fees),
            ("tolls", self.check_tolls),
        )
        findings: list[AuditFinding] = []
        for _, check in checks:
            findings.extend(check(trip=trip))

        result = AuditResult.from_findings(
            trip.trip_id,
            tuple(findings),
            checks_performed=tuple(name for name, _ in checks),
        )
        logger.info(
            "trip_audit_completed",
            extra={
                "trip_id": trip.trip_id,
                "overall_status": result.overall_status.value,
                "finding_count": len(result.findings),
                "critical_count": result.critical_count,
            },
        )
        return result
