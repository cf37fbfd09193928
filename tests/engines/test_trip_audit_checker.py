"""
Tests for TripAuditChecker.

Covers every check category plus the run_all_checks orchestrator.  The
``make_trip`` fixture builds a record that audits clean; each test breaks
one thing.
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from tests.conftest import BROOKLYN_DROPOFF, JFK_DROPOFF, MANHATTAN_PICKUP, TRIP_START, YONKERS_DROPOFF
from tlc_config.schema import FeeDefinition, FeeKind
from tlc_engines.audit.checker import TripAuditChecker
from tlc_engines.audit.types import (
    AuditCategory,
    AuditFinding,
    AuditResult,
    AuditSeverity,
    FixStatus,
    TripLocation,
)

# Queens, away from both airports and outside the congestion zone.
FLUSHING_PICKUP = TripLocation(40.7282, -73.7949, "Queens", "Flushing")
# Manhattan, north of the congestion zone.
UPPER_WEST_SIDE = TripLocation(40.7870, -73.9754, "Manhattan", "Upper West Side")

NO_FEES = dict(
    avf_fee=Decimal("0"),
    bcf_fee=Decimal("0"),
    hvrf_fee=Decimal("0"),
    state_surcharge=Decimal("0"),
    congestion_fee=Decimal("0"),
    cross_city_fee=Decimal("0"),
)


class TestCleanTrip:
    def test_no_findings(self, checker, make_trip):
        result = checker.run_all_checks(trip=make_trip())
        assert result.findings == ()
        assert result.overall_status == AuditSeverity.VALID
        assert result.is_valid is True
        assert result.audit_score == 100

    def test_checks_performed(self, checker, make_trip):
        result = checker.run_all_checks(trip=make_trip())
        assert result.checks_performed == (
            "record_completeness",
            "fare_consistency",
            "driver_pay",
            "location_accuracy",
            "time_distance",
            "regulatory_fees",
            "tolls",
        )

    def test_audit_logged(self, checker, make_trip, captured_logs):
        checker.run_all_checks(trip=make_trip())
        completed = [r for r in captured_logs() if r["message"] == "trip_audit_completed"]
        assert completed[0]["overall_status"] == "valid"
        assert completed[0]["trip_id"] == "trip-001"


# =============================================================================
# Record completeness
# =============================================================================


class TestRecordCompleteness:
    def test_missing_fields_unfixable_category(self, checker, make_trip):
        trip = make_trip(pickup_time=None, dropoff_location=None)
        findings = checker.check_record_completeness(trip=trip)
        assert len(findings) == 1
        assert findings[0].category == AuditCategory.MISSING_RECORD
        assert findings[0].severity == AuditSeverity.CRITICAL
        assert findings[0].details["missing_fields"] == ("pickup_time", "dropoff_location")

    def test_vehicle_id_optional(self, checker, make_trip):
        assert checker.check_record_completeness(trip=make_trip(vehicle_id=None)) == ()


# =============================================================================
# Fare consistency
# =============================================================================


class TestFareConsistency:
    def test_large_variance_is_critical(self, checker, make_trip):
        trip = make_trip(
            base_fare=Decimal("2.50"),
            distance_fare=Decimal("12.00"),
            time_fare=Decimal("7.00"),
            final_fare=Decimal("23.00"),
            **NO_FEES,
        )
        findings = checker.check_fare_consistency(trip=trip)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.category == AuditCategory.FARE_MISMATCH
        assert finding.severity == AuditSeverity.CRITICAL
        assert finding.expected_value == Decimal("21.50")
        assert finding.actual_value == Decimal("23.00")
        assert finding.variance == Decimal("1.50")
        assert finding.field == "final_fare"
        assert finding.fix_status == FixStatus.NOT_APPLICABLE

    def test_small_variance_is_warning(self, checker, make_trip):
        findings = checker.check_fare_consistency(trip=make_trip(final_fare=Decimal("30.00")))
        assert findings[0].severity == AuditSeverity.WARNING
        assert findings[0].variance == Decimal("0.45")

    def test_within_tolerance(self, checker, make_trip):
        assert checker.check_fare_consistency(trip=make_trip(final_fare=Decimal("29.59"))) == ()

    def test_discount_and_tolls_included(self, checker, make_trip):
        trip = make_trip(
            tolls=Decimal("6.94"),
            discount_amount=Decimal("5.00"),
            final_fare=Decimal("31.49"),
        )
        assert checker.check_fare_consistency(trip=trip) == ()


# =============================================================================
# Driver pay
# =============================================================================


class TestDriverPay:
    def test_underpaid_driver(self, checker, make_trip):
        trip = make_trip(driver_payout=Decimal("15.00"), commission_amount=Decimal("6.00"))
        findings = checker.check_driver_pay(trip=trip)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.category == AuditCategory.UNDERPAID_DRIVER
        assert finding.severity == AuditSeverity.CRITICAL
        assert finding.expected_value == Decimal("18.55")
        assert finding.details["owed_amount"] == Decimal("3.55")

    def test_shortfall_within_pay_tolerance(self, checker, make_trip):
        trip = make_trip(driver_payout=Decimal("18.54"), commission_amount=Decimal("2.46"))
        assert checker.check_driver_pay(trip=trip) == ()

    def test_composition_mismatch(self, checker, make_trip):
        findings = checker.check_driver_pay(trip=make_trip(driver_payout=Decimal("19.50")))
        assert [f.category for f in findings] == [AuditCategory.DRIVER_PAY_MISMATCH]
        assert findings[0].severity == AuditSeverity.WARNING
        assert findings[0].expected_value == Decimal("18.90")

    def test_min_pay_adjustment_counts_toward_composition(self, checker, make_trip):
        trip = make_trip(
            driver_payout=Decimal("18.55"),
            commission_amount=Decimal("3.00"),
            min_pay_adjustment=Decimal("0.55"),
        )
        assert checker.check_driver_pay(trip=trip) == ()

    def test_earnings_above_subtotal_suspicious(self, checker, make_trip):
        trip = make_trip(driver_payout=Decimal("25.00"), commission_amount=Decimal("0"))
        categories = {f.category for f in checker.check_driver_pay(trip=trip)}
        assert categories == {
            AuditCategory.DRIVER_PAY_MISMATCH,
            AuditCategory.SUSPICIOUS_EARNINGS,
        }

    def test_negative_payout(self, checker, make_trip):
        findings = checker.check_driver_pay(trip=make_trip(driver_payout=Decimal("-1.00")))
        assert len(findings) == 1
        assert findings[0].severity == AuditSeverity.CRITICAL
        assert findings[0].category == AuditCategory.DRIVER_PAY_MISMATCH

    def test_adjustment_recorded_when_floor_already_met(self, checker, make_trip):
        trip = make_trip(driver_payout=Decimal("19.45"), min_pay_adjustment=Decimal("0.55"))
        findings = checker.check_driver_pay(trip=trip)
        assert len(findings) == 1
        assert findings[0].category == AuditCategory.DRIVER_PAY_MISMATCH
        assert findings[0].field == "min_pay_adjustment"
        assert findings[0].expected_value == Decimal("0")
        assert findings[0].actual_value == Decimal("0.55")

    def test_adjustment_short_of_floor(self, checker, make_trip):
        trip = make_trip(
            driver_payout=Decimal("18.30"),
            commission_amount=Decimal("3.00"),
            min_pay_adjustment=Decimal("0.30"),
        )
        findings = {f.field: f for f in checker.check_driver_pay(trip=trip)}
        assert findings["min_pay_adjustment"].expected_value == Decimal("0.55")
        assert findings["min_pay_adjustment"].variance == Decimal("0.25")
        assert findings["driver_payout"].category == AuditCategory.UNDERPAID_DRIVER

    def test_commission_above_subtotal(self, checker, make_trip):
        trip = make_trip(commission_amount=Decimal("23.40"), driver_payout=Decimal("0"))
        findings = [
            f for f in checker.check_driver_pay(trip=trip) if f.field == "commission_amount"
        ]
        assert len(findings) == 1
        assert findings[0].category == AuditCategory.DRIVER_PAY_MISMATCH
        assert findings[0].severity == AuditSeverity.WARNING
        assert findings[0].expected_value is None
        assert findings[0].variance == Decimal("2.40")


# =============================================================================
# Location accuracy
# =============================================================================


class TestLocationAccuracy:
    def test_wrong_borough_is_warning(self, checker, make_trip):
        pickup = replace(MANHATTAN_PICKUP, borough="Queens")
        findings = checker.check_location_accuracy(trip=make_trip(pickup_location=pickup))
        assert len(findings) == 1
        assert findings[0].category == AuditCategory.ZONE_MISMATCH
        assert findings[0].severity == AuditSeverity.WARNING
        assert findings[0].details["derived_borough"] == "MANHATTAN"
        assert findings[0].field == "pickup_location"

    def test_wrong_borough_with_wrong_zone_fee_is_critical(self, checker, make_trip):
        pickup = replace(MANHATTAN_PICKUP, borough="Queens")
        trip = make_trip(pickup_location=pickup, congestion_fee=Decimal("0"))
        findings = checker.check_location_accuracy(trip=trip)
        assert findings[0].severity == AuditSeverity.CRITICAL
        assert findings[0].details["zone_fee_affected"] is True

    def test_borough_names_normalized(self, checker, make_trip):
        dropoff = TripLocation(40.5795, -74.1502, "staten island")
        assert checker.check_location_accuracy(trip=make_trip(dropoff_location=dropoff)) == ()

    def test_missing_location_skipped(self, checker, make_trip):
        assert checker.check_location_accuracy(trip=make_trip(pickup_location=None)) == ()


# =============================================================================
# Time / distance
# =============================================================================


class TestTimeDistance:
    def test_too_fast(self, checker, make_trip):
        trip = make_trip(
            trip_duration_minutes=Decimal("2"),
            dropoff_time=TRIP_START + timedelta(minutes=2),
        )
        findings = checker.check_time_distance(trip=trip)
        assert len(findings) == 1
        assert findings[0].category == AuditCategory.TIME_DISTANCE_ERROR
        assert findings[0].details["speed_mph"] == Decimal("156.0")

    def test_too_slow(self, checker, make_trip):
        trip = make_trip(trip_distance_miles=Decimal("0.1"), dropoff_location=MANHATTAN_PICKUP)
        findings = checker.check_time_distance(trip=trip)
        assert len(findings) == 1
        assert "too slow" in findings[0].message

    def test_shorter_than_straight_line(self, checker, make_trip):
        findings = checker.check_time_distance(trip=make_trip(trip_distance_miles=Decimal("3.0")))
        assert len(findings) == 1
        assert findings[0].details["straight_line_miles"] > Decimal("4.5")

    def test_excessive_detour(self, checker, make_trip):
        findings = checker.check_time_distance(trip=make_trip(trip_distance_miles=Decimal("15")))
        assert len(findings) == 1
        assert "straight-line" in findings[0].message

    def test_dropoff_before_pickup(self, checker, make_trip):
        trip = make_trip(dropoff_time=TRIP_START - timedelta(minutes=5))
        findings = checker.check_time_distance(trip=trip)
        assert [f.message for f in findings] == ["Dropoff time is before pickup time"]

    def test_duration_disagrees_with_timestamps(self, checker, make_trip):
        trip = make_trip(dropoff_time=TRIP_START + timedelta(minutes=45))
        findings = checker.check_time_distance(trip=trip)
        assert len(findings) == 1
        assert findings[0].details["elapsed_minutes"] == Decimal("45.0")

    def test_small_duration_gap_allowed(self, checker, make_trip):
        trip = make_trip(dropoff_time=TRIP_START + timedelta(minutes=34))
        assert checker.check_time_distance(trip=trip) == ()

    def test_distance_with_zero_duration(self, checker, make_trip):
        trip = make_trip(trip_duration_minutes=Decimal("0"), dropoff_time=TRIP_START)
        findings = checker.check_time_distance(trip=trip)
        assert len(findings) == 1
        assert "zero duration" in findings[0].message

    def test_negative_metrics_critical(self, checker, make_trip):
        findings = checker.check_time_distance(trip=make_trip(trip_distance_miles=Decimal("-1")))
        assert len(findings) == 1
        assert findings[0].severity == AuditSeverity.CRITICAL


# =============================================================================
# Regulatory fees
# =============================================================================


class TestRegulatoryFees:
    def test_missing_congestion_fee(self, checker, make_trip):
        findings = checker.check_regulatory_fees(trip=make_trip(congestion_fee=Decimal("0")))
        assert len(findings) == 1
        assert findings[0].category == AuditCategory.TLC_FEE_ERROR
        assert findings[0].field == "congestion_fee"
        assert findings[0].expected_value == Decimal("2.75")
        assert findings[0].severity == AuditSeverity.WARNING

    def test_congestion_fee_applies_on_dropoff(self, checker, make_trip):
        trip = make_trip(pickup_location=BROOKLYN_DROPOFF, dropoff_location=MANHATTAN_PICKUP)
        assert checker.check_regulatory_fees(trip=trip) == ()

    def test_missing_airport_fee(self, checker, make_trip):
        findings = checker.check_regulatory_fees(trip=make_trip(dropoff_location=JFK_DROPOFF))
        assert len(findings) == 1
        assert findings[0].category == AuditCategory.AIRPORT_FEE_ERROR
        assert findings[0].expected_value == Decimal("5.00")

    def test_airport_fee_charged_off_airport(self, checker, make_trip):
        findings = checker.check_regulatory_fees(trip=make_trip(airport_fee=Decimal("5.00")))
        assert findings[0].field == "airport_fee"
        assert findings[0].expected_value == Decimal("0")

    def test_long_trip_surcharge(self, checker, make_trip):
        findings = checker.check_regulatory_fees(trip=make_trip(trip_distance_miles=Decimal("25")))
        assert [f.field for f in findings] == ["long_trip_surcharge"]
        assert findings[0].expected_value == Decimal("2.50")

    def test_out_of_town_return_fee(self, checker, make_trip):
        trip = make_trip(dropoff_location=YONKERS_DROPOFF, cross_city_fee=Decimal("0"))
        findings = checker.check_regulatory_fees(trip=trip)
        assert [f.field for f in findings] == ["out_of_town_return_fee"]
        assert findings[0].expected_value == Decimal("17.50")

    def test_flat_fee_within_tolerance(self, checker, make_trip):
        assert checker.check_regulatory_fees(trip=make_trip(avf_fee=Decimal("0.13"))) == ()

    def test_percentage_fee(self, rate_config, make_trip):
        config = replace(
            rate_config,
            fees=(FeeDefinition("hvrf_pct", "hvrf_fee", FeeKind.PERCENTAGE, Decimal("0.0275")),),
        )
        findings = TripAuditChecker(config).check_regulatory_fees(trip=make_trip())
        # 21.00 x 2.75% = 0.5775
        assert findings[0].expected_value == Decimal("0.58")

    def test_zone_fee_undecidable_without_location(self, checker, make_trip):
        trip = make_trip(pickup_location=None, congestion_fee=Decimal("9.99"))
        assert checker.check_regulatory_fees(trip=trip) == ()

    def test_missing_cross_borough_fee(self, checker, make_trip):
        findings = checker.check_regulatory_fees(trip=make_trip(cross_city_fee=Decimal("0")))
        assert [f.field for f in findings] == ["cross_city_fee"]
        assert findings[0].category == AuditCategory.TLC_FEE_ERROR
        assert findings[0].expected_value == Decimal("2.50")

    def test_cross_borough_fee_within_one_borough(self, checker, make_trip):
        trip = make_trip(dropoff_location=UPPER_WEST_SIDE)
        findings = checker.check_regulatory_fees(trip=trip)
        assert [f.field for f in findings] == ["cross_city_fee"]
        assert findings[0].expected_value == Decimal("0")

    def test_cross_borough_fee_not_audited_with_out_of_town_fee(self, checker, make_trip):
        trip = make_trip(dropoff_location=YONKERS_DROPOFF, out_of_town_return_fee=Decimal("17.50"))
        assert checker.check_regulatory_fees(trip=trip) == ()

    @pytest.mark.parametrize(
        "trip_category, expected_fields",
        [("Manhattan Congestion", []), ("standard", ["congestion_fee"])],
    )
    def test_congestion_category_exempts_zone_test(
        self, checker, make_trip, trip_category, expected_fields
    ):
        trip = make_trip(pickup_location=FLUSHING_PICKUP, trip_category=trip_category)
        findings = checker.check_regulatory_fees(trip=trip)
        assert [f.field for f in findings] == expected_fields

    def test_airport_category_exempts_zone_test(self, checker, make_trip):
        trip = make_trip(airport_fee=Decimal("5.00"), trip_category="airport_pickup")
        assert checker.check_regulatory_fees(trip=trip) == ()

    def test_cross_state_category_exempts_zone_test(self, checker, make_trip):
        trip = make_trip(
            pickup_location=YONKERS_DROPOFF,
            congestion_fee=Decimal("0"),
            cross_city_fee=Decimal("0"),
            out_of_town_return_fee=Decimal("17.50"),
            trip_category="oos_to_nyc",
        )
        assert checker.check_regulatory_fees(trip=trip) == ()

    def test_airport_code_off_airport_is_info(self, checker, make_trip):
        trip = make_trip(airport_fee=Decimal("5.00"), airport_code="JFK")
        findings = checker.check_regulatory_fees(trip=trip)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.category == AuditCategory.AIRPORT_FEE_ERROR
        assert finding.severity == AuditSeverity.INFO
        assert finding.field == "airport_code"
        assert finding.expected_value is None
        assert finding.details == {"airport_code": "JFK"}

    def test_airport_code_at_airport(self, checker, make_trip):
        trip = make_trip(
            dropoff_location=JFK_DROPOFF, airport_fee=Decimal("5.00"), airport_code="JFK"
        )
        assert checker.check_regulatory_fees(trip=trip) == ()


# =============================================================================
# Tolls
# =============================================================================


class TestTolls:
    def test_negative_toll_with_itemization(self, checker, make_trip):
        trip = make_trip(tolls=Decimal("-6.94"), toll_charges=(Decimal("6.94"),))
        findings = checker.check_tolls(trip=trip)
        assert findings[0].severity == AuditSeverity.CRITICAL
        assert findings[0].expected_value == Decimal("6.94")

    def test_negative_toll_without_itemization(self, checker, make_trip):
        findings = checker.check_tolls(trip=make_trip(tolls=Decimal("-6.94")))
        assert findings[0].severity == AuditSeverity.CRITICAL
        assert findings[0].expected_value is None

    def test_itemized_mismatch(self, checker, make_trip):
        trip = make_trip(tolls=Decimal("10.00"), toll_charges=(Decimal("6.94"),))
        findings = checker.check_tolls(trip=trip)
        assert findings[0].severity == AuditSeverity.WARNING
        assert findings[0].expected_value == Decimal("6.94")

    def test_implausible_toll_without_itemization(self, checker, make_trip):
        findings = checker.check_tolls(trip=make_trip(tolls=Decimal("75.00")))
        assert findings[0].severity == AuditSeverity.WARNING
        assert findings[0].expected_value is None

    def test_high_toll_backed_by_itemization(self, checker, make_trip):
        trip = make_trip(tolls=Decimal("75.00"), toll_charges=(Decimal("50.00"), Decimal("25.00")))
        assert checker.check_tolls(trip=trip) == ()


# =============================================================================
# Orchestrator
# =============================================================================


class TestRunAllChecks:
    def test_aggregates_and_scores(self, checker, make_trip):
        trip = make_trip(congestion_fee=Decimal("0"), final_fare=Decimal("31.05"))
        result = checker.run_all_checks(trip=trip)
        assert result.overall_status == AuditSeverity.CRITICAL
        assert result.critical_count == 1
        assert result.warning_count == 1
        assert result.audit_score == 87
        assert {f.category for f in result.findings} == {
            AuditCategory.FARE_MISMATCH,
            AuditCategory.TLC_FEE_ERROR,
        }

    def test_incomplete_record_does_not_raise(self, checker, make_trip):
        trip = make_trip(pickup_location=None, dropoff_location=None, pickup_time=None)
        result = checker.run_all_checks(trip=trip)
        assert AuditCategory.MISSING_RECORD in {f.category for f in result.findings}

    def test_location_check_left_out_without_coordinates(self, checker, make_trip):
        result = checker.run_all_checks(trip=make_trip(dropoff_location=None))
        assert "location_accuracy" not in result.checks_performed
        assert len(result.checks_performed) == 6
        assert [f.category for f in result.findings] == [AuditCategory.MISSING_RECORD]

    @pytest.mark.parametrize("critical_count", [10, 13])
    def test_score_floors_at_zero(self, critical_count):
        findings = tuple(
            AuditFinding(AuditCategory.FARE_MISMATCH, AuditSeverity.CRITICAL, "x")
            for _ in range(critical_count)
        )
        assert AuditResult.from_findings("t", findings).audit_score == 0

    def test_score_weights(self):
        findings = (
            AuditFinding(AuditCategory.FARE_MISMATCH, AuditSeverity.CRITICAL, "c"),
            AuditFinding(AuditCategory.TLC_FEE_ERROR, AuditSeverity.WARNING, "w"),
            AuditFinding(AuditCategory.TLC_FEE_ERROR, AuditSeverity.INFO, "i"),
        )
        assert AuditResult.from_findings("t", findings).audit_score == 86
