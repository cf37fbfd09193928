"""
Trip audit domain types.

Pure frozen dataclasses and enums shared by TripAuditChecker (pure engine),
TripReconciler (pure engine) and the audit/reconciliation services
(imperative shell).

Architecture: tlc_engines/audit -- pure domain, zero I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from tlc_config.schema import FEE_FIELDS
from tlc_kernel.domain.values import ZERO

# =============================================================================
# Enums
# =============================================================================


class AuditCategory(str, Enum):
    """Closed set of discrepancy kinds a checker can report."""

    FARE_MISMATCH = "fare_mismatch"
    DRIVER_PAY_MISMATCH = "driver_pay_mismatch"
    TOLL_MISMATCH = "toll_mismatch"
    AIRPORT_FEE_ERROR = "airport_fee_error"
    TLC_FEE_ERROR = "tlc_fee_error"
    ZONE_MISMATCH = "zone_mismatch"
    TIME_DISTANCE_ERROR = "time_distance_error"
    MISSING_RECORD = "missing_record"
    SUSPICIOUS_EARNINGS = "suspicious_earnings"
    UNDERPAID_DRIVER = "underpaid_driver"


class AuditSeverity(str, Enum):
    """Severity of a finding; VALID is only used as an overall status."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    VALID = "valid"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AuditSeverity.VALID: 0,
    AuditSeverity.INFO: 1,
    AuditSeverity.WARNING: 2,
    AuditSeverity.CRITICAL: 3,
}


class FixStatus(str, Enum):
    """Disposition of a finding after reconciliation."""

    AUTO_FIXED = "auto_fixed"
    REQUIRES_REVIEW = "requires_review"
    UNFIXABLE = "unfixable"
    NOT_APPLICABLE = "not_applicable"  # not reconciled yet


class TripCategory(str, Enum):
    """
    Platform trip classification carried on the record.

    A category can exempt a zone fee from the coordinate test: an
    airport category entitles the airport fee, a congestion category the
    congestion fee, and a cross-state category the out-of-town fee.
    Records may carry categories outside this set; they grant nothing.
    """

    STANDARD = "standard"
    AIRPORT_PICKUP = "airport_pickup"
    AIRPORT_DROPOFF = "airport_dropoff"
    MANHATTAN_CONGESTION = "manhattan_congestion"
    NYC_TO_OOS = "nyc_to_oos"
    OOS_TO_NYC = "oos_to_nyc"

    @classmethod
    def parse(cls, value: str | None) -> TripCategory | None:
        """Case- and separator-insensitive lookup; None for unknown values."""
        if not value:
            return None
        try:
            return cls(value.strip().lower().replace(" ", "_").replace("-", "_"))
        except ValueError:
            return None


AIRPORT_CATEGORIES = frozenset({TripCategory.AIRPORT_PICKUP, TripCategory.AIRPORT_DROPOFF})
CROSS_STATE_CATEGORIES = frozenset({TripCategory.NYC_TO_OOS, TripCategory.OOS_TO_NYC})


# =============================================================================
# Input types
# =============================================================================


@dataclass(frozen=True)
class TripLocation:
    """A pickup or dropoff point with the borough the record declares."""

    lat: float
    lng: float
    borough: str
    address: str | None = None


@dataclass(frozen=True)
class TripRecordReport:
    """
    Read-only materialized view of one historical trip.

    Supplied by the reporting collaborator.  Fee fields hold what was
    charged; the auditor re-derives what should have been charged.
    Optional fields left as None make the record incomplete, which the
    completeness check reports instead of failing.
    """

    trip_id: str
    driver_id: str
    vehicle_id: str | None = None
    pickup_time: datetime | None = None
    dropoff_time: datetime | None = None
    pickup_location: TripLocation | None = None
    dropoff_location: TripLocation | None = None
    trip_distance_miles: Decimal = ZERO
    trip_duration_minutes: Decimal = ZERO

    # Fare components
    base_fare: Decimal = ZERO
    distance_fare: Decimal = ZERO
    time_fare: Decimal = ZERO
    tolls: Decimal = ZERO
    toll_charges: tuple[Decimal, ...] | None = None

    # Regulatory fees and surcharges
    avf_fee: Decimal = ZERO
    bcf_fee: Decimal = ZERO
    hvrf_fee: Decimal = ZERO
    state_surcharge: Decimal = ZERO
    congestion_fee: Decimal = ZERO
    airport_fee: Decimal = ZERO
    airport_code: str | None = None
    long_trip_surcharge: Decimal = ZERO
    out_of_town_return_fee: Decimal = ZERO
    cross_city_fee: Decimal = ZERO

    # Promotions and totals
    discount_amount: Decimal = ZERO
    promo_code: str | None = None
    final_fare: Decimal = ZERO

    # Driver pay
    driver_payout: Decimal = ZERO
    commission_amount: Decimal = ZERO
    min_pay_adjustment: Decimal = ZERO

    trip_category: str = TripCategory.STANDARD.value
    is_accessible_vehicle: bool = False
    is_wheelchair_trip: bool = False

    @property
    def fare_subtotal(self) -> Decimal:
        """Base + distance + time."""
        return self.base_fare + self.distance_fare + self.time_fare

    @property
    def fee_total(self) -> Decimal:
        return sum((getattr(self, name) for name in sorted(FEE_FIELDS)), ZERO)

    @property
    def component_total(self) -> Decimal:
        """What the rider should pay according to the record's own components."""
        return self.fare_subtotal + self.tolls + self.fee_total - self.discount_amount


# =============================================================================
# Output types
# =============================================================================


@dataclass(frozen=True)
class AuditFinding:
    """
    One discrepancy found by one checker.

    ``expected_value`` is set only when a deterministic correct value is
    known; reconciliation never invents one.  ``fix_status`` stays
    NOT_APPLICABLE until the finding is reconciled, which produces a new
    instance.
    """

    category: AuditCategory
    severity: AuditSeverity
    message: str
    field: str | None = None
    expected_value: Decimal | None = None
    actual_value: Decimal | None = None
    variance: Decimal | None = None
    fix_status: FixStatus = FixStatus.NOT_APPLICABLE
    details: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class AppliedFix:
    """A field value replaced by reconciliation."""

    field: str
    old_value: Decimal
    new_value: Decimal
    category: AuditCategory
    reason: str


@dataclass(frozen=True)
class ReviewItem:
    """A finding handed to a human adjudicator."""

    category: AuditCategory
    message: str
    field: str | None = None
    owed_amount: Decimal | None = None


@dataclass(frozen=True)
class ReconciliationOutcome:
    """
    Per-trip reconciliation result.

    ``success`` is False only when some finding is unfixable.
    ``requires_manual_review`` is True when any finding was routed to review
    or is unfixable.
    """

    trip_id: str
    success: bool
    requires_manual_review: bool
    applied_fixes: tuple[AppliedFix, ...] = ()
    review_items: tuple[ReviewItem, ...] = ()
    findings: tuple[AuditFinding, ...] = ()
    corrected_trip: TripRecordReport | None = None

    @property
    def auto_fixed_count(self) -> int:
        return sum(1 for f in self.findings if f.fix_status == FixStatus.AUTO_FIXED)

    @property
    def unfixable_count(self) -> int:
        return sum(1 for f in self.findings if f.fix_status == FixStatus.UNFIXABLE)


def worst_severity(findings: tuple[AuditFinding, ...]) -> AuditSeverity:
    """Most severe finding severity, or VALID when there are none."""
    worst = AuditSeverity.VALID
    for finding in findings:
        if finding.severity.rank > worst.rank:
            worst = finding.severity
    return worst


@dataclass(frozen=True)
class AuditResult:
    """
    Complete audit of one trip.

    ``overall_status`` is derived from the highest-severity finding.
    """

    trip_id: str
    overall_status: AuditSeverity
    findings: tuple[AuditFinding, ...] = ()
    checks_performed: tuple[str, ...] = ()
    auto_fix_applied: bool = False
    reconciliation: ReconciliationOutcome | None = None

    @classmethod
    def from_findings(
        cls,
        trip_id: str,
        findings: tuple[AuditFinding, ...],
        checks_performed: tuple[str, ...] = (),
    ) -> AuditResult:
        return cls(
            trip_id=trip_id,
            overall_status=worst_severity(findings),
            findings=findings,
            checks_performed=checks_performed,
        )

    @property
    def is_valid(self) -> bool:
        return not self.findings

    @property
    def critical_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == AuditSeverity.CRITICAL)

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == AuditSeverity.WARNING)

    @property
    def info_count(self) -> int:
        return sum(1 for f in self.findings if f.severity == AuditSeverity.INFO)

    @property
    def audit_score(self) -> int:
        """100 minus 10 per critical, 3 per warning, 1 per info; floor 0."""
        return max(0, 100 - 10 * self.critical_count - 3 * self.warning_count - self.info_count)


@dataclass(frozen=True)
class AuditSummary:
    """Aggregate over a batch of audit results."""

    total_trips: int
    valid_trips: int
    critical_count: int
    warning_count: int
    info_count: int
    findings_by_category: Mapping[AuditCategory, int] = field(default_factory=dict)
    total_variance_amount: Decimal = ZERO
    audit_score: Decimal = Decimal("100")
