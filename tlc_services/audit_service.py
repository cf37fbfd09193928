"""
TripAuditService -- Service wrapper for per-trip and batch audits.

Composes the pure TripAuditChecker and TripReconciler engines with an
optional TripRecordSource collaborator.

Architecture: tlc_services -- imperative shell.
    Batch audits fan out over a bounded thread pool; each trip's checks are
    independent and read-only against the RateConfig.  Results come back in
    input order.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Protocol

from tlc_engines.audit.checker import TripAuditChecker
from tlc_engines.audit.types import (
    AuditFinding,
    AuditResult,
    AuditSeverity,
    AuditSummary,
    FixStatus,
    TripRecordReport,
)
from tlc_engines.reconciliation.reconciler import TripReconciler
from tlc_engines.zones import normalize_borough
from tlc_kernel.domain.values import ZERO, round_ratio
from tlc_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.trip_audit")

DEFAULT_MAX_WORKERS = 8


@dataclass(frozen=True)
class TripRecordFilter:
    """Selection criteria a TripRecordSource materializes trips for.

    Bounds are inclusive; None means unbounded.
    """

    start_date: date | None = None
    end_date: date | None = None
    driver_id: str | None = None
    borough: str | None = None
    trip_category: str | None = None
    airport_code: str | None = None
    min_fare: Decimal | None = None
    max_fare: Decimal | None = None

    def matches(self, trip: TripRecordReport) -> bool:
        if self.start_date is not None or self.end_date is not None:
            if trip.pickup_time is None:
                return False
            pickup_day = trip.pickup_time.date()
            if self.start_date is not None and pickup_day < self.start_date:
                return False
            if self.end_date is not None and pickup_day > self.end_date:
                return False
        if self.driver_id is not None and trip.driver_id != self.driver_id:
            return False
        if self.borough is not None:
            wanted = normalize_borough(self.borough)
            declared = {
                normalize_borough(loc.borough)
                for loc in (trip.pickup_location, trip.dropoff_location)
                if loc is not None
            }
            if wanted not in declared:
                return False
        if self.trip_category is not None and trip.trip_category != self.trip_category:
            return False
        if self.airport_code is not None and trip.airport_code != self.airport_code:
            return False
        if self.min_fare is not None and trip.final_fare < self.min_fare:
            return False
        if self.max_fare is not None and trip.final_fare > self.max_fare:
            return False
        return True


class TripRecordSource(Protocol):
    """Reporting collaborator that materializes trip records."""

    def fetch(self, trip_filter: TripRecordFilter) -> Sequence[TripRecordReport]: ...


class TripAuditService:
    """Audits trips, optionally reconciling inline.

    Contract:
        - ``audit_trip()`` runs every check; with ``reconcile=True`` the
          reconciler runs too and findings come back with their resolved
          fix status.
        - ``audit_trips()`` audits concurrently and preserves input order.
        - The ``check_*`` methods run one category in isolation.

    Non-goals:
        - Does NOT persist results or corrected trips (caller decides).
    """

    def __init__(
        self,
        checker: TripAuditChecker,
        reconciler: TripReconciler | None = None,
        source: TripRecordSource | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._checker = checker
        self._reconciler = reconciler or TripReconciler()
        self._source = source
        self._max_workers = max_workers

    # -----------------------------------------------------------------
    # Single-category checks
    # -----------------------------------------------------------------

    def check_fare(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        return self._checker.check_fare_consistency(trip=trip)

    def check_driver_pay(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        return self._checker.check_driver_pay(trip=trip)

    def check_location(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        return self._checker.check_location_accuracy(trip=trip)

    def check_time_distance(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        return self._checker.check_time_distance(trip=trip)

    def check_fees(self, trip: TripRecordReport) -> tuple[AuditFinding, ...]:
        return self._checker.check_regulatory_fees(trip=trip) + self._checker.check_tolls(trip=trip)

    # -----------------------------------------------------------------
    # Full audits
    # -----------------------------------------------------------------

    def audit_trip(self, trip: TripRecordReport, reconcile: bool = False) -> AuditResult:
        with LogContext.bind(trip_id=trip.trip_id, driver_id=trip.driver_id):
            result = self._checker.run_all_checks(trip=trip)
            if not reconcile or not result.findings:
                return result

            outcome = self._reconciler.reconcile(trip=trip, findings=result.findings)
            criticals_fixed = all(
                f.fix_status == FixStatus.AUTO_FIXED
                for f in outcome.findings
                if f.severity == AuditSeverity.CRITICAL
            )
            return replace(
                result,
                findings=outcome.findings,
                reconciliation=outcome,
                auto_fix_applied=bool(outcome.applied_fixes) and criticals_fixed,
            )

    def audit_trips(
        self,
        trips: Sequence[TripRecordReport],
        reconcile: bool = False,
    ) -> list[AuditResult]:
        if not trips:
            return []
        workers = min(self._max_workers, len(trips))
        logger.info(
            "trip_batch_audit_started",
            extra={"trip_count": len(trips), "workers": workers},
        )
        # Each worker starts from an empty context; copy ours in.
        context = LogContext.get_all()

        def _audit(trip: TripRecordReport) -> AuditResult:
            with LogContext.bind(**context):
                return self.audit_trip(trip, reconcile=reconcile)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(_audit, trips))

        logger.info(
            "trip_batch_audit_completed",
            extra={
                "trip_count": len(results),
                "critical_trips": sum(
                    1 for r in results if r.overall_status == AuditSeverity.CRITICAL
                ),
            },
        )
        return results

    def audit_filtered(
        self,
        trip_filter: TripRecordFilter,
        reconcile: bool = False,
    ) -> list[AuditResult]:
        """Audit every trip the injected source returns for ``trip_filter``."""
        if self._source is None:
            raise RuntimeError("TripAuditService was built without a TripRecordSource")
        trips = self._source.fetch(trip_filter)
        return self.audit_trips(list(trips), reconcile=reconcile)

    # -----------------------------------------------------------------
    # Summaries
    # -----------------------------------------------------------------

    @staticmethod
    def summarize(results: Sequence[AuditResult]) -> AuditSummary:
        """Counts, per-category totals, summed variance and the mean audit score."""
        by_category: Counter = Counter()
        variance = ZERO
        for result in results:
            for finding in result.findings:
                by_category[finding.category] += 1
                if finding.variance is not None:
                    variance += finding.variance

        score = (
            round_ratio(Decimal(sum(r.audit_score for r in results)) / len(results), 2)
            if results
            else Decimal("100")
        )
        return AuditSummary(
            total_trips=len(results),
            valid_trips=sum(1 for r in results if r.is_valid),
            critical_count=sum(r.critical_count for r in results),
            warning_count=sum(r.warning_count for r in results),
            info_count=sum(r.info_count for r in results),
            findings_by_category=dict(by_category),
            total_variance_amount=variance,
            audit_score=score,
        )
