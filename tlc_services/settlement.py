"""
SettlementProcessor -- Weekly settlement netting prior adjustments.

Composes DriverSessionStore (accumulated totals) with the pure weekly
minimum-pay engine.

Architecture: tlc_services -- imperative shell.

Invariants enforced:
    - settle() never mutates the store; identical session data yields an
      equal WeeklySettlement (no clock reads, no generated ids).
    - Per-ride and hourly adjustments already disbursed are passed to the
      weekly check as supplied, so the top-up never double-counts them.
    - A driver without a session gets a zero-activity settlement.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from tlc_engines.minimum_pay import calculate_weekly_minimum
from tlc_kernel.domain.values import MINUTES_PER_HOUR
from tlc_kernel.exceptions import InvalidInputError
from tlc_kernel.logging_config import LogContext, get_logger
from tlc_services.session_store import (
    ArchivedSession,
    DriverComplianceSnapshot,
    DriverSessionSnapshot,
    DriverSessionStore,
)

logger = get_logger("services.settlement")


@dataclass(frozen=True)
class WeeklySettlement:
    """Immutable settlement for one (driver, week) run."""

    driver_id: str
    week_start: date
    week_end: date
    rides_completed: int
    total_online_hours: Decimal
    total_engaged_hours: Decimal
    utilization_rate: Decimal
    total_earnings: Decimal
    per_ride_adjustments: Decimal
    hourly_adjustments: Decimal
    weekly_floor: Decimal
    already_covered: Decimal
    top_up: Decimal
    final_payout: Decimal
    is_eligible: bool
    eligibility_reason: str | None

    @property
    def total_adjustments(self) -> Decimal:
        return self.per_ride_adjustments + self.hourly_adjustments + self.top_up


@dataclass(frozen=True)
class ClosedWeek:
    """Settlement plus the archived session it was computed from."""

    settlement: WeeklySettlement
    archived_session: ArchivedSession | None


class SettlementProcessor:
    """Produces weekly settlements from a DriverSessionStore.

    Contract:
        - ``settle()`` may be called mid-week (partial data) and any number
          of times for a closed week.
        - ``close_week()`` archives the session and settles from the archive.

    Non-goals:
        - Does NOT disburse payouts; not double-applying them is the
          caller's responsibility.
        - Does NOT persist settlements.
    """

    def __init__(self, store: DriverSessionStore) -> None:
        self._store = store

    def settle(self, driver_id: str, week_start: date, week_end: date) -> WeeklySettlement:
        _check_week(week_start, week_end)
        snap = self._store.compliance_snapshot(driver_id)
        return self._settle_totals(driver_id, week_start, week_end, snap, snap.has_session)

    def close_week(self, driver_id: str, week_start: date, week_end: date) -> ClosedWeek:
        """
        Archive the session, then settle from the archived totals.

        Settling from the archive means a ride recorded concurrently lands
        either in this settlement or in next week's session, never both.
        """
        _check_week(week_start, week_end)
        archived = self._store.reset(driver_id)
        if archived is None:
            settlement = self._settle_totals(
                driver_id,
                week_start,
                week_end,
                DriverComplianceSnapshot.zero_activity(driver_id),
                False,
            )
        else:
            settlement = self._settle_totals(
                driver_id, week_start, week_end, archived.snapshot, True
            )
        return ClosedWeek(settlement=settlement, archived_session=archived)

    def _settle_totals(
        self,
        driver_id: str,
        week_start: date,
        week_end: date,
        totals: DriverComplianceSnapshot | DriverSessionSnapshot,
        has_session: bool,
    ) -> WeeklySettlement:
        with LogContext.bind(driver_id=driver_id):
            online_hours = totals.total_online_minutes / MINUTES_PER_HOUR
            # Rides can be recorded ahead of the online-time event covering them.
            engaged_hours = min(totals.total_engaged_minutes / MINUTES_PER_HOUR, online_hours)

            result = calculate_weekly_minimum(
                driver_id=driver_id,
                week_start=week_start,
                week_end=week_end,
                total_online_hours=online_hours,
                total_engaged_hours=engaged_hours,
                total_rides=totals.rides_completed,
                total_earnings=totals.total_earnings,
                per_ride_adjustments=totals.per_ride_adjustments,
                hourly_adjustments=totals.hourly_adjustments,
                config=self._store.config,
            )

            settlement = WeeklySettlement(
                driver_id=driver_id,
                week_start=week_start,
                week_end=week_end,
                rides_completed=result.total_rides,
                total_online_hours=result.total_online_hours,
                total_engaged_hours=result.total_engaged_hours,
                utilization_rate=result.utilization_rate,
                total_earnings=result.total_earnings,
                per_ride_adjustments=result.per_ride_adjustments,
                hourly_adjustments=result.hourly_adjustments,
                weekly_floor=result.weekly_floor,
                already_covered=result.already_covered,
                top_up=result.top_up,
                final_payout=result.final_payout,
                is_eligible=result.is_eligible,
                eligibility_reason=result.eligibility_reason,
            )

            logger.info(
                "weekly_settlement_computed",
                extra={
                    "has_session": has_session,
                    "week_start": week_start,
                    "week_end": week_end,
                    "is_eligible": settlement.is_eligible,
                    "top_up": str(settlement.top_up),
                    "final_payout": str(settlement.final_payout),
                },
            )
        return settlement


def _check_week(week_start: date, week_end: date) -> None:
    if week_end < week_start:
        raise InvalidInputError(
            "week_window", f"{week_start}..{week_end}", "week ends before it starts"
        )
