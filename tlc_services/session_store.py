"""
DriverSessionStore -- Per-driver accumulator for an in-progress tracking period.

Responsibility:
    Single point of truth for each driver's running totals: rides, earnings,
    online/engaged/waiting minutes, per-ride adjustment records and hourly
    adjustments.  Mediates between individual ride events and the hourly and
    weekly calculators.

Architecture position:
    Services -- imperative shell around the pure minimum_pay engine.
    Injected into SettlementProcessor; there is no module-level store.

Invariants enforced:
    - total_waiting_minutes <= total_online_minutes after every update.
    - total_tlc_adjustments = per_ride_adjustments + hourly_adjustments,
      never negative, never decreasing within a tracking period.
    - Every mutation is an atomic delta-apply under the driver's own lock.
      Unrelated drivers never contend; the registry lock only guards the
      entry map and is never held while a session is updated.
    - Recording the same ride_id or the same hourly window twice returns
      the first record and does not accumulate again.
    - Invalid input is rejected before any session is created.

Failure modes:
    - InvalidInputError for negative or non-numeric deltas.
    - SessionIntegrityError when an online-time update would leave waiting
      time above online time; the session is left unchanged.
    - Unknown drivers are not an error: reads return zero-activity values.

Audit relevance:
    reset() is archival: it hands back every RideAdjustmentRecord and
    hourly record so they can be exported before the live totals go away.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from tlc_config.schema import RateConfig
from tlc_engines.minimum_pay import (
    HourlyMinimumResult,
    calculate_hourly_minimum,
    calculate_per_ride_minimum,
)
from tlc_kernel.domain.clock import Clock, SystemClock
from tlc_kernel.domain.values import ZERO, non_negative, round_ratio
from tlc_kernel.exceptions import InvalidInputError, SessionIntegrityError
from tlc_kernel.logging_config import get_logger

logger = get_logger("services.session_store")


# =============================================================================
# Records and snapshots
# =============================================================================


@dataclass(frozen=True)
class RideAdjustmentRecord:
    """Per-ride check outcome, created once per completed ride."""

    ride_id: str
    trip_time_minutes: Decimal
    trip_distance_miles: Decimal
    actual_driver_payout: Decimal
    computed_minimum_pay: Decimal
    adjustment_amount: Decimal
    completed_at: datetime | None = None


@dataclass(frozen=True)
class HourlyAdjustmentRecord:
    """Hourly check outcome accumulated into the session."""

    window_start: datetime
    window_end: datetime
    total_online_minutes: Decimal
    required_floor: Decimal
    total_earnings: Decimal
    adjustment_amount: Decimal


@dataclass(frozen=True)
class DriverSessionSnapshot:
    """Immutable copy of a session's state at one instant."""

    driver_id: str
    started_at: datetime
    total_earnings: Decimal
    total_online_minutes: Decimal
    total_engaged_minutes: Decimal
    total_waiting_minutes: Decimal
    per_ride_adjustments: Decimal
    hourly_adjustments: Decimal
    rides_completed: int
    ride_records: tuple[RideAdjustmentRecord, ...] = ()
    hourly_records: tuple[HourlyAdjustmentRecord, ...] = ()

    @property
    def total_tlc_adjustments(self) -> Decimal:
        return self.per_ride_adjustments + self.hourly_adjustments


@dataclass(frozen=True)
class DriverComplianceSnapshot:
    """Live compliance view; computed without mutating anything."""

    driver_id: str
    has_session: bool
    rides_completed: int
    total_earnings: Decimal
    total_online_minutes: Decimal
    total_engaged_minutes: Decimal
    total_waiting_minutes: Decimal
    utilization_rate: Decimal
    per_ride_adjustments: Decimal
    hourly_adjustments: Decimal
    total_tlc_adjustments: Decimal
    non_compliant_rides: int

    @classmethod
    def zero_activity(cls, driver_id: str) -> DriverComplianceSnapshot:
        return cls(
            driver_id=driver_id,
            has_session=False,
            rides_completed=0,
            total_earnings=ZERO,
            total_online_minutes=ZERO,
            total_engaged_minutes=ZERO,
            total_waiting_minutes=ZERO,
            utilization_rate=ZERO,
            per_ride_adjustments=ZERO,
            hourly_adjustments=ZERO,
            total_tlc_adjustments=ZERO,
            non_compliant_rides=0,
        )


@dataclass(frozen=True)
class ArchivedSession:
    """What reset() hands back: the final state plus when it was archived."""

    snapshot: DriverSessionSnapshot
    archived_at: datetime


# =============================================================================
# Internal mutable state
# =============================================================================


@dataclass
class _DriverSession:
    driver_id: str
    started_at: datetime
    total_earnings: Decimal = ZERO
    total_online_minutes: Decimal = ZERO
    total_engaged_minutes: Decimal = ZERO
    total_waiting_minutes: Decimal = ZERO
    per_ride_adjustments: Decimal = ZERO
    hourly_adjustments: Decimal = ZERO
    rides_completed: int = 0
    ride_records: list[RideAdjustmentRecord] = field(default_factory=list)
    rides_by_id: dict[str, RideAdjustmentRecord] = field(default_factory=dict)
    hourly_results: dict[tuple[datetime, datetime], HourlyMinimumResult] = field(
        default_factory=dict
    )
    hourly_records: list[HourlyAdjustmentRecord] = field(default_factory=list)

    def snapshot(self) -> DriverSessionSnapshot:
        return DriverSessionSnapshot(
            driver_id=self.driver_id,
            started_at=self.started_at,
            total_earnings=self.total_earnings,
            total_online_minutes=self.total_online_minutes,
            total_engaged_minutes=self.total_engaged_minutes,
            total_waiting_minutes=self.total_waiting_minutes,
            per_ride_adjustments=self.per_ride_adjustments,
            hourly_adjustments=self.hourly_adjustments,
            rides_completed=self.rides_completed,
            ride_records=tuple(self.ride_records),
            hourly_records=tuple(self.hourly_records),
        )


class _SessionEntry:
    __slots__ = ("lock", "session", "retired")

    def __init__(self, session: _DriverSession):
        self.lock = threading.Lock()
        self.session = session
        self.retired = False


# =============================================================================
# Store
# =============================================================================


class DriverSessionStore:
    """Keyed-by-driver session accumulator with per-driver locking.

    Contract:
        - Exposes only get / record / snapshot / reset operations; callers
          never touch the underlying map.
        - Sessions are created lazily by the first ride or online-time
          event.

    Non-goals:
        - Does NOT persist sessions (caller decides).
        - Does NOT close weeks; SettlementProcessor.close_week() does.
    """

    def __init__(self, config: RateConfig, clock: Clock | None = None) -> None:
        self._config = config
        self._clock = clock or SystemClock()
        self._entries: dict[str, _SessionEntry] = {}
        self._registry_lock = threading.Lock()

    @property
    def config(self) -> RateConfig:
        return self._config

    # -----------------------------------------------------------------
    # Locking
    # -----------------------------------------------------------------

    def _entry(self, driver_id: str, create: bool) -> _SessionEntry | None:
        with self._registry_lock:
            entry = self._entries.get(driver_id)
            if entry is None and create:
                entry = _SessionEntry(_DriverSession(driver_id, self._clock.now()))
                self._entries[driver_id] = entry
                logger.info("driver_session_created", extra={"driver_id": driver_id})
            return entry

    @contextmanager
    def _locked(self, driver_id: str) -> Iterator[_DriverSession]:
        """Hold the driver's lock around a live (non-retired) session."""
        if not driver_id:
            raise InvalidInputError("driver_id", driver_id, "must be a non-empty string")
        while True:
            entry = self._entry(driver_id, create=True)
            with entry.lock:
                if entry.retired:
                    # Reset won the race; retry against the fresh entry.
                    continue
                yield entry.session
                return

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def get_or_create(self, driver_id: str) -> DriverSessionSnapshot:
        with self._locked(driver_id) as session:
            return session.snapshot()

    def get(self, driver_id: str) -> DriverSessionSnapshot | None:
        entry = self._entry(driver_id, create=False)
        if entry is None:
            return None
        with entry.lock:
            if entry.retired:
                return None
            return entry.session.snapshot()

    def driver_ids(self) -> tuple[str, ...]:
        with self._registry_lock:
            return tuple(sorted(self._entries))

    def compliance_snapshot(self, driver_id: str) -> DriverComplianceSnapshot:
        """Utilization and running totals; unknown drivers read as zero activity."""
        snap = self.get(driver_id)
        if snap is None:
            return DriverComplianceSnapshot.zero_activity(driver_id)

        if snap.total_online_minutes == ZERO:
            utilization = ZERO
        else:
            utilization = round_ratio(
                min(Decimal(1), snap.total_engaged_minutes / snap.total_online_minutes)
            )
        return DriverComplianceSnapshot(
            driver_id=driver_id,
            has_session=True,
            rides_completed=snap.rides_completed,
            total_earnings=snap.total_earnings,
            total_online_minutes=snap.total_online_minutes,
            total_engaged_minutes=snap.total_engaged_minutes,
            total_waiting_minutes=snap.total_waiting_minutes,
            utilization_rate=utilization,
            per_ride_adjustments=snap.per_ride_adjustments,
            hourly_adjustments=snap.hourly_adjustments,
            total_tlc_adjustments=snap.total_tlc_adjustments,
            non_compliant_rides=sum(
                1 for r in snap.ride_records if r.adjustment_amount > ZERO
            ),
        )

    # -----------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------

    def record_ride(
        self,
        driver_id: str,
        ride_id: str,
        trip_time_minutes: Decimal | int | str,
        trip_distance_miles: Decimal | int | str,
        actual_driver_payout: Decimal | int | str,
        completed_at: datetime | None = None,
    ) -> RideAdjustmentRecord:
        """
        Run the per-ride check and fold the ride into the session.

        A ride_id already recorded in this session returns the stored
        record; retried ride events are not counted twice.
        """
        if not ride_id:
            raise InvalidInputError("ride_id", ride_id, "must be a non-empty string")
        result = calculate_per_ride_minimum(
            trip_time_minutes=trip_time_minutes,
            trip_distance_miles=trip_distance_miles,
            actual_driver_payout=actual_driver_payout,
            config=self._config,
        )
        record = RideAdjustmentRecord(
            ride_id=ride_id,
            trip_time_minutes=result.trip_time_minutes,
            trip_distance_miles=result.trip_distance_miles,
            actual_driver_payout=result.actual_pay,
            computed_minimum_pay=result.minimum_pay,
            adjustment_amount=result.adjustment,
            completed_at=completed_at,
        )

        with self._locked(driver_id) as session:
            existing = session.rides_by_id.get(ride_id)
            if existing is not None:
                logger.info(
                    "ride_already_recorded",
                    extra={"driver_id": driver_id, "ride_id": ride_id},
                )
                return existing
            session.rides_by_id[ride_id] = record
            session.ride_records.append(record)
            session.rides_completed += 1
            session.total_earnings += result.actual_pay
            session.total_engaged_minutes += result.trip_time_minutes
            session.per_ride_adjustments += result.adjustment

        logger.info(
            "ride_recorded",
            extra={
                "driver_id": driver_id,
                "ride_id": ride_id,
                "minimum_pay": str(result.minimum_pay),
                "adjustment": str(result.adjustment),
            },
        )
        return record

    def record_online_time(
        self,
        driver_id: str,
        online_minutes: Decimal | int | str,
        waiting_minutes: Decimal | int | str = ZERO,
    ) -> DriverSessionSnapshot:
        """Add online and waiting deltas, rejecting updates that break waiting <= online."""
        online = non_negative(online_minutes, "online_minutes")
        waiting = non_negative(waiting_minutes, "waiting_minutes")

        with self._locked(driver_id) as session:
            new_online = session.total_online_minutes + online
            new_waiting = session.total_waiting_minutes + waiting
            if new_waiting > new_online:
                logger.warning(
                    "online_time_rejected",
                    extra={
                        "driver_id": driver_id,
                        "total_online_minutes": str(new_online),
                        "total_waiting_minutes": str(new_waiting),
                    },
                )
                raise SessionIntegrityError(driver_id, new_online, new_waiting)
            session.total_online_minutes = new_online
            session.total_waiting_minutes = new_waiting
            snap = session.snapshot()

        logger.debug(
            "online_time_recorded",
            extra={"driver_id": driver_id, "online_minutes": str(online)},
        )
        return snap

    def record_hourly_check(
        self,
        driver_id: str,
        window_start: datetime,
        window_end: datetime,
        online_minutes: Decimal | int | str,
        engaged_minutes: Decimal | int | str,
        earnings: Decimal | int | str,
        rides_completed: int,
    ) -> HourlyMinimumResult:
        """
        Run the hourly check for one window and accumulate its adjustment.

        A window already recorded in this session returns its stored result
        without adding to the totals again.
        """
        if not driver_id:
            raise InvalidInputError("driver_id", driver_id, "must be a non-empty string")
        result = calculate_hourly_minimum(
            driver_id=driver_id,
            window_start=window_start,
            window_end=window_end,
            total_online_minutes=online_minutes,
            engaged_minutes=engaged_minutes,
            total_earnings=earnings,
            rides_completed=rides_completed,
            config=self._config,
        )

        key = (window_start, window_end)
        with self._locked(driver_id) as session:
            existing = session.hourly_results.get(key)
            if existing is not None:
                logger.info(
                    "hourly_check_already_recorded",
                    extra={"driver_id": driver_id, "window_start": window_start},
                )
                return existing

            session.hourly_results[key] = result
            session.hourly_adjustments += result.adjustment
            session.hourly_records.append(
                HourlyAdjustmentRecord(
                    window_start=window_start,
                    window_end=window_end,
                    total_online_minutes=result.total_online_minutes,
                    required_floor=result.required_floor,
                    total_earnings=result.total_earnings,
                    adjustment_amount=result.adjustment,
                )
            )
        return result

    def reset(self, driver_id: str) -> ArchivedSession | None:
        """
        Archive and remove a driver's session.

        Returns the final snapshot (with every ride and hourly record), or
        None if the driver had no session.
        """
        entry = self._entry(driver_id, create=False)
        if entry is None:
            return None
        with entry.lock:
            if entry.retired:
                return None
            entry.retired = True
            snapshot = entry.session.snapshot()
        with self._registry_lock:
            if self._entries.get(driver_id) is entry:
                del self._entries[driver_id]

        archived = ArchivedSession(snapshot=snapshot, archived_at=self._clock.now())
        logger.info(
            "driver_session_reset",
            extra={
                "driver_id": driver_id,
                "rides_archived": len(snapshot.ride_records),
                "total_tlc_adjustments": str(snapshot.total_tlc_adjustments),
            },
        )
        return archived
