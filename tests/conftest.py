"""
Pytest fixtures for the TLC compliance engine test suite.

Provides:
- Structured logging capture
- A rate configuration with round example rates
- A consistent trip record builder
- Deterministic clocks, in-memory trip sources and SQLite sessions
"""

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from tlc_config import get_active_rate_config, reset_rate_config_cache
from tlc_engines.audit.checker import TripAuditChecker
from tlc_engines.audit.types import TripLocation, TripRecordReport
from tlc_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from tlc_kernel.db.immutability import unregister_immutability_listeners
from tlc_kernel.domain.clock import DeterministicClock
from tlc_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Midtown Manhattan (inside the congestion zone) to Downtown Brooklyn.
MANHATTAN_PICKUP = TripLocation(40.7484, -73.9857, "Manhattan", "350 5th Ave")
BROOKLYN_DROPOFF = TripLocation(40.6892, -73.9442, "Brooklyn", "Bedford-Stuyvesant")
JFK_DROPOFF = TripLocation(40.6413, -73.7781, "Queens", "JFK Terminal 4")
YONKERS_DROPOFF = TripLocation(40.9312, -73.8988, "Out of NYC", "Yonkers")

TRIP_START = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture tlc_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, store):
            store.record_ride(...)
            logs = captured_logs()
            assert any(r["message"] == "ride_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("tlc_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting on driver session locks"
    )


# =============================================================================
# Configuration
# =============================================================================


def example_rate_config():
    """
    The shipped fee schedule and tolerances with round example rates.

    per-minute 0.40, per-mile 1.26, hourly 30.00; weekly guarantee needs
    1 ride and 1 online hour.
    """
    return replace(
        get_active_rate_config(),
        name="test",
        per_minute_rate=Decimal("0.40"),
        per_mile_rate=Decimal("1.26"),
        hourly_minimum_rate=Decimal("30.00"),
        weekly_min_rides=1,
        weekly_min_online_hours=Decimal("1"),
    )


@pytest.fixture
def rate_config():
    reset_rate_config_cache()
    yield example_rate_config()
    reset_rate_config_cache()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def checker(rate_config):
    return TripAuditChecker(rate_config)


# =============================================================================
# Trip records
# =============================================================================


def build_trip(**overrides) -> TripRecordReport:
    """
    5.2 mi / 30 min congestion-zone trip with every field consistent.

    Subtotal 21.00, fees 8.55 (AVF 0.125, BCF 0.625, HVRF 0.05, state 2.50,
    congestion 2.75, cross-borough 2.50), final fare 29.55.  Driver floor at
    the example rates is 18.55; payout 18.90 = 21.00 - 2.10 commission.
    """
    trip = TripRecordReport(
        trip_id="trip-001",
        driver_id="driver-001",
        vehicle_id="T123456C",
        pickup_time=TRIP_START,
        dropoff_time=datetime(2024, 1, 15, 8, 30, tzinfo=timezone.utc),
        pickup_location=MANHATTAN_PICKUP,
        dropoff_location=BROOKLYN_DROPOFF,
        trip_distance_miles=Decimal("5.2"),
        trip_duration_minutes=Decimal("30"),
        base_fare=Decimal("5.00"),
        distance_fare=Decimal("9.10"),
        time_fare=Decimal("6.90"),
        avf_fee=Decimal("0.125"),
        bcf_fee=Decimal("0.625"),
        hvrf_fee=Decimal("0.05"),
        state_surcharge=Decimal("2.50"),
        congestion_fee=Decimal("2.75"),
        cross_city_fee=Decimal("2.50"),
        final_fare=Decimal("29.55"),
        driver_payout=Decimal("18.90"),
        commission_amount=Decimal("2.10"),
    )
    return replace(trip, **overrides) if overrides else trip


@pytest.fixture
def make_trip():
    """
    Builder for trip records.  With no arguments the trip audits clean.

    Usage::

        def test_fare(checker, make_trip):
            trip = make_trip(final_fare=Decimal("31.05"))
    """
    return build_trip


class InMemoryTripSource:
    """TripRecordSource over a fixed list of trips."""

    def __init__(self, trips):
        self._trips = list(trips)
        self.calls = []

    def fetch(self, trip_filter):
        self.calls.append(trip_filter)
        return [trip for trip in self._trips if trip_filter.matches(trip)]


@pytest.fixture
def trip_source_factory():
    return InMemoryTripSource


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_session():
    """
    Session on a fresh in-memory SQLite database with the audit log table
    created and the immutability listeners registered.
    """
    init_engine_from_url("sqlite:///:memory:")
    create_tables()
    session = get_session()
    yield session
    session.rollback()
    session.close()
    drop_tables()
    unregister_immutability_listeners()
    reset_engine()
