"""Tests for the injectable clocks (tlc_kernel/domain/clock.py)."""

from datetime import datetime, timedelta, timezone

import pytest

from tlc_kernel.domain.clock import DeterministicClock, SystemClock

START = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestDeterministicClock:
    def test_stable_until_advanced(self):
        clock = DeterministicClock(START)
        assert clock.now() == clock.now() == START

    def test_advance(self):
        clock = DeterministicClock(START)
        clock.advance(90)
        assert clock.now() == START + timedelta(seconds=90)

    def test_naive_start_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2024, 1, 15, 12, 0))


class TestSystemClock:
    def test_timezone_aware_utc(self):
        assert SystemClock().now().tzinfo == timezone.utc
