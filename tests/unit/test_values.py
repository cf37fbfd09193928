"""Tests for the Decimal value helpers (tlc_kernel/domain/values.py)."""

from decimal import Decimal

import pytest

from tlc_kernel.domain.values import (
    non_negative,
    non_negative_int,
    round_currency,
    round_ratio,
    to_decimal,
)
from tlc_kernel.exceptions import InvalidInputError, ValidationError


class TestToDecimal:
    def test_accepts_decimal_int_and_string(self):
        assert to_decimal(Decimal("1.25"), "x") == Decimal("1.25")
        assert to_decimal(3, "x") == Decimal("3")
        assert to_decimal(" 4.50 ", "x") == Decimal("4.50")

    def test_rejects_float(self):
        with pytest.raises(InvalidInputError) as exc_info:
            to_decimal(1.5, "trip_time_minutes")
        assert exc_info.value.field == "trip_time_minutes"
        assert "float" in exc_info.value.reason

    @pytest.mark.parametrize("value", [True, None, "abc", object()])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(InvalidInputError):
            to_decimal(value, "x")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", Decimal("-Infinity")])
    def test_rejects_non_finite(self, value):
        with pytest.raises(InvalidInputError):
            to_decimal(value, "x")

    @pytest.mark.parametrize("value", ["1e30", Decimal("-1e12"), 10**15])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(InvalidInputError, match="out of range"):
            to_decimal(value, "x")

    def test_large_amount_below_bound_accepted(self):
        assert round_currency(to_decimal("999999999999.995", "x")) == Decimal("1000000000000.00")

    def test_invalid_input_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            to_decimal("x", "amount")
        assert exc_info.value.code == "INVALID_INPUT"


class TestNonNegative:
    def test_zero_allowed(self):
        assert non_negative("0", "x") == Decimal("0")

    def test_negative_rejected(self):
        with pytest.raises(InvalidInputError, match="negative"):
            non_negative("-0.01", "x")

    def test_int_counts(self):
        assert non_negative_int(3, "rides") == 3
        with pytest.raises(InvalidInputError):
            non_negative_int(-1, "rides")
        with pytest.raises(InvalidInputError):
            non_negative_int(True, "rides")
        with pytest.raises(InvalidInputError):
            non_negative_int(Decimal("2"), "rides")


class TestRounding:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("6.552", "6.55"),
            ("0.125", "0.13"),
            ("0.005", "0.01"),
            ("2.345", "2.35"),
            ("14.30", "14.30"),
        ],
    )
    def test_round_currency_half_up(self, raw, expected):
        assert round_currency(Decimal(raw)) == Decimal(expected)

    def test_round_ratio_places(self):
        assert round_ratio(Decimal(2) / Decimal(3)) == Decimal("0.6667")
        assert round_ratio(Decimal("83.335"), 2) == Decimal("83.34")
