"""Tests for coordinate zone lookup (tlc_engines/zones.py)."""

from decimal import Decimal

import pytest

from tlc_engines.zones import (
    BoundingBox,
    BoundingBoxZoneLookup,
    Borough,
    haversine_miles,
    straight_line_miles,
)


@pytest.fixture
def zones():
    return BoundingBoxZoneLookup()


class TestBoroughLookup:
    @pytest.mark.parametrize(
        "lat, lng, borough",
        [
            (40.7484, -73.9857, Borough.MANHATTAN),
            (40.6892, -73.9442, Borough.BROOKLYN),
            (40.6413, -73.7781, Borough.QUEENS),
            (40.8448, -73.8648, Borough.BRONX),
            (40.5795, -74.1502, Borough.STATEN_ISLAND),
            (40.9312, -73.8988, Borough.OUT_OF_NYC),
            (40.7357, -74.1724, Borough.OUT_OF_NYC),
        ],
    )
    def test_known_points(self, zones, lat, lng, borough):
        assert zones.borough_at(lat, lng) == borough

    def test_custom_boxes(self):
        lookup = BoundingBoxZoneLookup(
            boroughs=((Borough.MANHATTAN, BoundingBox(0, 1, 0, 1)),)
        )
        assert lookup.borough_at(0.5, 0.5) == Borough.MANHATTAN
        assert lookup.borough_at(2, 2) == Borough.OUT_OF_NYC


class TestCongestionZone:
    def test_midtown_inside(self, zones):
        assert zones.in_congestion_zone(40.7484, -73.9857) is True

    def test_harlem_outside(self, zones):
        assert zones.in_congestion_zone(40.8116, -73.9465) is False


class TestAirports:
    def test_terminal_coordinates(self, zones):
        assert zones.airport_at(40.6413, -73.7781) == "JFK"
        assert zones.airport_at(40.7769, -73.8740) == "LGA"
        assert zones.airport_at(40.6895, -74.1745) == "EWR"

    def test_city_point_not_airport(self, zones):
        assert zones.airport_at(40.7484, -73.9857) is None


class TestDistance:
    def test_zero_distance(self):
        assert haversine_miles(40.7, -73.9, 40.7, -73.9) == 0.0

    def test_manhattan_to_brooklyn(self):
        miles = straight_line_miles(40.7484, -73.9857, 40.6892, -73.9442)
        assert isinstance(miles, Decimal)
        assert Decimal("4.5") < miles < Decimal("4.8")

    def test_symmetric(self):
        there = haversine_miles(40.7484, -73.9857, 40.6413, -73.7781)
        back = haversine_miles(40.6413, -73.7781, 40.7484, -73.9857)
        assert there == pytest.approx(back)
