"""
tlc_engines.zones -- Borough, congestion-zone and airport lookup by coordinates.

Responsibility:
    Defines the ``ZoneLookup`` protocol the auditor consumes and a default
    implementation using rectangular borough bounding boxes, the Manhattan
    congestion zone box and radius checks around the region's airports.
    Also provides great-circle distance for straight-line trip checks.

Architecture position:
    Engines -- pure, zero I/O.  A platform with a real geocoder injects its
    own ``ZoneLookup``; the bounding boxes are the fallback.

Failure modes:
    - None: any coordinate outside every box is OUT_OF_NYC.  Boxes overlap
      at borough edges; the first match in declaration order wins.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Protocol

EARTH_RADIUS_MILES = 3959.0


class Borough(str, Enum):
    MANHATTAN = "MANHATTAN"
    BROOKLYN = "BROOKLYN"
    QUEENS = "QUEENS"
    BRONX = "BRONX"
    STATEN_ISLAND = "STATEN_ISLAND"
    OUT_OF_NYC = "OUT_OF_NYC"


def normalize_borough(value: str) -> str:
    """Declared borough text in Borough value form: "Staten Island" -> "STATEN_ISLAND"."""
    return value.strip().upper().replace(" ", "_")


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


@dataclass(frozen=True)
class Airport:
    code: str
    name: str
    lat: float
    lng: float
    radius_miles: float


BOROUGH_BOXES: tuple[tuple[Borough, BoundingBox], ...] = (
    (Borough.MANHATTAN, BoundingBox(40.6995, 40.8820, -74.0479, -73.9067)),
    (Borough.BROOKLYN, BoundingBox(40.5707, 40.7395, -74.0419, -73.8334)),
    (Borough.QUEENS, BoundingBox(40.5420, 40.8012, -73.9626, -73.7004)),
    (Borough.BRONX, BoundingBox(40.7855, 40.9176, -73.9339, -73.7654)),
    (Borough.STATEN_ISLAND, BoundingBox(40.4960, 40.6490, -74.2558, -74.0522)),
)

CONGESTION_ZONE = BoundingBox(40.7092, 40.7678, -74.0183, -73.9716)

AIRPORTS: tuple[Airport, ...] = (
    Airport("JFK", "John F. Kennedy International Airport", 40.6413, -73.7781, 1.5),
    Airport("LGA", "LaGuardia Airport", 40.7769, -73.8740, 1.0),
    Airport("EWR", "Newark Liberty International Airport", 40.6895, -74.1745, 1.5),
    Airport("WCY", "Westchester County Airport", 41.0660, -73.7076, 1.0),
)


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in miles."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def straight_line_miles(lat1, lng1, lat2, lng2) -> Decimal:
    """Haversine distance as a Decimal rounded to hundredths of a mile."""
    miles = haversine_miles(float(lat1), float(lng1), float(lat2), float(lng2))
    return Decimal(str(round(miles, 2)))


class ZoneLookup(Protocol):
    """Coordinate-keyed zone lookup supplied by the platform."""

    def borough_at(self, lat: float, lng: float) -> Borough: ...

    def in_congestion_zone(self, lat: float, lng: float) -> bool: ...

    def airport_at(self, lat: float, lng: float) -> str | None: ...


class BoundingBoxZoneLookup:
    """Default NYC lookup from static bounding boxes and airport radii."""

    def __init__(
        self,
        boroughs: tuple[tuple[Borough, BoundingBox], ...] = BOROUGH_BOXES,
        congestion_zone: BoundingBox = CONGESTION_ZONE,
        airports: tuple[Airport, ...] = AIRPORTS,
    ):
        self._boroughs = boroughs
        self._congestion_zone = congestion_zone
        self._airports = airports

    def borough_at(self, lat: float, lng: float) -> Borough:
        lat, lng = float(lat), float(lng)
        for borough, box in self._boroughs:
            if box.contains(lat, lng):
                return borough
        return Borough.OUT_OF_NYC

    def in_congestion_zone(self, lat: float, lng: float) -> bool:
        return self._congestion_zone.contains(float(lat), float(lng))

    def airport_at(self, lat: float, lng: float) -> str | None:
        for airport in self._airports:
            if haversine_miles(float(lat), float(lng), airport.lat, airport.lng) <= airport.radius_miles:
                return airport.code
        return None
