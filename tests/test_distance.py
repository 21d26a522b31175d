"""
Haversine Distance Tests
========================
"""

import math

import pytest

from geocrowd.geo.distance import EARTH_RADIUS_KM, distance_km, haversine_distance_km
from geocrowd.models import GeoPoint


def test_sf_to_nyc(sf_point, nyc_point):
    # ~4129 km great-circle
    assert distance_km(sf_point, nyc_point) == pytest.approx(4129.0, rel=0.01)


def test_symmetric(sf_point, nyc_point):
    assert distance_km(sf_point, nyc_point) == pytest.approx(distance_km(nyc_point, sf_point))


def test_zero_distance(sf_point):
    assert distance_km(sf_point, sf_point) == 0.0


def test_one_degree_latitude():
    expected = math.pi * EARTH_RADIUS_KM / 180.0
    assert haversine_distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected)


def test_antipodal():
    assert haversine_distance_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * EARTH_RADIUS_KM)


def test_across_antimeridian():
    a = GeoPoint(latitude=0.0, longitude=179.9)
    b = GeoPoint(latitude=0.0, longitude=-179.9)
    assert distance_km(a, b) == pytest.approx(0.2 * math.pi * EARTH_RADIUS_KM / 180.0, rel=1e-6)
