"""
Tests for the geospatial helpers used by the map news deck and overlays.
"""

import math

import pytest

from app.models.geo import Coordinate, Region, Span, ViewportSize
from app.utils.geo import (
    MAX_SPAN_DEG,
    MIN_SPAN_DEG,
    bounding_box,
    coordinate_to_screen_point,
    distance_meters,
    meters_to_pixels,
    region_for,
    span_for,
)

ROTTERDAM = Coordinate(latitude=51.9244, longitude=4.4777)
AMSTERDAM = Coordinate(latitude=52.3676, longitude=4.9041)
SANTA_CRUZ = Coordinate(latitude=37.0, longitude=-122.0)


def test_distance_is_zero_for_same_point():
    assert distance_meters(ROTTERDAM, ROTTERDAM) == 0.0
    assert distance_meters(SANTA_CRUZ, SANTA_CRUZ) == 0.0


def test_distance_is_symmetric():
    pairs = [
        (ROTTERDAM, AMSTERDAM),
        (SANTA_CRUZ, ROTTERDAM),
        (Coordinate(89.9, 0.0), Coordinate(-89.9, 180.0)),
        (Coordinate(0.0, 179.9), Coordinate(0.0, -179.9)),
    ]
    for a, b in pairs:
        assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_distance_rotterdam_amsterdam():
    # ~57 km as the crow flies
    assert distance_meters(ROTTERDAM, AMSTERDAM) == pytest.approx(57_000, rel=0.02)


def test_distance_one_degree_latitude():
    d = distance_meters(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0))
    assert d == pytest.approx(111_195, rel=0.001)


def test_distance_across_antimeridian_is_short():
    d = distance_meters(Coordinate(0.0, 179.9), Coordinate(0.0, -179.9))
    assert d < 25_000


def test_span_minimum_radius_floor():
    # 0 km and 50 m both floor to 100 m
    zero = span_for(0.0, 0.0)
    small = span_for(0.05, 0.0)
    assert zero == small
    assert zero.latitude_delta == pytest.approx(max(MIN_SPAN_DEG, 100 / 111_000 * 2.2))


def test_span_nine_km_at_equator():
    span = span_for(9.0, 0.0)
    assert span.latitude_delta == pytest.approx(9000 / 111_000 * 2.2)
    assert span.longitude_delta == pytest.approx(9000 / 111_320 * 2.2)


def test_span_longitude_widens_with_latitude():
    at_equator = span_for(5.0, 0.0)
    at_60 = span_for(5.0, 60.0)
    assert at_60.latitude_delta == pytest.approx(at_equator.latitude_delta)
    assert at_60.longitude_delta == pytest.approx(at_equator.longitude_delta * 2, rel=0.01)


def test_span_cosine_floor_near_pole():
    near_pole = span_for(10.0, 89.99)
    expected = 10_000 / (111_320 * 0.1) * 2.2
    assert near_pole.longitude_delta == pytest.approx(expected)


def test_span_always_within_bounds():
    for radius_km in (0.0, 0.01, 0.5, 1.0, 9.0, 100.0, 1_000.0, 50_000.0):
        for lat in (-90.0, -60.0, -10.0, 0.0, 37.0, 75.0, 89.0, 90.0):
            span = span_for(radius_km, lat)
            assert MIN_SPAN_DEG <= span.latitude_delta <= MAX_SPAN_DEG
            assert MIN_SPAN_DEG <= span.longitude_delta <= MAX_SPAN_DEG


def test_span_clamps_large_radius():
    span = span_for(10_000.0, 0.0)
    assert span.latitude_delta == MAX_SPAN_DEG
    assert span.longitude_delta == MAX_SPAN_DEG


def test_region_for_uses_center_latitude():
    region = region_for(SANTA_CRUZ, 9.0)
    assert region.center == SANTA_CRUZ
    assert region.span == span_for(9.0, 37.0)


def test_meters_to_pixels_takes_smaller_axis():
    region = Region(center=Coordinate(0.0, 0.0), span=Span(latitude_delta=1.0, longitude_delta=1.0))
    size = ViewportSize(width=400, height=800)
    px = meters_to_pixels(1_000, 0.0, region, size)
    px_x = (1_000 / 111_320) * 400
    px_y = (1_000 / 111_000) * 800
    assert px == pytest.approx(min(px_x, px_y))


def test_meters_to_pixels_minimum_one_pixel():
    region = Region(center=Coordinate(0.0, 0.0), span=Span(latitude_delta=50.0, longitude_delta=50.0))
    size = ViewportSize(width=100, height=100)
    assert meters_to_pixels(1.0, 0.0, region, size) == 1.0
    assert meters_to_pixels(0.0, 0.0, region, size) == 1.0


def test_meters_to_pixels_zero_span_does_not_divide_by_zero():
    region = Region(center=Coordinate(0.0, 0.0), span=Span(latitude_delta=0.0, longitude_delta=0.0))
    px = meters_to_pixels(10.0, 0.0, region, ViewportSize(width=100, height=100))
    assert math.isfinite(px)
    assert px >= 1.0


def test_screen_point_center_maps_to_viewport_center():
    region = Region(center=SANTA_CRUZ, span=Span(0.1, 0.1))
    point = coordinate_to_screen_point(SANTA_CRUZ, region, ViewportSize(width=390, height=844))
    assert point.x == pytest.approx(195)
    assert point.y == pytest.approx(422)


def test_screen_point_north_is_up_east_is_right():
    region = Region(center=Coordinate(0.0, 0.0), span=Span(latitude_delta=2.0, longitude_delta=2.0))
    size = ViewportSize(width=200, height=200)
    north = coordinate_to_screen_point(Coordinate(0.5, 0.0), region, size)
    east = coordinate_to_screen_point(Coordinate(0.0, 0.5), region, size)
    assert north.x == pytest.approx(100)
    assert north.y == pytest.approx(50)
    assert east.x == pytest.approx(150)
    assert east.y == pytest.approx(100)


def test_screen_point_zero_span_is_finite():
    region = Region(center=Coordinate(0.0, 0.0), span=Span(0.0, 0.0))
    point = coordinate_to_screen_point(Coordinate(0.0, 0.0), region, ViewportSize(100, 100))
    assert (point.x, point.y) == (50, 50)


def test_bounding_box_contains_center():
    min_lon, min_lat, max_lon, max_lat = bounding_box(ROTTERDAM, 13_500)
    assert min_lon < ROTTERDAM.longitude < max_lon
    assert min_lat < ROTTERDAM.latitude < max_lat
    assert max_lat - min_lat == pytest.approx(2 * 13_500 / 111_000)
